import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Index, String, UniqueConstraint

from app.platform.db.base import BaseModel


class ReferralVerificationMethod(enum.Enum):
    invite_code = "invite_code"  # optimistic: the invite code was used at join
    manual = "manual"  # operator-confirmed


class ReferralEdge(BaseModel):
    """
    Referrer -> referee within one project.

    A referee has at most one edge per project: the first referrer wins.
    Only verified edges count towards the referrer's score.
    """

    __tablename__ = "waitlist_referrals"

    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    referrer_username = Column(String(30), nullable=False)
    referee_username = Column(String(30), nullable=False)

    is_verified = Column(Boolean, default=False, nullable=False)
    verification_method = Column(
        Enum(ReferralVerificationMethod),
        default=ReferralVerificationMethod.invite_code,
        nullable=False,
    )
    verified_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("project_id", "referee_username", name="uq_referrals_project_referee"),
        Index("ix_referrals_project_referrer", "project_id", "referrer_username"),
    )

    def __repr__(self):
        return f"<ReferralEdge({self.referrer_username} -> {self.referee_username}, verified={self.is_verified})>"
