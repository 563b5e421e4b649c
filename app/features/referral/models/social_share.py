import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Index, String, Text

from app.platform.db.base import BaseModel


class SharePlatform(enum.Enum):
    twitter = "twitter"
    facebook = "facebook"
    linkedin = "linkedin"
    instagram = "instagram"
    tiktok = "tiktok"
    reddit = "reddit"
    other = "other"


class ShareStatus(enum.Enum):
    pending = "pending"
    verified = "verified"
    rejected = "rejected"


class ShareVerificationMethod(enum.Enum):
    token_verification = "token_verification"  # post text must contain the token
    manual = "manual"
    optimistic = "optimistic"


class SocialShareClaim(BaseModel):
    """
    A user's claim to have shared the waitlist on a platform.

    The claimant embeds verification_token in the post. A claim is verified at most once
    and only verified claims count towards verified_shares_count.
    """

    __tablename__ = "waitlist_social_shares"

    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    username = Column(String(30), nullable=False)

    platform = Column(Enum(SharePlatform), nullable=False)
    share_url = Column(Text, nullable=True)
    platform_post_id = Column(String(255), nullable=True)
    verification_token = Column(String(32), unique=True, nullable=False, index=True)

    status = Column(Enum(ShareStatus), default=ShareStatus.pending, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    verification_method = Column(
        Enum(ShareVerificationMethod),
        default=ShareVerificationMethod.token_verification,
        nullable=False,
    )
    verified_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_social_shares_project_username", "project_id", "username"),
        Index("ix_social_shares_project_platform", "project_id", "platform"),
    )
