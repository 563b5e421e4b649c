import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from app.platform.db.base import BaseModel
from app.platform.db.types import FixedDecimal

SCORE_SCALE = 4


class EntryStatus(enum.Enum):
    active = "active"
    invited = "invited"
    converted = "converted"
    blocked = "blocked"


class WaitlistEntry(BaseModel):
    """
    One person on one project's waitlist.

    join_index, total_at_join and initial_position are written once at join time.
    time_score is frozen at join and only re-derived by an explicit rescore.
    priority_score and position are derived and recomputed on every scoring event.
    """

    __tablename__ = "waitlist_entries"

    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)

    username = Column(String(30), nullable=False)  # normalized, lower-case
    display_username = Column(String(30), nullable=False)
    email = Column(String(255), nullable=False)

    extra_metadata = Column("metadata", Text, nullable=True)  # JSON object
    tags = Column(Text, nullable=True)  # JSON list

    referred_by = Column(String(30), nullable=True)  # referrer username, same project
    invite_code = Column(String(32), unique=True, nullable=False, index=True)

    is_email_verified = Column(Boolean, default=False, nullable=False)

    # Scoring
    priority_score = Column(FixedDecimal(SCORE_SCALE), nullable=False, default="0")
    join_index = Column(Integer, nullable=False)
    total_at_join = Column(Integer, nullable=False)
    initial_position = Column(Integer, nullable=True)
    position = Column(Integer, nullable=True)  # null while not ranked
    time_score = Column(FixedDecimal(SCORE_SCALE), nullable=False, default="0")
    verified_referrals_count = Column(Integer, default=0, nullable=False)
    verified_shares_count = Column(Integer, default=0, nullable=False)

    status = Column(Enum(EntryStatus), default=EntryStatus.active, nullable=False)
    status_changed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("project_id", "username", name="uq_waitlist_project_username"),
        UniqueConstraint("project_id", "email", name="uq_waitlist_project_email"),
        UniqueConstraint("project_id", "join_index", name="uq_waitlist_project_join_index"),
        CheckConstraint("join_index >= 0", name="ck_waitlist_join_index_non_negative"),
        CheckConstraint("total_at_join > join_index", name="ck_waitlist_total_at_join"),
        Index("ix_waitlist_project_status", "project_id", "status"),
        Index("ix_waitlist_project_position", "project_id", "position"),
    )

    @property
    def is_ranked(self) -> bool:
        return self.status == EntryStatus.active

    def __repr__(self):
        return f"<WaitlistEntry(project={self.project_id}, username={self.username}, score={self.priority_score})>"
