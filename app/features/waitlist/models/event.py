import enum

from sqlalchemy import Column, Enum, ForeignKey, Index, String, Text

from app.platform.db.base import BaseModel


class EventType(enum.Enum):
    joined = "joined"
    referred = "referred"
    shared = "shared"
    verified = "verified"
    invited = "invited"
    converted = "converted"
    blocked = "blocked"
    revoked = "revoked"
    position_updated = "position_updated"


class WaitlistEvent(BaseModel):
    """Append-only activity log for a project's waitlist."""

    __tablename__ = "waitlist_events"

    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    event_type = Column(Enum(EventType), nullable=False)
    username = Column(String(30), nullable=True)  # null for project-wide events
    details = Column(Text, nullable=True)  # JSON object

    __table_args__ = (Index("ix_waitlist_events_project_created", "project_id", "created_at"),)
