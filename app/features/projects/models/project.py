from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.platform.db.base import BaseModel


class Project(BaseModel):
    """
    A waitlist owned by a user. Tenant boundary: every entry, referral, share claim
    and event is scoped by project_id.
    """

    __tablename__ = "projects"

    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)

    # Public key for the embeddable join widget, secret for admin/webhooks
    api_key = Column(String(64), unique=True, nullable=False, index=True)
    secret_key = Column(String(64), unique=True, nullable=False)

    settings_json = Column("settings", Text, nullable=True)  # JSON, see ProjectSettings

    # Join sequence; only advanced while holding the project write lock
    next_join_index = Column(Integer, default=0, nullable=False)
    total_entries = Column(Integer, default=0, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)

    owner = relationship("User")

    def __repr__(self):
        return f"<Project(id={self.id}, name={self.name})>"
