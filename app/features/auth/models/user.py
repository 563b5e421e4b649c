from sqlalchemy import Column, String

from app.platform.db.base import BaseModel


class User(BaseModel):
    """A project owner. End users on a waitlist are WaitlistEntry rows, not users."""

    __tablename__ = "users"
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=True)
    password_hash = Column(String(255), nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"
