from app.platform.db.base import Base, BaseModel
from app.platform.db.types import FixedDecimal

__all__ = ["Base", "BaseModel", "FixedDecimal"]
