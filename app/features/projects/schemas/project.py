import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_serializer, model_validator


class ReferralVerificationPolicy(str, enum.Enum):
    optimistic = "optimistic"  # referrals count as soon as the invite code is used
    manual = "manual"  # an operator confirms each referral


class ProjectSettings(BaseModel):
    """Per-project policy. Stored as JSON in projects.settings."""

    referral_verification_policy: ReferralVerificationPolicy = ReferralVerificationPolicy.optimistic
    referral_points: Decimal = Field(Decimal("100"), ge=0, le=Decimal("100000"))
    share_points: Decimal = Field(Decimal("25"), ge=0, le=Decimal("100000"))
    early_bird_bonus: Decimal = Field(Decimal("200"), ge=0, le=Decimal("100000"))
    early_bird_window_days: int = Field(30, ge=1, le=3650)

    @model_validator(mode="after")
    def shares_weigh_less_than_referrals(self):
        if self.share_points > self.referral_points:
            raise ValueError("share_points must not exceed referral_points")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "referral_verification_policy": "optimistic",
                "referral_points": "100",
                "share_points": "25",
                "early_bird_bonus": "200",
                "early_bird_window_days": 30,
            }
        }


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = Field(None, max_length=2000)
    settings: ProjectSettings = Field(default_factory=ProjectSettings)


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = Field(None, max_length=2000)
    settings: Optional[ProjectSettings] = None
    is_active: Optional[bool] = None


class ProjectResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    api_key: str
    settings: ProjectSettings
    total_entries: int
    is_active: bool
    created_at: datetime

    @field_serializer("created_at")
    def serialize_datetime(self, value, _info):
        return value.isoformat() if isinstance(value, datetime) else value


class ProjectKeysResponse(ProjectResponse):
    """Only returned on creation and key rotation."""

    secret_key: str
