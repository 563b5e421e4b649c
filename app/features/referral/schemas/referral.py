from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_serializer, model_validator

from app.features.referral.models.referral import ReferralVerificationMethod
from app.features.referral.models.social_share import SharePlatform, ShareStatus, ShareVerificationMethod


class ReferralCreate(BaseModel):
    """Attribute an existing entry to a referrer by hand."""

    referrer_username: str = Field(..., min_length=3, max_length=30)
    referee_username: str = Field(..., min_length=3, max_length=30)
    verify: bool = False


class ReferralVerifyRequest(BaseModel):
    method: ReferralVerificationMethod = ReferralVerificationMethod.manual


class ReferralResponse(BaseModel):
    id: str
    referrer_username: str
    referee_username: str
    is_verified: bool
    verification_method: ReferralVerificationMethod
    verified_at: Optional[datetime] = None
    created_at: datetime

    @field_serializer("verified_at", "created_at")
    def serialize_datetime(self, value, _info):
        return value.isoformat() if isinstance(value, datetime) else value

    class Config:
        from_attributes = True


class ShareClaimRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=30)
    platform: SharePlatform
    share_url: Optional[str] = Field(None, max_length=2048)
    platform_post_id: Optional[str] = Field(None, max_length=255)

    class Config:
        json_schema_extra = {
            "example": {
                "username": "ada_l",
                "platform": "twitter",
                "share_url": "https://twitter.com/ada_l/status/1790000000000000000",
            }
        }


class ShareVerifyRequest(BaseModel):
    method: ShareVerificationMethod = ShareVerificationMethod.manual
    evidence: Optional[str] = Field(None, max_length=10000, description="Post text for token verification")

    @model_validator(mode="after")
    def token_needs_evidence(self):
        if self.method == ShareVerificationMethod.token_verification and not self.evidence:
            raise ValueError("evidence is required for token verification")
        return self


class ShareClaimResponse(BaseModel):
    id: str
    username: str
    platform: SharePlatform
    share_url: Optional[str] = None
    platform_post_id: Optional[str] = None
    verification_token: str
    status: ShareStatus
    is_verified: bool
    verification_method: ShareVerificationMethod
    verified_at: Optional[datetime] = None
    created_at: datetime

    @field_serializer("verified_at", "created_at")
    def serialize_datetime(self, value, _info):
        return value.isoformat() if isinstance(value, datetime) else value

    class Config:
        from_attributes = True
