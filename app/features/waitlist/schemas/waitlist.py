import json
import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, field_serializer, field_validator

from app.features.waitlist.models.event import EventType
from app.features.waitlist.models.waitlist import EntryStatus, WaitlistEntry
from app.features.waitlist.services.scoring import format_score

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{3,30}$")
MAX_TAGS = 20
MAX_METADATA_BYTES = 4096


def _load_json(value: Optional[str], default):
    if not value:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return default


class JoinWaitlistRequest(BaseModel):
    username: str = Field(..., examples=["ada_l"])
    email: EmailStr = Field(..., examples=["ada@example.com"])
    referral_code: Optional[str] = Field(None, max_length=32, description="Invite code of the referring entry")
    metadata: Optional[Dict[str, Any]] = None
    tags: Optional[List[str]] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        v = v.strip()
        if not USERNAME_PATTERN.match(v):
            raise ValueError("Username must be 3-30 characters: letters, digits, '_', '.' or '-'")
        return v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("referral_code")
    @classmethod
    def normalize_referral_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip().upper() or None

    @field_validator("metadata")
    @classmethod
    def limit_metadata(cls, v: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if v is not None and len(json.dumps(v, default=str)) > MAX_METADATA_BYTES:
            raise ValueError(f"Metadata must serialize to at most {MAX_METADATA_BYTES} bytes")
        return v

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return None
        tags = []
        for tag in v:
            tag = tag.strip().lower()
            if tag and tag not in tags:
                tags.append(tag[:50])
        if len(tags) > MAX_TAGS:
            raise ValueError(f"At most {MAX_TAGS} tags allowed")
        return tags

    class Config:
        json_schema_extra = {
            "example": {
                "username": "ada_l",
                "email": "ada@example.com",
                "referral_code": "K7M2QX9A",
                "metadata": {"source": "landing"},
                "tags": ["beta"],
            }
        }


class PublicEntryResponse(BaseModel):
    """What a waitlist member may see about themselves."""

    username: str
    invite_code: str
    position: Optional[int] = None
    initial_position: Optional[int] = None
    total_ranked: Optional[int] = None
    priority_score: Decimal
    verified_referrals_count: int
    verified_shares_count: int
    status: EntryStatus
    joined_at: datetime

    @field_serializer("priority_score")
    def serialize_score(self, value: Decimal, _info):
        return format_score(value)

    @field_serializer("joined_at")
    def serialize_datetime(self, value, _info):
        return value.isoformat() if isinstance(value, datetime) else value

    @classmethod
    def from_entry(cls, entry: WaitlistEntry, total_ranked: Optional[int] = None, **extra):
        return cls(
            username=entry.display_username,
            invite_code=entry.invite_code,
            position=entry.position if entry.is_ranked else None,
            initial_position=entry.initial_position,
            total_ranked=total_ranked,
            priority_score=entry.priority_score,
            verified_referrals_count=entry.verified_referrals_count,
            verified_shares_count=entry.verified_shares_count,
            status=entry.status,
            joined_at=entry.created_at,
            **extra,
        )


class EntryResponse(PublicEntryResponse):
    """Owner view of an entry."""

    id: str
    email: str
    referred_by: Optional[str] = None
    join_index: int
    total_at_join: int
    time_score: Decimal
    is_email_verified: bool
    metadata: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    status_changed_at: Optional[datetime] = None

    @field_serializer("time_score")
    def serialize_time_score(self, value: Decimal, _info):
        return format_score(value)

    @field_serializer("status_changed_at")
    def serialize_status_changed_at(self, value, _info):
        return value.isoformat() if isinstance(value, datetime) else value

    @classmethod
    def from_entry(cls, entry: WaitlistEntry, total_ranked: Optional[int] = None, **extra):
        return super().from_entry(
            entry,
            total_ranked,
            id=entry.id,
            email=entry.email,
            referred_by=entry.referred_by,
            join_index=entry.join_index,
            total_at_join=entry.total_at_join,
            time_score=entry.time_score,
            is_email_verified=entry.is_email_verified,
            metadata=_load_json(entry.extra_metadata, {}),
            tags=_load_json(entry.tags, []),
            status_changed_at=entry.status_changed_at,
            **extra,
        )


class LeaderboardItem(BaseModel):
    position: int
    username: str
    priority_score: Decimal
    verified_referrals_count: int

    @field_serializer("priority_score")
    def serialize_score(self, value: Decimal, _info):
        return format_score(value)

    @classmethod
    def from_entry(cls, entry: WaitlistEntry) -> "LeaderboardItem":
        return cls(
            position=entry.position,
            username=entry.display_username,
            priority_score=entry.priority_score,
            verified_referrals_count=entry.verified_referrals_count,
        )


class StatusChangeRequest(BaseModel):
    status: EntryStatus


class EventResponse(BaseModel):
    id: str
    event_type: EventType
    username: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @field_serializer("created_at")
    def serialize_datetime(self, value, _info):
        return value.isoformat() if isinstance(value, datetime) else value

    @classmethod
    def from_event(cls, event) -> "EventResponse":
        return cls(
            id=event.id,
            event_type=event.event_type,
            username=event.username,
            details=_load_json(event.details, {}),
            created_at=event.created_at,
        )
