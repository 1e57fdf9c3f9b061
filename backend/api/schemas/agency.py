"""
Agency tier schemas: stats, team, white-label and integrations.
"""

import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from infrastructure.database.models.integration import WEBHOOK_EVENTS

LOGO_URL_RE = re.compile(r"^https?://.+")
HEX_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")
DOMAIN_RE = re.compile(r"^(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+[a-zA-Z]{2,}$")


class AgencyStatsResponse(BaseModel):
    total_analyses: int
    team_members: int
    api_calls: int
    organization_id: str


# Team


class TeamMemberResponse(BaseModel):
    id: str
    user_id: str
    email: str
    name: Optional[str] = None
    role: str
    invited_at: Optional[datetime] = None
    joined_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TeamListResponse(BaseModel):
    members: List[TeamMemberResponse]


class InviteMemberRequest(BaseModel):
    organization_id: str
    email: EmailStr
    role: str = Field(..., min_length=1, max_length=20)


class UpdateMemberRoleRequest(BaseModel):
    role: str = Field(..., min_length=1, max_length=20)


# White-label


class WhiteLabelSettings(BaseModel):
    """White-label branding; every field optional, empty strings clear a value."""

    company_name: Optional[str] = Field(default=None, max_length=255)
    company_logo: Optional[str] = Field(default=None, max_length=500)
    primary_color: Optional[str] = None
    custom_domain: Optional[str] = Field(default=None, max_length=255)

    model_config = ConfigDict(from_attributes=True)

    @field_validator("company_name", "company_logo", "primary_color", "custom_domain", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v

    @field_validator("company_logo")
    @classmethod
    def validate_logo(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not LOGO_URL_RE.match(v):
            raise ValueError("Logo must be an http(s) URL")
        return v

    @field_validator("primary_color")
    @classmethod
    def validate_color(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not HEX_COLOR_RE.match(v):
            raise ValueError("Color must be a hex value like #1a2b3c")
        return v

    @field_validator("custom_domain")
    @classmethod
    def validate_domain(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not DOMAIN_RE.match(v):
            raise ValueError("Invalid domain")
        return v.lower() if v else v


# Integrations


class ApiKeyCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class ApiKeyResponse(BaseModel):
    id: str
    name: str
    key_preview: str
    created_at: datetime
    last_used_at: Optional[datetime] = None


class ApiKeyCreatedResponse(ApiKeyResponse):
    """Returned once on creation; ``key`` is never shown again."""

    key: str


class WebhookCreateRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048)
    events: List[str] = Field(..., min_length=1)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not LOGO_URL_RE.match(v) or " " in v:
            raise ValueError("Webhook URL must be an http(s) URL")
        return v

    @field_validator("events")
    @classmethod
    def validate_events(cls, v: List[str]) -> List[str]:
        unknown = [e for e in v if e not in WEBHOOK_EVENTS]
        if unknown:
            raise ValueError(f"Unknown events: {', '.join(unknown)}")
        return list(dict.fromkeys(v))


class WebhookResponse(BaseModel):
    id: str
    url: str
    events: List[str]
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WebhookCreatedResponse(WebhookResponse):
    """Returned once on creation with the signing secret."""

    secret: str


class WebhookEventsResponse(BaseModel):
    events: List[str]
