# summarizer_auth/schemas/identity.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class User(BaseModel):
    """遠端驗證服務的使用者資料（本地只保留唯讀快取）。"""
    model_config = ConfigDict(frozen=True)

    id: str
    email: Optional[str] = None
    email_confirmed_at: Optional[datetime] = None
    user_metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def display_name(self) -> Optional[str]:
        return self.user_metadata.get("full_name")

    @property
    def is_confirmed(self) -> bool:
        return self.email_confirmed_at is not None


class Session(BaseModel):
    """一組 access / refresh token，登入期間與 User 一對一。"""
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    expires_at: datetime
    token_type: str = "bearer"
    user: User

    def is_expired(self, now: datetime | None = None, *, leeway_seconds: int = 0) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.expires_at - timedelta(seconds=leeway_seconds) <= now


class AuthEventType(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


class AuthChangeEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: AuthEventType
    session: Optional[Session] = None


class AuthResponse(BaseModel):
    """sign_up / sign_in / set_session 的共同回傳格式。"""
    user: Optional[User] = None
    session: Optional[Session] = None
