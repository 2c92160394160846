# summarizer_auth/schemas/auth.py
from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, constr

from summarizer_auth.schemas.identity import Session, User


# ===== 對外 API 的輸入格式 =====

class RegisterIn(BaseModel):
    email: constr(strip_whitespace=True, min_length=3, max_length=254)
    password: constr(max_length=128)
    display_name: Optional[constr(strip_whitespace=True, max_length=100)] = None


class LoginIn(BaseModel):
    email: constr(strip_whitespace=True, min_length=3, max_length=254)
    password: constr(max_length=128)


class ForgotPasswordIn(BaseModel):
    email: str


class UpdatePasswordIn(BaseModel):
    password: constr(max_length=128)
    confirm_password: constr(max_length=128)


class ResendVerificationIn(BaseModel):
    email: Optional[str] = None


# ===== Session Controller 的回傳結果 =====

class AuthResult(BaseModel):
    """所有操作的共同回傳：error 為 None 代表成功。"""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SignUpResult(AuthResult):
    requires_verification: bool = False


class OAuthResult(AuthResult):
    url: Optional[str] = None


class ResetPasswordResult(AuthResult):
    message: Optional[str] = None
    rate_limited: bool = False


class AuthState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


class VerificationStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    CONFIRMED = "confirmed"


class AuthSnapshot(BaseModel):
    """Session Controller 狀態的快照，提供給 Gate 等觀察者。"""
    model_config = ConfigDict(frozen=True)

    user: Optional[User] = None
    session: Optional[Session] = None
    loading: bool = True
    state: AuthState = AuthState.UNINITIALIZED


# ===== 對外 API 的輸出格式 =====

class CooldownStatus(BaseModel):
    key: str
    can_send: bool
    time_remaining: int
    is_on_cooldown: bool
    formatted: str


class UserOut(BaseModel):
    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    email_confirmed: bool


class SessionOut(BaseModel):
    state: AuthState
    verification: VerificationStatus
    user: Optional[UserOut] = None


class VerificationOut(BaseModel):
    state: str
    email: Optional[str] = None
    error: Optional[str] = None
    redirect_to: Optional[str] = None
    resend: CooldownStatus
