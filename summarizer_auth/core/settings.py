# summarizer_auth/core/settings.py
from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, Field


class AuthSettings(BaseModel):
    """驗證核心的設定，從環境變數載入。"""
    identity_url: str
    identity_anon_key: str
    site_url: str = "http://localhost:8080"

    # 驗證信 / 重設密碼信的冷卻時間（秒），與前端倒數一致
    email_cooldown_seconds: int = Field(default=60, ge=1)
    # 驗證成功後導回首頁前的等待時間（秒）
    verified_redirect_delay_seconds: float = Field(default=2.0, ge=0)

    identity_timeout_seconds: float = Field(default=20.0, gt=0)
    client_state_database_url: str = "sqlite:///./client_state.db"
    cors_allow_origins: list[str] = ["http://localhost:8080"]
    log_level: str = "INFO"

    @property
    def auth_base_url(self) -> str:
        """Auth REST API 的根路徑，例如 https://xxx.supabase.co/auth/v1。"""
        return f"{self.identity_url.rstrip('/')}/auth/v1"

    @property
    def verification_redirect_url(self) -> str:
        return f"{self.site_url.rstrip('/')}/email-verification"

    @property
    def password_reset_redirect_url(self) -> str:
        return f"{self.site_url.rstrip('/')}/reset-password"

    @property
    def landing_url(self) -> str:
        return f"{self.site_url.rstrip('/')}/"


def _split_origins(raw: str | None) -> list[str] | None:
    if not raw:
        return None
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or None


def load_settings_from_env() -> AuthSettings:
    """從環境變數組出設定，若必要參數缺少就直接拋出錯誤。"""
    identity_url = os.getenv("SUPABASE_URL")
    anon_key = os.getenv("SUPABASE_ANON_KEY")

    if not identity_url:
        raise RuntimeError("SUPABASE_URL is not set in environment variables.")

    if not anon_key:
        raise RuntimeError("SUPABASE_ANON_KEY is not set in environment variables.")

    values: dict = {
        "identity_url": identity_url,
        "identity_anon_key": anon_key,
    }

    # 選填參數：有設定才覆寫預設值，型別轉換交給 pydantic
    optional_env = {
        "site_url": "SITE_URL",
        "email_cooldown_seconds": "EMAIL_COOLDOWN_SECONDS",
        "verified_redirect_delay_seconds": "VERIFIED_REDIRECT_DELAY_SECONDS",
        "identity_timeout_seconds": "IDENTITY_TIMEOUT_SECONDS",
        "client_state_database_url": "CLIENT_STATE_DATABASE_URL",
        "log_level": "LOG_LEVEL",
    }
    for field_name, env_name in optional_env.items():
        raw = os.getenv(env_name)
        if raw:
            values[field_name] = raw

    origins = _split_origins(os.getenv("CORS_ALLOW_ORIGINS"))
    if origins:
        values["cors_allow_origins"] = origins

    return AuthSettings(**values)


@lru_cache
def get_settings() -> AuthSettings:
    """回傳單一設定實例（process 級別的 singleton）。"""
    return load_settings_from_env()
