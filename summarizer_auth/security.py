# summarizer_auth/security.py
from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import EmailStr, TypeAdapter

from summarizer_auth.services.auth.errors import AuthValidationError

# ===== Email / 密碼檢查 =====

EMAIL_ADAPTER = TypeAdapter(EmailStr)

MAX_EMAIL_LENGTH = 254
MIN_PASSWORD_LENGTH = 8

_SUSPICIOUS_PATTERNS = [
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"on\w+=", re.IGNORECASE),
]


def normalize_email(email: str | None) -> str:
    """去除前後空白並轉小寫，所有 Email 比對都先經過這裡。"""
    return (email or "").strip().lower()


def is_valid_email(email: str | None) -> bool:
    """Email 格式檢查（含可疑字串過濾），只檢查字串本身，不涉及帳號是否存在。"""
    if not email or not isinstance(email, str):
        return False
    if len(email) > MAX_EMAIL_LENGTH:
        return False
    if any(p.search(email) for p in _SUSPICIOUS_PATTERNS):
        return False

    try:
        EMAIL_ADAPTER.validate_python(email)
    except ValueError:
        return False
    return True


def ensure_valid_email(email: str | None) -> str:
    """正規化後檢查格式，不合法就拋出 AuthValidationError。"""
    normalized = normalize_email(email)
    if not is_valid_email(normalized):
        raise AuthValidationError({"email": "Please enter a valid email address"})
    return normalized


def ensure_valid_new_password(password: str, confirm_password: str) -> None:
    """重設密碼時的檢查：長度與兩次輸入一致，一次收集所有欄位錯誤。"""
    errors: dict[str, str] = {}

    if len(password or "") < MIN_PASSWORD_LENGTH:
        errors["password"] = (
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )

    if password != confirm_password:
        errors["confirm_password"] = "Passwords do not match"

    if errors:
        raise AuthValidationError(errors)


# ===== 字串清理 =====

def sanitize_string(value: str | None, *, max_length: int = 500) -> str:
    """移除可能被拿來注入的字元與協定，並限制長度（例如顯示名稱）。"""
    if not value or not isinstance(value, str):
        return ""

    cleaned = re.sub(r"[<>'\"&]", "", value)
    cleaned = re.sub(r"javascript:", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"data:", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"vbscript:", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"on\w+=", "", cleaned, flags=re.IGNORECASE)
    return cleaned.strip()[:max_length]


# ===== 驗證連結參數 =====

# 驗證連結上會帶的參數；消費後一律從網址列移除，避免透過瀏覽紀錄 / 書籤重放
AUTH_URL_PARAMS = frozenset(
    {
        "access_token",
        "refresh_token",
        "type",
        "email",
        "expires_in",
        "expires_at",
        "token_type",
        "provider_token",
        "provider_refresh_token",
    }
)


def parse_auth_params(url: str) -> dict[str, str]:
    """
    從網址取出驗證參數。

    託管服務有時把 token 放在 fragment (#access_token=...)，有時放在 query，
    兩邊都讀；同名參數以 query 為準。
    """
    parts = urlsplit(url)
    params: dict[str, str] = {}

    for key, value in parse_qsl(parts.fragment, keep_blank_values=False):
        if key in AUTH_URL_PARAMS:
            params[key] = value

    for key, value in parse_qsl(parts.query, keep_blank_values=False):
        if key in AUTH_URL_PARAMS:
            params[key] = value

    return params


def scrub_auth_params(url: str) -> str:
    """回傳移除所有驗證參數後的網址（其他 query 參數保留原順序）。"""
    parts = urlsplit(url)

    query = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if k not in AUTH_URL_PARAMS
    ]

    fragment = parts.fragment
    if fragment and "=" in fragment:
        kept = [
            (k, v)
            for k, v in parse_qsl(fragment, keep_blank_values=True)
            if k not in AUTH_URL_PARAMS
        ]
        fragment = urlencode(kept)

    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path, urlencode(query), fragment)
    )
