# summarizer_auth/services/auth/errors.py
from __future__ import annotations


class AuthValidationError(Exception):
    """輸入格式錯誤（Email / 密碼），在呼叫遠端服務前就攔下。"""

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = errors
        super().__init__("; ".join(errors.values()))

    @property
    def message(self) -> str:
        # 只取第一個欄位錯誤給 UI 顯示
        return next(iter(self.errors.values()))


class RemoteAuthError(Exception):
    """遠端驗證服務回傳的任何錯誤。"""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class RateLimitedError(RemoteAuthError):
    """被遠端判定為寄信 / 請求過於頻繁。"""


class IdentityUnavailableError(RemoteAuthError):
    """連不上遠端驗證服務（網路錯誤、逾時、回應格式無法解析）。"""


# 遠端有提供結構化錯誤碼時優先使用
_RATE_LIMIT_CODES = {
    "over_email_send_rate_limit",
    "over_request_rate_limit",
    "over_sms_send_rate_limit",
    "rate_limit_exceeded",
    "too_many_requests",
}

# 沒有錯誤碼時才退回比對訊息字串（訊息文案改版就會失效）
_RATE_LIMIT_MARKERS = (
    "rate limit",
    "too many requests",
    "too many attempts",
)


def is_rate_limited(exc: Exception) -> bool:
    if isinstance(exc, RateLimitedError):
        return True

    status = getattr(exc, "status", None)
    if status == 429:
        return True

    code = (getattr(exc, "code", None) or "").strip().lower()
    if code in _RATE_LIMIT_CODES:
        return True

    reason = str(exc).lower()
    return any(marker in reason for marker in _RATE_LIMIT_MARKERS)


def classify_remote_error(exc: RemoteAuthError) -> RemoteAuthError:
    """把可判定為 rate limit 的 RemoteAuthError 轉成 RateLimitedError。"""
    if isinstance(exc, (RateLimitedError, IdentityUnavailableError)):
        return exc
    if is_rate_limited(exc):
        return RateLimitedError(exc.message, status=exc.status, code=exc.code)
    return exc
