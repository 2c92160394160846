# summarizer_auth/api/auth_config.py
from summarizer_auth.services.auth.cooldown_store import (
    PASSWORD_RESET_KEY,
    VERIFICATION_RESEND_KEY,
)

# 對外可查詢冷卻狀態的 key（其他 key 一律 404）
COOLDOWN_KEYS = frozenset({VERIFICATION_RESEND_KEY, PASSWORD_RESET_KEY})

INVALID_EMAIL_MESSAGE = "Please enter a valid email address"
UNAUTHENTICATED_MESSAGE = "Not signed in or the session has expired."
UNVERIFIED_MESSAGE = "Please verify your email address before continuing."
LOADING_MESSAGE = "Session is still loading, please retry shortly."
