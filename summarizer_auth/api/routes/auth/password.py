# summarizer_auth/api/routes/auth/password.py
from fastapi import APIRouter, Depends

from summarizer_auth.api.auth_config import INVALID_EMAIL_MESSAGE
from summarizer_auth.api.auth_deps import get_current_user
from summarizer_auth.api.auth_utils import raise_400, raise_429, raise_503
from summarizer_auth.api.deps import get_controller, get_rate_limiter
from summarizer_auth.schemas.auth import ForgotPasswordIn, UpdatePasswordIn
from summarizer_auth.schemas.identity import User
from summarizer_auth.security import ensure_valid_new_password, is_valid_email, normalize_email
from summarizer_auth.services.auth.cooldown_store import PASSWORD_RESET_KEY
from summarizer_auth.services.auth.errors import AuthValidationError
from summarizer_auth.services.auth.rate_limit import EmailRateLimiter
from summarizer_auth.services.auth.session_controller import SessionController

router = APIRouter()


# ===== 忘記密碼：發送重設密碼信 =====
@router.post("/forgot-password")
async def forgot_password(
    body: ForgotPasswordIn,
    controller: SessionController = Depends(get_controller),
    rate_limiter: EmailRateLimiter = Depends(get_rate_limiter),
):
    """
    忘記密碼入口：

    - 成功一律回同一段訊息（不暴露帳號是否存在）
    - 若 email 格式錯誤，回 400 提示使用者修正
    - 若請求過於頻繁（本地冷卻或遠端 rate limit），回 429 告知稍後再試
    """
    # 1. 檢查 Email 格式（只檢查字串是否合法，不洩漏帳號存在與否）
    if not is_valid_email(normalize_email(body.email)):
        raise_400({"email": INVALID_EMAIL_MESSAGE})

    # 2. 本地冷卻
    remaining = rate_limiter.remaining(PASSWORD_RESET_KEY)
    if remaining > 0:
        raise_429("Too many reset attempts. Please wait before trying again.", remaining)

    # 3. 交給遠端寄信
    result = await controller.reset_password(body.email)
    if result.rate_limited:
        raise_429(result.error, rate_limiter.cooldown_seconds)
    if result.error:
        raise_503(result.error)

    rate_limiter.start(PASSWORD_RESET_KEY)
    return {"ok": True, "message": result.message}


# ===== 忘記密碼：設定新密碼 =====
@router.post("/update-password")
async def update_password(
    body: UpdatePasswordIn,
    current_user: User = Depends(get_current_user),
    controller: SessionController = Depends(get_controller),
):
    # 1) 先在本地檢查，一次回報所有欄位錯誤
    try:
        ensure_valid_new_password(body.password, body.confirm_password)
    except AuthValidationError as exc:
        raise_400(exc.errors)

    # 2) 交給遠端更新密碼
    result = await controller.update_password(body.password, body.confirm_password)
    if result.error:
        raise_400({"_global": result.error})

    return {"ok": True}
