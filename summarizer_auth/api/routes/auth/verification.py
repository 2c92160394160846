# summarizer_auth/api/routes/auth/verification.py
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import RedirectResponse

from summarizer_auth.api.auth_config import COOLDOWN_KEYS, INVALID_EMAIL_MESSAGE
from summarizer_auth.api.auth_utils import raise_400, raise_429
from summarizer_auth.api.deps import (
    get_controller,
    get_rate_limiter,
    get_settings_dep,
    get_verification_flow,
)
from summarizer_auth.core.settings import AuthSettings
from summarizer_auth.schemas.auth import (
    CooldownStatus,
    RegisterIn,
    ResendVerificationIn,
    VerificationOut,
)
from summarizer_auth.security import is_valid_email, normalize_email, sanitize_string
from summarizer_auth.services.auth.cooldown_store import VERIFICATION_RESEND_KEY
from summarizer_auth.services.auth.email_verification import VerificationFlow
from summarizer_auth.services.auth.rate_limit import EmailRateLimiter
from summarizer_auth.services.auth.session_controller import SessionController

router = APIRouter()


# ===== 註冊 =====
@router.post("/register")
async def register(
    body: RegisterIn,
    response: Response,
    controller: SessionController = Depends(get_controller),
    rate_limiter: EmailRateLimiter = Depends(get_rate_limiter),
    flow: VerificationFlow = Depends(get_verification_flow),
):
    # 1. 格式檢查交給遠端服務；顯示名稱先清理再送出
    display_name = sanitize_string(body.display_name, max_length=100) or None

    result = await controller.sign_up(body.email, body.password, display_name)
    if result.error:
        raise_400({"_global": result.error})

    # 2. 新的註冊：驗證流程從頭開始（前一個帳號可能已經驗證完成）
    flow.reset()

    # 3. 需要驗證：記下 Email 並開始重新寄送的冷卻（驗證信剛寄出）
    if result.requires_verification:
        flow.remember_pending_email(body.email)
        rate_limiter.start(VERIFICATION_RESEND_KEY)
        response.headers["Retry-After"] = str(rate_limiter.cooldown_seconds)

    return {"ok": True, "requires_verification": result.requires_verification}


# ===== Email Verification =====
@router.get("/email-verification", name="verify_email")
async def verify_email(
    request: Request,
    flow: VerificationFlow = Depends(get_verification_flow),
    settings: AuthSettings = Depends(get_settings_dep),
):
    """
    驗證連結入口。

    不論成功或失敗都導回不含 token 的驗證頁，token 不會留在網址列或瀏覽紀錄中。
    """
    state = await flow.handle_visit(str(request.url))

    target = f"{settings.verification_redirect_url}?{urlencode({'status': state.value})}"
    return RedirectResponse(url=target, status_code=status.HTTP_302_FOUND)


@router.get("/verification", response_model=VerificationOut)
def verification_status(
    flow: VerificationFlow = Depends(get_verification_flow),
) -> VerificationOut:
    return flow.status()


# ===== 重新寄送驗證信 =====
@router.post("/resend-verification")
async def resend_verification(
    body: ResendVerificationIn,
    response: Response,
    rate_limiter: EmailRateLimiter = Depends(get_rate_limiter),
    flow: VerificationFlow = Depends(get_verification_flow),
):
    # 0) email 可能是 None：改用註冊時記下的 Email
    email = (body.email or "").strip()
    if email:
        if not is_valid_email(normalize_email(email)):
            raise_400({"email": INVALID_EMAIL_MESSAGE})
        flow.remember_pending_email(email)

    # 1) 冷卻期間內：回 429，並用 Retry-After 提供剩餘秒數
    remaining = rate_limiter.remaining(VERIFICATION_RESEND_KEY)
    if remaining > 0:
        raise_429("Verification emails are being sent too often. Please try again later.", remaining)

    result = await flow.resend()
    if result.error:
        raise_400({"_global": result.error})

    # 所有成功回覆都帶 Retry-After，讓前端不用猜 60 秒
    response.headers["Retry-After"] = str(rate_limiter.cooldown_seconds)
    return {"ok": True}


@router.get("/cooldowns/{key}", response_model=CooldownStatus)
def cooldown_status(
    key: str,
    rate_limiter: EmailRateLimiter = Depends(get_rate_limiter),
) -> CooldownStatus:
    if key not in COOLDOWN_KEYS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown cooldown.")
    return rate_limiter.status(key)
