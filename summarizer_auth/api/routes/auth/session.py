# summarizer_auth/api/routes/auth/session.py
from fastapi import APIRouter, Depends, status
from fastapi.responses import RedirectResponse

from summarizer_auth.api.auth_config import INVALID_EMAIL_MESSAGE
from summarizer_auth.api.auth_deps import get_verified_user
from summarizer_auth.api.auth_utils import raise_400
from summarizer_auth.api.deps import get_controller
from summarizer_auth.schemas.auth import LoginIn, SessionOut, UserOut, VerificationStatus
from summarizer_auth.schemas.identity import User
from summarizer_auth.security import is_valid_email, normalize_email
from summarizer_auth.services.auth.session_controller import SessionController

router = APIRouter()


def _user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        email_confirmed=user.is_confirmed,
    )


@router.post("/login")
async def login(
    body: LoginIn,
    controller: SessionController = Depends(get_controller),
):
    # 1. 檢查 Email 格式
    if not is_valid_email(normalize_email(body.email)):
        raise_400({"email": INVALID_EMAIL_MESSAGE})

    # 2. 交給遠端驗證帳號密碼，錯誤訊息原樣回傳
    result = await controller.sign_in(body.email, body.password)
    if result.error:
        raise_400({"credentials": result.error})

    # 3. 尚未完成 Email 驗證：允許「受限登入」，由前端導向驗證頁
    if controller.verification_status == VerificationStatus.PENDING:
        return {"ok": True, "needs_verification": True}

    return {"ok": True}


@router.get("/oauth/{provider}", name="oauth_sign_in")
async def oauth_sign_in(
    provider: str,
    controller: SessionController = Depends(get_controller),
):
    """導向第三方登入頁；導回後由驗證頁以 token 建立 session。"""
    result = await controller.sign_in_with_oauth(provider)
    if result.error or not result.url:
        raise_400({"_global": result.error or "Unable to start sign in."})

    return RedirectResponse(url=result.url, status_code=status.HTTP_302_FOUND)


@router.post("/logout", status_code=204)
async def logout(
    controller: SessionController = Depends(get_controller),
):
    """
    登出目前 session。
    未登入時呼叫也回 204，不暴露細節。
    """
    await controller.sign_out()
    return


@router.get("/session", response_model=SessionOut)
def get_session_state(
    controller: SessionController = Depends(get_controller),
) -> SessionOut:
    user = controller.user
    return SessionOut(
        state=controller.state,
        verification=controller.verification_status,
        user=_user_out(user) if user is not None else None,
    )


@router.get("/me", response_model=UserOut)
def get_me(current_user: User = Depends(get_verified_user)) -> UserOut:
    return _user_out(current_user)
