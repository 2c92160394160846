# summarizer_auth/api/auth_deps.py
from fastapi import Depends, HTTPException, status

from summarizer_auth.api.auth_config import (
    LOADING_MESSAGE,
    UNAUTHENTICATED_MESSAGE,
    UNVERIFIED_MESSAGE,
)
from summarizer_auth.api.deps import get_controller
from summarizer_auth.schemas.identity import User
from summarizer_auth.services.auth.session_controller import SessionController
from summarizer_auth.services.auth.verification_gate import GateDecision, evaluate_gate


def _gate(controller: SessionController, *, require_verification: bool) -> User:
    decision = evaluate_gate(
        controller.user,
        controller.session,
        controller.loading,
        require_verification=require_verification,
    )

    if decision == GateDecision.LOADING:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=LOADING_MESSAGE,
            headers={"Retry-After": "1"},
        )

    if decision == GateDecision.REDIRECT_SIGN_IN:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=UNAUTHENTICATED_MESSAGE,
        )

    if decision == GateDecision.REDIRECT_VERIFICATION:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=UNVERIFIED_MESSAGE,
        )

    return controller.user


def get_current_user(
    controller: SessionController = Depends(get_controller),
) -> User:
    """
    取得目前登入的使用者（不要求 Email 已驗證）。
    仍在 loading 回 503；未登入回 401。
    """
    return _gate(controller, require_verification=False)


def get_verified_user(
    controller: SessionController = Depends(get_controller),
) -> User:
    """
    僅允許「已登入且已完成 Email 驗證」的使用者通過。
    """
    return _gate(controller, require_verification=True)
