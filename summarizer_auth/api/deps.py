# summarizer_auth/api/deps.py
from fastapi import Request

from summarizer_auth.core.settings import AuthSettings
from summarizer_auth.services.auth.email_verification import VerificationFlow
from summarizer_auth.services.auth.rate_limit import EmailRateLimiter
from summarizer_auth.services.auth.session_controller import SessionController

# 這些物件都在 create_app() 建立並掛在 app.state 上，生命週期由 app 管理


def get_settings_dep(request: Request) -> AuthSettings:
    return request.app.state.settings


def get_controller(request: Request) -> SessionController:
    """
    提供 FastAPI Depends 使用的 SessionController。

    使用方式範例：
        from fastapi import Depends
        from summarizer_auth.api.deps import get_controller

        async def some_endpoint(controller: SessionController = Depends(get_controller)):
            ...
    """
    return request.app.state.controller


def get_rate_limiter(request: Request) -> EmailRateLimiter:
    return request.app.state.rate_limiter


def get_verification_flow(request: Request) -> VerificationFlow:
    return request.app.state.verification_flow
