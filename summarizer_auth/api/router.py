# summarizer_auth/api/router.py
from fastapi import APIRouter

from summarizer_auth.api.routes.auth import password, session, verification

api_router = APIRouter(prefix="/api/auth", tags=["auth"])
api_router.include_router(session.router)
api_router.include_router(verification.router)
api_router.include_router(password.router)
