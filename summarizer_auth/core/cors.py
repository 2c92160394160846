# summarizer_auth/core/cors.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from summarizer_auth.core.settings import AuthSettings


def add_cors_middleware(app: FastAPI, settings: AuthSettings) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
