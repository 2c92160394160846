# summarizer_auth/app.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from summarizer_auth.core.cors import add_cors_middleware
from summarizer_auth.core.init_db import init_db_schema
from summarizer_auth.core.logging import configure_logging
from summarizer_auth.core.routes import include_api_routes
from summarizer_auth.core.settings import AuthSettings, get_settings
from summarizer_auth.db import build_engine, build_session_factory
from summarizer_auth.services.auth.cooldown_store import KeyValueStore, SqlKeyValueStore
from summarizer_auth.services.auth.email_verification import RecordingNavigator, VerificationFlow
from summarizer_auth.services.auth.rate_limit import EmailRateLimiter
from summarizer_auth.services.auth.session_controller import SessionController
from summarizer_auth.services.identity.client import GoTrueIdentityClient, IdentityService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # SessionController 的生命週期由 app 負責：啟動時 init，結束時 dispose
    controller: SessionController = app.state.controller
    await controller.init()
    await controller.ready()
    logger.info("Session controller ready (state=%s)", controller.state.value)

    try:
        yield
    finally:
        app.state.verification_flow.dispose()
        controller.dispose()


def create_app(
    settings: AuthSettings | None = None,
    *,
    identity: IdentityService | None = None,
    store: KeyValueStore | None = None,
) -> FastAPI:
    """
    建立本地 companion app。

    啟動方式：uvicorn summarizer_auth.app:create_app --factory
    測試時可注入 settings / identity / store，不需要真的連線遠端服務。
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    if store is None:
        engine = build_engine(settings.client_state_database_url)
        init_db_schema(engine)
        store = SqlKeyValueStore(build_session_factory(engine))

    identity = identity or GoTrueIdentityClient(settings, store)
    controller = SessionController(identity, settings)
    rate_limiter = EmailRateLimiter(store, cooldown_seconds=settings.email_cooldown_seconds)
    navigator = RecordingNavigator()

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.identity = identity
    app.state.controller = controller
    app.state.rate_limiter = rate_limiter
    app.state.navigator = navigator
    app.state.verification_flow = VerificationFlow(
        controller,
        rate_limiter,
        store,
        navigator,
        settings,
    )

    add_cors_middleware(app, settings)
    include_api_routes(app)
    return app
