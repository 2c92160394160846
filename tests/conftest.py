"""Pytest fixtures for the auth session core tests."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from summarizer_auth.core.settings import AuthSettings
from summarizer_auth.schemas.identity import (
    AuthChangeEvent,
    AuthEventType,
    AuthResponse,
    Session,
    User,
)
from summarizer_auth.services.auth.cooldown_store import MemoryKeyValueStore
from summarizer_auth.services.auth.errors import RemoteAuthError
from summarizer_auth.services.auth.rate_limit import EmailRateLimiter
from summarizer_auth.services.auth.session_controller import SessionController
from summarizer_auth.services.identity.events import EventChannel


def make_user(email="real@x.com", *, confirmed=True, user_id=None, full_name=None):
    return User(
        id=user_id or f"user-{email}",
        email=email,
        email_confirmed_at=datetime(2026, 1, 1, tzinfo=timezone.utc) if confirmed else None,
        user_metadata={"full_name": full_name} if full_name else {},
    )


def make_session(email="real@x.com", *, confirmed=True, access_token="access-1", refresh_token="refresh-1"):
    return Session(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        user=make_user(email, confirmed=confirmed),
    )


class FakeClock:
    """Manually advanced wall clock (epoch seconds)."""

    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeIdentityService:
    """In-memory stand-in for the hosted identity service.

    Emits auth-state events through the same ordered channel the real client
    uses, so controller tests exercise the notification path too.
    """

    def __init__(self):
        self.events = EventChannel("fake-auth-state")
        self.accounts = {}
        self.session = None
        self.auto_confirm = False
        self.allow_unconfirmed_sign_in = False
        self.verification_links = {}
        self.calls = []
        self.errors = {}
        self.session_lookup_gate = None
        self.session_lookup_result = None

    # --- test helpers ---

    def register(self, email, password="correct-horse", *, confirmed=True):
        self.accounts[email] = {"password": password, "confirmed": confirmed}

    def fail_next(self, method, exc):
        self.errors[method] = exc

    def _maybe_fail(self, method):
        exc = self.errors.pop(method, None)
        if exc is not None:
            raise exc

    def emit(self, event_type, session=None):
        self.events.emit(AuthChangeEvent(type=event_type, session=session))

    def _start_session(self, email, event_type=AuthEventType.SIGNED_IN):
        account = self.accounts[email]
        self.session = make_session(
            email,
            confirmed=account["confirmed"],
            access_token=f"access-{email}-{len(self.calls)}",
            refresh_token=f"refresh-{email}-{len(self.calls)}",
        )
        self.emit(event_type, self.session)
        return self.session

    # --- IdentityService ---

    def on_auth_state_change(self, callback):
        return self.events.subscribe(callback)

    async def sign_up(self, email, password, *, redirect_url=None, metadata=None):
        self.calls.append(("sign_up", email, redirect_url, metadata))
        self._maybe_fail("sign_up")
        if email in self.accounts:
            raise RemoteAuthError("User already registered", status=422, code="user_already_exists")

        self.register(email, password, confirmed=self.auto_confirm)
        if self.auto_confirm:
            session = self._start_session(email)
            return AuthResponse(user=session.user, session=session)
        return AuthResponse(user=make_user(email, confirmed=False), session=None)

    async def sign_in_with_password(self, email, password):
        self.calls.append(("sign_in_with_password", email))
        self._maybe_fail("sign_in_with_password")
        account = self.accounts.get(email)
        if account is None or account["password"] != password:
            raise RemoteAuthError("Invalid login credentials", status=400, code="invalid_credentials")
        if not account["confirmed"] and not self.allow_unconfirmed_sign_in:
            raise RemoteAuthError("Email not confirmed", status=400, code="email_not_confirmed")

        session = self._start_session(email)
        return AuthResponse(user=session.user, session=session)

    async def sign_in_with_oauth(self, provider, *, redirect_url=None, query_params=None):
        self.calls.append(("sign_in_with_oauth", provider, redirect_url, query_params))
        self._maybe_fail("sign_in_with_oauth")
        return f"https://identity.test/auth/v1/authorize?provider={provider}"

    async def reset_password_for_email(self, email, *, redirect_url=None):
        self.calls.append(("reset_password_for_email", email, redirect_url))
        self._maybe_fail("reset_password_for_email")
        if email not in self.accounts:
            raise RemoteAuthError("User not found", status=404, code="user_not_found")

    async def resend(self, type, email, *, redirect_url=None):
        self.calls.append(("resend", type, email, redirect_url))
        self._maybe_fail("resend")

    async def set_session(self, access_token, refresh_token):
        self.calls.append(("set_session", access_token, refresh_token))
        self._maybe_fail("set_session")
        email = self.verification_links.get((access_token, refresh_token))
        if email is None:
            raise RemoteAuthError(
                "Invalid Refresh Token: Refresh Token Not Found",
                status=400,
                code="refresh_token_not_found",
            )
        self.accounts[email]["confirmed"] = True
        session = self._start_session(email)
        return AuthResponse(user=session.user, session=session)

    async def get_session(self):
        self.calls.append(("get_session",))
        if self.session_lookup_gate is not None:
            await self.session_lookup_gate.wait()
        self._maybe_fail("get_session")
        if self.session_lookup_result is not None:
            return self.session_lookup_result
        return self.session

    async def update_user(self, *, password=None, data=None):
        self.calls.append(("update_user", password is not None))
        self._maybe_fail("update_user")
        if self.session is None:
            raise RemoteAuthError("Auth session missing!", status=401, code="session_not_found")
        email = self.session.user.email
        self.accounts[email]["password"] = password
        self.session = self.session.model_copy()
        self.emit(AuthEventType.USER_UPDATED, self.session)
        return self.session.user

    async def sign_out(self):
        self.calls.append(("sign_out",))
        self._maybe_fail("sign_out")
        self.session = None
        self.emit(AuthEventType.SIGNED_OUT, None)

    def call_names(self):
        return [c[0] for c in self.calls]


@pytest.fixture
def settings():
    return AuthSettings(
        identity_url="https://identity.test",
        identity_anon_key="anon-key",
        site_url="https://app.test",
        email_cooldown_seconds=60,
        verified_redirect_delay_seconds=2.0,
        client_state_database_url="sqlite:///:memory:",
    )


@pytest.fixture
def identity():
    return FakeIdentityService()


@pytest.fixture
def store():
    return MemoryKeyValueStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rate_limiter(store, clock):
    return EmailRateLimiter(store, cooldown_seconds=60, clock=clock)


@pytest_asyncio.fixture
async def controller(identity, settings):
    controller = SessionController(identity, settings)
    await controller.init()
    await asyncio.wait_for(controller.ready(), timeout=1)
    yield controller
    controller.dispose()
