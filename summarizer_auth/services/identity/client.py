# summarizer_auth/services/identity/client.py
from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Protocol
from urllib.parse import urlencode

import aiohttp
import jwt
from pydantic import ValidationError

from summarizer_auth.core.settings import AuthSettings
from summarizer_auth.schemas.identity import (
    AuthChangeEvent,
    AuthEventType,
    AuthResponse,
    Session,
    User,
)
from summarizer_auth.services.auth.cooldown_store import AUTH_SESSION_KEY, KeyValueStore
from summarizer_auth.services.auth.errors import (
    IdentityUnavailableError,
    RemoteAuthError,
    classify_remote_error,
)
from summarizer_auth.services.identity.events import EventChannel, Subscription

logger = logging.getLogger(__name__)

# access token 到期前幾秒就視為過期，提早 refresh
EXPIRY_LEEWAY_SECONDS = 10
DEFAULT_SESSION_LIFETIME_SECONDS = 3600


class IdentityService(Protocol):
    """Session Controller 依賴的遠端驗證服務介面。"""

    async def sign_up(
        self,
        email: str,
        password: str,
        *,
        redirect_url: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuthResponse: ...

    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse: ...

    async def sign_in_with_oauth(
        self,
        provider: str,
        *,
        redirect_url: str | None = None,
        query_params: dict[str, str] | None = None,
    ) -> str: ...

    async def reset_password_for_email(self, email: str, *, redirect_url: str | None = None) -> None: ...

    async def resend(self, type: str, email: str, *, redirect_url: str | None = None) -> None: ...

    async def set_session(self, access_token: str, refresh_token: str) -> AuthResponse: ...

    async def get_session(self) -> Session | None: ...

    async def update_user(
        self,
        *,
        password: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> User: ...

    def on_auth_state_change(
        self, callback: Callable[[AuthChangeEvent], None]
    ) -> Subscription: ...

    async def sign_out(self) -> None: ...


# === 回應解析 ===


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def error_from_response(status: int, body: str) -> RemoteAuthError:
    """把 Auth REST API 的錯誤回應轉成 RemoteAuthError（rate limit 會轉成子類別）。"""
    message = body or f"Identity service responded with HTTP {status}."
    code = None

    try:
        parsed = json.loads(body) if body else {}
    except ValueError:
        parsed = {}

    if isinstance(parsed, dict):
        message = (
            parsed.get("msg")
            or parsed.get("error_description")
            or parsed.get("message")
            or (parsed.get("error") if isinstance(parsed.get("error"), str) else None)
            or message
        )
        for field in ("error_code", "code", "error"):
            value = parsed.get(field)
            if isinstance(value, str) and value:
                code = value
                break

    return classify_remote_error(RemoteAuthError(str(message), status=status, code=code))


def parse_user(data: dict[str, Any] | None) -> User | None:
    if not data or not data.get("id"):
        return None
    try:
        return User.model_validate(data)
    except ValidationError as exc:
        raise IdentityUnavailableError("Identity service returned an invalid user.") from exc


def _token_expiry(access_token: str) -> datetime | None:
    """只讀 access token 的 exp，不驗簽（簽章由遠端服務負責）。"""
    try:
        claims = jwt.decode(access_token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return None

    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc)


def parse_session(data: dict[str, Any] | None, *, now: datetime | None = None) -> Session | None:
    """解析 token 回應；沒有 access_token（例如需要先驗證 Email）時回傳 None。"""
    if not data or not data.get("access_token") or not data.get("refresh_token"):
        return None

    user = parse_user(data.get("user"))
    if user is None:
        raise IdentityUnavailableError("Identity service returned a session without a user.")

    now = now or _utcnow()
    if data.get("expires_at"):
        expires_at = datetime.fromtimestamp(int(data["expires_at"]), tz=timezone.utc)
    elif data.get("expires_in"):
        expires_at = now + timedelta(seconds=int(data["expires_in"]))
    else:
        expires_at = _token_expiry(data["access_token"]) or (
            now + timedelta(seconds=DEFAULT_SESSION_LIFETIME_SECONDS)
        )

    return Session(
        access_token=data["access_token"],
        refresh_token=data["refresh_token"],
        expires_at=expires_at,
        token_type=data.get("token_type") or "bearer",
        user=user,
    )


class GoTrueIdentityClient:
    """
    封裝託管驗證服務（GoTrue / Supabase Auth）的 REST API。

    - 目前的 session 存在注入的 KeyValueStore（key: auth-session），重新啟動後仍可取回
    - 狀態改變時依序發出 AuthChangeEvent，Session Controller 透過 on_auth_state_change 訂閱
    - HTTP 錯誤一律轉成 RemoteAuthError；連線失敗則是 IdentityUnavailableError
    """

    def __init__(self, settings: AuthSettings, store: KeyValueStore) -> None:
        self._base_url = settings.auth_base_url
        self._anon_key = settings.identity_anon_key
        self._timeout = aiohttp.ClientTimeout(total=settings.identity_timeout_seconds)
        self._store = store
        self._events: EventChannel[AuthChangeEvent] = EventChannel("auth-state")

    # === HTTP ===

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        payload: dict[str, Any] | None = None,
        access_token: str | None = None,
    ) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        headers = {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {access_token or self._anon_key}",
        }
        # 不要把 payload 印到 log，裡面可能有密碼
        logger.debug("Identity request %s %s", method, path)

        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as http:
                async with http.request(
                    method,
                    url,
                    params={k: v for k, v in (params or {}).items() if v},
                    json=payload,
                    headers=headers,
                ) as response:
                    status = response.status
                    body = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise IdentityUnavailableError(
                "Unable to reach the identity service."
            ) from exc

        if status >= 400:
            raise error_from_response(status, body)

        if not body:
            return {}
        try:
            parsed = json.loads(body)
        except ValueError as exc:
            raise IdentityUnavailableError(
                "Identity service returned an invalid response."
            ) from exc
        return parsed if isinstance(parsed, dict) else {}

    # === 本地 session 保存 ===

    def _load_session(self) -> Session | None:
        raw = self._store.get(AUTH_SESSION_KEY)
        if not raw:
            return None
        try:
            return Session.model_validate_json(raw)
        except ValidationError:
            logger.warning("Stored session is unreadable, discarding it")
            self._store.delete(AUTH_SESSION_KEY)
            return None

    def _save_session(self, session: Session, event: AuthEventType) -> None:
        self._store.set(AUTH_SESSION_KEY, session.model_dump_json())
        self._events.emit(AuthChangeEvent(type=event, session=session))

    def _drop_session(self) -> None:
        self._store.delete(AUTH_SESSION_KEY)
        self._events.emit(AuthChangeEvent(type=AuthEventType.SIGNED_OUT, session=None))

    # === IdentityService ===

    def on_auth_state_change(self, callback: Callable[[AuthChangeEvent], None]) -> Subscription:
        return self._events.subscribe(callback)

    async def sign_up(self, email, password, *, redirect_url=None, metadata=None) -> AuthResponse:
        data = await self._request(
            "POST",
            "/signup",
            params={"redirect_to": redirect_url} if redirect_url else None,
            payload={"email": email, "password": password, "data": metadata or {}},
        )

        session = parse_session(data)
        if session is not None:
            # 自動確認的專案會直接回傳 session
            self._save_session(session, AuthEventType.SIGNED_IN)
            return AuthResponse(user=session.user, session=session)

        # 需要 Email 驗證時只回傳 user（有些版本包在 "user" 欄位裡）
        user = parse_user(data) or parse_user(data.get("user"))
        return AuthResponse(user=user, session=None)

    async def sign_in_with_password(self, email, password) -> AuthResponse:
        data = await self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            payload={"email": email, "password": password},
        )
        session = parse_session(data)
        if session is None:
            raise IdentityUnavailableError("Identity service did not return a session.")

        self._save_session(session, AuthEventType.SIGNED_IN)
        return AuthResponse(user=session.user, session=session)

    async def sign_in_with_oauth(self, provider, *, redirect_url=None, query_params=None) -> str:
        # OAuth 只需要組出導向網址，實際登入在瀏覽器導回後以 set_session 完成
        params = {"provider": provider}
        if redirect_url:
            params["redirect_to"] = redirect_url
        params.update(query_params or {})
        return f"{self._base_url}/authorize?{urlencode(params)}"

    async def reset_password_for_email(self, email, *, redirect_url=None) -> None:
        await self._request(
            "POST",
            "/recover",
            params={"redirect_to": redirect_url} if redirect_url else None,
            payload={"email": email},
        )

    async def resend(self, type, email, *, redirect_url=None) -> None:
        await self._request(
            "POST",
            "/resend",
            params={"redirect_to": redirect_url} if redirect_url else None,
            payload={"type": type, "email": email},
        )

    async def refresh_session(self, refresh_token: str) -> Session:
        data = await self._request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            payload={"refresh_token": refresh_token},
        )
        session = parse_session(data)
        if session is None:
            raise IdentityUnavailableError("Identity service did not return a session.")

        self._save_session(session, AuthEventType.TOKEN_REFRESHED)
        return session

    async def set_session(self, access_token, refresh_token) -> AuthResponse:
        """
        以驗證連結帶回來的 token 組建立 session。

        - access token 尚未過期：向 /user 確認 token 有效並取得使用者
        - 已過期或遠端拒絕：改用 refresh token 換一組新的
        """
        expires_at = _token_expiry(access_token)
        now = _utcnow()

        if expires_at is not None and expires_at - timedelta(seconds=EXPIRY_LEEWAY_SECONDS) > now:
            try:
                data = await self._request("GET", "/user", access_token=access_token)
            except RemoteAuthError as exc:
                if exc.status not in (401, 403):
                    raise
            else:
                user = parse_user(data)
                if user is None:
                    raise IdentityUnavailableError("Identity service did not return a user.")
                session = Session(
                    access_token=access_token,
                    refresh_token=refresh_token,
                    expires_at=expires_at,
                    user=user,
                )
                self._save_session(session, AuthEventType.SIGNED_IN)
                return AuthResponse(user=user, session=session)

        data = await self._request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            payload={"refresh_token": refresh_token},
        )
        session = parse_session(data)
        if session is None:
            raise IdentityUnavailableError("Identity service did not return a session.")

        self._save_session(session, AuthEventType.SIGNED_IN)
        return AuthResponse(user=session.user, session=session)

    async def get_session(self) -> Session | None:
        session = self._load_session()
        if session is None:
            return None

        if not session.is_expired(leeway_seconds=EXPIRY_LEEWAY_SECONDS):
            return session

        try:
            return await self.refresh_session(session.refresh_token)
        except IdentityUnavailableError:
            # 連不上時保留本地 session，下次再試
            raise
        except RemoteAuthError:
            logger.info("Stored session could not be refreshed, signing out locally")
            self._drop_session()
            return None

    async def update_user(self, *, password=None, data=None) -> User:
        session = self._load_session()
        if session is None:
            raise RemoteAuthError("Auth session missing!", status=401, code="session_not_found")

        payload: dict[str, Any] = {}
        if password is not None:
            payload["password"] = password
        if data is not None:
            payload["data"] = data

        body = await self._request("PUT", "/user", payload=payload, access_token=session.access_token)
        user = parse_user(body)
        if user is None:
            raise IdentityUnavailableError("Identity service did not return a user.")

        self._save_session(session.model_copy(update={"user": user}), AuthEventType.USER_UPDATED)
        return user

    async def sign_out(self) -> None:
        session = self._load_session()
        if session is not None:
            try:
                await self._request("POST", "/logout", access_token=session.access_token)
            except RemoteAuthError as exc:
                # token 已失效（401/404）時遠端本來就沒有這個 session，照樣清掉本地狀態
                if exc.status not in (401, 403, 404):
                    raise
        self._drop_session()
