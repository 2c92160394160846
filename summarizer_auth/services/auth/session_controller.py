# summarizer_auth/services/auth/session_controller.py
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from summarizer_auth.core.settings import AuthSettings
from summarizer_auth.schemas.auth import (
    AuthResult,
    AuthSnapshot,
    AuthState,
    OAuthResult,
    ResetPasswordResult,
    SignUpResult,
    VerificationStatus,
)
from summarizer_auth.schemas.identity import (
    AuthChangeEvent,
    AuthEventType,
    Session,
    User,
)
from summarizer_auth.security import ensure_valid_email, ensure_valid_new_password
from summarizer_auth.services.auth.errors import (
    AuthValidationError,
    IdentityUnavailableError,
    RemoteAuthError,
    is_rate_limited,
)
from summarizer_auth.services.identity.client import IdentityService
from summarizer_auth.services.identity.events import EventChannel, Subscription

logger = logging.getLogger(__name__)

# 重設密碼：不論帳號是否存在都回同一段文字（避免帳號被探測）
GENERIC_RESET_MESSAGE = (
    "If that email address is registered with us, we've sent you a reset link. "
    "Please check your email (including spam folder)."
)
RESET_RATE_LIMITED_MESSAGE = "Too many reset attempts. Please wait before trying again."
RESET_UNAVAILABLE_MESSAGE = "Unable to send reset email. Please try again later."
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred. Please try again later."
MISSING_EMAIL_MESSAGE = "No email address found. Please try signing up again."
MISSING_SESSION_MESSAGE = (
    "Your reset link is invalid or has expired. Please request a new one."
)

DEFAULT_OAUTH_PROVIDER = "google"


class SessionController:
    """
    管理目前使用者的登入狀態（User / Session），並提供各種驗證操作。

    設計重點：
    - 不是全域單例：由 app 啟動時建立、注入給需要的元件，結束時呼叫 dispose()
    - 訂閱遠端服務的狀態事件；事件是權威來源，本地的即時更新只是讓 UI 不用等下一個事件
    - 初始 session 查詢與事件訂閱同時開始，較晚回來的查詢不會覆蓋較新的事件狀態
    - 所有操作都不往外拋例外，一律回傳帶 error 的結果物件
    """

    def __init__(self, identity: IdentityService, settings: AuthSettings) -> None:
        self._identity = identity
        self._settings = settings

        self._user: User | None = None
        self._session: Session | None = None
        self._loading = True
        self._initialized = False

        # 每次套用新狀態就 +1，用來判斷初始查詢的結果是否已經過時
        self._revision = 0

        self._subscription: Subscription | None = None
        self._probe_task: asyncio.Task | None = None
        self._ready = asyncio.Event()
        self._observers: EventChannel[AuthSnapshot] = EventChannel("auth-snapshot")

    # === 狀態 ===

    @property
    def user(self) -> User | None:
        return self._user

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def state(self) -> AuthState:
        if not self._initialized:
            return AuthState.UNINITIALIZED
        if self._loading:
            return AuthState.LOADING
        return AuthState.AUTHENTICATED if self._session is not None else AuthState.ANONYMOUS

    @property
    def verification_status(self) -> VerificationStatus:
        if self._user is None:
            return VerificationStatus.NONE
        if self._user.email_confirmed_at is None:
            return VerificationStatus.PENDING
        return VerificationStatus.CONFIRMED

    def get_current_session(self) -> Session | None:
        return self._session

    def snapshot(self) -> AuthSnapshot:
        return AuthSnapshot(
            user=self._user,
            session=self._session,
            loading=self._loading,
            state=self.state,
        )

    def subscribe(self, listener: Callable[[AuthSnapshot], None]) -> Subscription:
        """狀態每次改變都會收到新的 AuthSnapshot（不會先送目前狀態）。"""
        return self._observers.subscribe(listener)

    def _publish(self) -> None:
        self._observers.emit(self.snapshot())

    def _apply(self, session: Session | None) -> None:
        # Session 非空時 User 一定來自同一個 session
        self._session = session
        self._user = session.user if session is not None else None
        self._revision += 1
        self._publish()

    def _finish_loading(self) -> None:
        if not self._loading:
            return
        self._loading = False
        self._ready.set()
        self._publish()

    # === 生命週期 ===

    async def init(self) -> None:
        """開始訂閱事件並查詢初始 session（不等待查詢完成）。"""
        if self._initialized:
            return

        self._initialized = True
        self._loading = True
        self._ready.clear()
        self._subscription = self._identity.on_auth_state_change(self._handle_auth_event)
        # 在建立 task 前就記下 revision：task 開始執行前抵達的事件也要算「較新」
        self._probe_task = asyncio.create_task(self._probe_initial_session(self._revision))
        self._publish()

    async def ready(self) -> None:
        """等到離開 loading 狀態。"""
        await self._ready.wait()

    def dispose(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

        if self._probe_task is not None and not self._probe_task.done():
            self._probe_task.cancel()
        self._probe_task = None

        self._initialized = False
        self._session = None
        self._user = None
        self._loading = True
        self._observers.clear()

    async def _probe_initial_session(self, revision: int) -> None:
        session: Session | None = None

        try:
            session = await self._identity.get_session()
        except RemoteAuthError as exc:
            logger.warning("Initial session lookup failed: %s", exc.message)
        except Exception:
            logger.exception("Unexpected error while getting initial session")

        if self._revision != revision:
            # 查詢期間已經有事件帶來較新的狀態，以事件為準
            logger.debug("Initial session result is stale, keeping newer state")
        elif session is not None:
            self._apply(session)

        self._finish_loading()

    def _handle_auth_event(self, event: AuthChangeEvent) -> None:
        if not self._initialized:
            return

        logger.debug("Auth state change: %s", event.type.value)

        if event.type == AuthEventType.SIGNED_OUT:
            self._apply(None)
        elif event.session is not None:
            # SIGNED_IN / TOKEN_REFRESHED / USER_UPDATED：整組 session 直接替換
            self._apply(event.session)
        else:
            # 沒有帶 session 的事件不改變狀態，但仍視為較新的狀態
            self._revision += 1

        self._finish_loading()

    # === 操作 ===

    async def sign_up(
        self,
        email: str,
        password: str,
        display_name: str | None = None,
    ) -> SignUpResult:
        """
        註冊新帳號。

        - 格式檢查交給遠端服務，錯誤訊息原樣回傳
        - 遠端若自動確認 Email 並直接給 session，這裡一定會強制登出，
          保證註冊後一律要先完成 Email 驗證
        """
        metadata = {"full_name": display_name} if display_name else None

        try:
            response = await self._identity.sign_up(
                email,
                password,
                redirect_url=self._settings.verification_redirect_url,
                metadata=metadata,
            )
        except RemoteAuthError as exc:
            logger.info("Sign up rejected by identity service: %s", exc.message)
            return SignUpResult(error=exc.message)
        except Exception:
            logger.exception("Unexpected error during sign up")
            return SignUpResult(error=UNEXPECTED_ERROR_MESSAGE)

        if response.session is not None:
            logger.info("Sign up returned an active session, signing out to force email verification")
            try:
                await self._identity.sign_out()
            except RemoteAuthError as exc:
                logger.warning("Forced sign out after sign up failed: %s", exc.message)
            except Exception:
                logger.exception("Unexpected error during forced sign out after sign up")
            # 不論遠端登出是否成功，本地一律清空
            self._apply(None)

        if response.user is None:
            return SignUpResult(requires_verification=False)

        return SignUpResult(requires_verification=True)

    async def sign_in(self, email: str, password: str) -> AuthResult:
        try:
            response = await self._identity.sign_in_with_password(email, password)
        except RemoteAuthError as exc:
            return AuthResult(error=exc.message)
        except Exception:
            logger.exception("Unexpected error during sign in")
            return AuthResult(error=UNEXPECTED_ERROR_MESSAGE)

        # 事件也會更新狀態，這裡先同步套用讓呼叫端立即看到
        if response.session is not None:
            self._apply(response.session)
        return AuthResult()

    async def sign_in_with_oauth(self, provider: str = DEFAULT_OAUTH_PROVIDER) -> OAuthResult:
        """只產生導向網址；session 會在導回後透過事件建立。"""
        try:
            url = await self._identity.sign_in_with_oauth(
                provider,
                redirect_url=self._settings.landing_url,
                query_params={"access_type": "offline", "prompt": "consent"},
            )
        except RemoteAuthError as exc:
            logger.info("OAuth sign in with %s failed: %s", provider, exc.message)
            return OAuthResult(error=exc.message)
        except Exception:
            logger.exception("Unexpected error during OAuth sign in")
            return OAuthResult(error=UNEXPECTED_ERROR_MESSAGE)

        return OAuthResult(url=url)

    async def reset_password(self, email: str) -> ResetPasswordResult:
        """
        寄送重設密碼信。

        回應不能透露 Email 是否已註冊：
        - 成功、查無帳號、一般錯誤 → 同一段成功訊息
        - 只有 rate limit 會另外回報（不涉及帳號是否存在）
        - 連不上服務或非預期錯誤 → 統一的「請稍後再試」
        """
        try:
            normalized = ensure_valid_email(email)
        except AuthValidationError as exc:
            return ResetPasswordResult(error=exc.message)

        try:
            await self._identity.reset_password_for_email(
                normalized,
                redirect_url=self._settings.password_reset_redirect_url,
            )
        except IdentityUnavailableError as exc:
            logger.warning("Password reset could not reach identity service: %s", exc.message)
            return ResetPasswordResult(error=RESET_UNAVAILABLE_MESSAGE)
        except RemoteAuthError as exc:
            if is_rate_limited(exc):
                return ResetPasswordResult(error=RESET_RATE_LIMITED_MESSAGE, rate_limited=True)
            # 真正的錯誤只留在 log，對外回覆與成功相同
            logger.info("Password reset error suppressed: %s", exc.message)
            return ResetPasswordResult(message=GENERIC_RESET_MESSAGE)
        except Exception:
            logger.exception("Unexpected error during password reset")
            return ResetPasswordResult(error=RESET_UNAVAILABLE_MESSAGE)

        return ResetPasswordResult(message=GENERIC_RESET_MESSAGE)

    async def verify_email(self, access_token: str, refresh_token: str) -> AuthResult:
        """用驗證連結上的 token 組換成正式 session（token 格式交給遠端判斷）。"""
        try:
            response = await self._identity.set_session(access_token, refresh_token)
        except RemoteAuthError as exc:
            logger.info("Email verification failed: %s", exc.message)
            return AuthResult(error=exc.message)
        except Exception:
            logger.exception("Unexpected error during email verification")
            return AuthResult(error=UNEXPECTED_ERROR_MESSAGE)

        if response.session is not None:
            self._apply(response.session)
        return AuthResult()

    async def resend_verification(self, email: str | None) -> AuthResult:
        """重新寄送註冊驗證信（冷卻控管由呼叫端的 EmailRateLimiter 負責）。"""
        email = (email or "").strip()
        if not email:
            return AuthResult(error=MISSING_EMAIL_MESSAGE)

        try:
            await self._identity.resend(
                "signup",
                email,
                redirect_url=self._settings.verification_redirect_url,
            )
        except RemoteAuthError as exc:
            return AuthResult(error=exc.message)
        except Exception:
            logger.exception("Unexpected error while resending verification email")
            return AuthResult(error=UNEXPECTED_ERROR_MESSAGE)

        return AuthResult()

    async def update_password(self, password: str, confirm_password: str) -> AuthResult:
        """重設密碼連結登入後設定新密碼。"""
        try:
            ensure_valid_new_password(password, confirm_password)
        except AuthValidationError as exc:
            return AuthResult(error=exc.message)

        if self._session is None:
            return AuthResult(error=MISSING_SESSION_MESSAGE)

        try:
            await self._identity.update_user(password=password)
        except RemoteAuthError as exc:
            return AuthResult(error=exc.message)
        except Exception:
            logger.exception("Unexpected error while updating password")
            return AuthResult(error=UNEXPECTED_ERROR_MESSAGE)

        return AuthResult()

    async def sign_out(self) -> None:
        try:
            await self._identity.sign_out()
        except RemoteAuthError as exc:
            logger.warning("Sign out failed: %s", exc.message)
            return
        except Exception:
            logger.exception("Unexpected error during sign out")
            return

        # 不等事件，立即清空本地狀態（重複清空也沒關係）
        self._apply(None)
