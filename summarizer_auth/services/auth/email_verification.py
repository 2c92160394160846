# summarizer_auth/services/auth/email_verification.py
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Protocol

from summarizer_auth.core.settings import AuthSettings
from summarizer_auth.schemas.auth import AuthResult, VerificationOut
from summarizer_auth.security import normalize_email, parse_auth_params, scrub_auth_params
from summarizer_auth.services.auth.cooldown_store import (
    PENDING_EMAIL_KEY,
    VERIFICATION_RESEND_KEY,
    KeyValueStore,
)
from summarizer_auth.services.auth.rate_limit import EmailRateLimiter
from summarizer_auth.services.auth.session_controller import SessionController
from summarizer_auth.services.auth.verification_gate import SIGN_IN_PATH

logger = logging.getLogger(__name__)

# 驗證連結上 type 參數的值：只有「註冊確認」才進入驗證流程
SIGNUP_LINK_TYPE = "signup"


class VerificationState(str, Enum):
    AWAITING_LINK = "awaiting-link"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    FAILED = "failed"


class Navigator(Protocol):
    """瀏覽器網址列 / 導頁的抽象介面。"""

    def replace_url(self, url: str) -> None:
        """改寫目前網址但不新增瀏覽紀錄。"""
        ...

    def navigate(self, url: str) -> None: ...


class RecordingNavigator:
    """只記錄網址變化的 Navigator，給 API 層與測試使用。"""

    def __init__(self, current_url: str | None = None) -> None:
        self.current_url = current_url
        self.navigations: list[str] = []

    def replace_url(self, url: str) -> None:
        self.current_url = url

    def navigate(self, url: str) -> None:
        self.navigations.append(url)
        self.current_url = url

    @property
    def last_navigation(self) -> str | None:
        return self.navigations[-1] if self.navigations else None


class VerificationFlow:
    """
    Email 驗證連結的處理流程。

    狀態：awaiting-link → verifying → verified / failed

    - 連結同時帶 access_token、refresh_token 且 type=signup 才會進入 verifying
    - 用過的 token 一律從網址列移除（成功或失敗都一樣），避免從瀏覽紀錄 / 書籤重放
    - verified：清掉待驗證 Email，延遲幾秒後導回首頁
    - failed：只提供「重新寄送」（受冷卻控管）與「回到登入頁」
    """

    def __init__(
        self,
        controller: SessionController,
        rate_limiter: EmailRateLimiter,
        store: KeyValueStore,
        navigator: Navigator,
        settings: AuthSettings,
        *,
        sign_in_path: str = SIGN_IN_PATH,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._controller = controller
        self._rate_limiter = rate_limiter
        self._store = store
        self._navigator = navigator
        self._settings = settings
        self._sign_in_path = sign_in_path
        self._sleep = sleep

        self.state = VerificationState.AWAITING_LINK
        self.states: list[VerificationState] = [VerificationState.AWAITING_LINK]
        self.email: str | None = None
        self.error: str | None = None
        self.redirect_to: str | None = None

        self._redirect_task: asyncio.Task | None = None
        self._consumed_tokens: tuple[str, str] | None = None
        self._disposed = False

    # === 待驗證 Email ===

    @property
    def pending_email(self) -> str | None:
        return self._store.get(PENDING_EMAIL_KEY)

    def remember_pending_email(self, email: str) -> None:
        """註冊成功後記下 Email，之後沒帶網址參數進驗證頁時可以預先帶入。"""
        normalized = normalize_email(email)
        if normalized:
            self._store.set(PENDING_EMAIL_KEY, normalized)
            self.email = normalized

    def reset(self) -> None:
        """新的註冊開始：回到 awaiting-link，清掉上一次驗證留下的狀態。"""
        self._cancel_redirect()
        self._redirect_task = None
        self.state = VerificationState.AWAITING_LINK
        self.states = [VerificationState.AWAITING_LINK]
        self.email = None
        self.error = None
        self.redirect_to = None
        self._consumed_tokens = None

    # === 狀態轉換 ===

    def _transition(self, state: VerificationState) -> None:
        if state == self.state:
            return
        logger.debug("Verification flow: %s -> %s", self.state.value, state.value)
        self.state = state
        self.states.append(state)

    def _arm_resend_cooldown(self) -> None:
        # 剛寄出驗證信（或剛失敗）時先進入冷卻，倒數結束才能重新寄送
        if self._rate_limiter.can_send(VERIFICATION_RESEND_KEY):
            self._rate_limiter.start(VERIFICATION_RESEND_KEY)

    async def handle_visit(self, url: str) -> VerificationState:
        """處理進入驗證頁的網址（可能帶有驗證連結的 token）。"""
        if self.state == VerificationState.VERIFYING:
            return self.state

        params = parse_auth_params(url)
        access_token = params.get("access_token")
        refresh_token = params.get("refresh_token")
        link_type = params.get("type")
        has_link = bool(access_token and refresh_token and link_type == SIGNUP_LINK_TYPE)

        if self.state in (VerificationState.VERIFIED, VerificationState.FAILED):
            if not has_link or (access_token, refresh_token) == self._consumed_tokens:
                if params:
                    self._navigator.replace_url(scrub_auth_params(url))
                return self.state
            # 另一組 token：視為新的驗證連結，從頭開始
            self.reset()

        self.email = normalize_email(params.get("email")) or self.pending_email or self.email

        if not has_link:
            if params:
                self._navigator.replace_url(scrub_auth_params(url))
            if self.state == VerificationState.AWAITING_LINK:
                self._arm_resend_cooldown()
            return self.state

        self._transition(VerificationState.VERIFYING)
        self._consumed_tokens = (access_token, refresh_token)
        try:
            result = await self._controller.verify_email(access_token, refresh_token)
        finally:
            self._navigator.replace_url(scrub_auth_params(url))

        if result.error:
            self.error = result.error
            self._transition(VerificationState.FAILED)
            self._arm_resend_cooldown()
            return self.state

        self.error = None
        self._store.delete(PENDING_EMAIL_KEY)
        self._transition(VerificationState.VERIFIED)
        self._schedule_redirect()
        return self.state

    # === verified：延遲導頁 ===

    def _schedule_redirect(self) -> None:
        self._redirect_task = asyncio.create_task(self._redirect_after_delay())

    async def _redirect_after_delay(self) -> None:
        await self._sleep(self._settings.verified_redirect_delay_seconds)
        if self._disposed:
            return
        self.redirect_to = self._settings.landing_url
        self._navigator.navigate(self.redirect_to)

    async def wait_for_redirect(self) -> None:
        if self._redirect_task is not None:
            await self._redirect_task

    # === awaiting-link / failed 的操作 ===

    @property
    def can_resend(self) -> bool:
        if self.state not in (VerificationState.AWAITING_LINK, VerificationState.FAILED):
            return False
        return self._rate_limiter.can_send(VERIFICATION_RESEND_KEY)

    async def resend(self) -> AuthResult:
        if self.state not in (VerificationState.AWAITING_LINK, VerificationState.FAILED):
            return AuthResult(error="Your email address is already being verified.")

        remaining = self._rate_limiter.remaining(VERIFICATION_RESEND_KEY)
        if remaining > 0:
            return AuthResult(
                error=f"Please wait {EmailRateLimiter.format_time(remaining)} before requesting another email."
            )

        result = await self._controller.resend_verification(self.email or self.pending_email)
        if self._disposed:
            # 畫面已關閉：結果直接丟棄
            return result

        if result.ok:
            self._rate_limiter.start(VERIFICATION_RESEND_KEY)
        return result

    def back_to_sign_in(self) -> None:
        self._navigator.navigate(self._sign_in_path)

    def status(self) -> VerificationOut:
        return VerificationOut(
            state=self.state.value,
            email=self.email or self.pending_email,
            error=self.error,
            redirect_to=self.redirect_to,
            resend=self._rate_limiter.status(VERIFICATION_RESEND_KEY),
        )

    def _cancel_redirect(self) -> None:
        if self._redirect_task is not None and not self._redirect_task.done():
            self._redirect_task.cancel()

    def dispose(self) -> None:
        self._disposed = True
        self._cancel_redirect()
