# summarizer_auth/services/auth/verification_gate.py
from __future__ import annotations

from enum import Enum
from typing import Callable

from summarizer_auth.schemas.auth import AuthSnapshot
from summarizer_auth.schemas.identity import Session, User
from summarizer_auth.services.identity.events import Subscription

SIGN_IN_PATH = "/signin"
VERIFICATION_PATH = "/email-verification"


class GateDecision(str, Enum):
    LOADING = "loading"
    REDIRECT_SIGN_IN = "redirect-sign-in"
    REDIRECT_VERIFICATION = "redirect-verification"
    RENDER = "render"


def evaluate_gate(
    user: User | None,
    session: Session | None,
    loading: bool,
    *,
    require_verification: bool = False,
) -> GateDecision:
    """
    依目前狀態決定受保護內容能否顯示。

    - 還在 loading：顯示載入中
    - 沒有 user：導向登入
    - 需要驗證但 Email 尚未確認：導向驗證頁
    - 其他：顯示內容
    """
    if loading:
        return GateDecision.LOADING
    if user is None:
        return GateDecision.REDIRECT_SIGN_IN
    if require_verification and user.email_confirmed_at is None:
        return GateDecision.REDIRECT_VERIFICATION
    return GateDecision.RENDER


class VerificationGate:
    """
    觀察 SessionController 的守門員，每次狀態改變就重新判斷。

    只讀取狀態，不會修改 SessionController。
    """

    def __init__(
        self,
        controller,
        *,
        require_verification: bool = False,
        sign_in_path: str = SIGN_IN_PATH,
        verification_path: str = VERIFICATION_PATH,
        on_change: Callable[[GateDecision], None] | None = None,
    ) -> None:
        self._controller = controller
        self.require_verification = require_verification
        self.sign_in_path = sign_in_path
        self.verification_path = verification_path
        self._on_change = on_change
        self._subscription: Subscription | None = None
        self.decision = self._evaluate(controller.snapshot())

    def _evaluate(self, snapshot: AuthSnapshot) -> GateDecision:
        return evaluate_gate(
            snapshot.user,
            snapshot.session,
            snapshot.loading,
            require_verification=self.require_verification,
        )

    def attach(self) -> None:
        if self._subscription is None:
            self._subscription = self._controller.subscribe(self._handle_snapshot)
        self._handle_snapshot(self._controller.snapshot())

    def detach(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _handle_snapshot(self, snapshot: AuthSnapshot) -> None:
        decision = self._evaluate(snapshot)
        if decision == self.decision:
            return
        self.decision = decision
        if self._on_change is not None:
            self._on_change(decision)

    @property
    def can_render(self) -> bool:
        return self.decision == GateDecision.RENDER

    @property
    def redirect_to(self) -> str | None:
        if self.decision == GateDecision.REDIRECT_SIGN_IN:
            return self.sign_in_path
        if self.decision == GateDecision.REDIRECT_VERIFICATION:
            return self.verification_path
        return None
