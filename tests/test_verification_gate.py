import pytest

from summarizer_auth.schemas.identity import AuthEventType
from summarizer_auth.services.auth.verification_gate import (
    GateDecision,
    VerificationGate,
    evaluate_gate,
)

from tests.conftest import make_session, make_user


@pytest.mark.parametrize(
    "user,loading,require_verification,expected",
    [
        (None, True, False, GateDecision.LOADING),
        (make_user(confirmed=True), True, True, GateDecision.LOADING),
        (None, False, False, GateDecision.REDIRECT_SIGN_IN),
        (None, False, True, GateDecision.REDIRECT_SIGN_IN),
        (make_user(confirmed=False), False, True, GateDecision.REDIRECT_VERIFICATION),
        (make_user(confirmed=False), False, False, GateDecision.RENDER),
        (make_user(confirmed=True), False, True, GateDecision.RENDER),
    ],
)
def test_evaluate_gate(user, loading, require_verification, expected):
    session = make_session() if user is not None else None

    decision = evaluate_gate(user, session, loading, require_verification=require_verification)

    assert decision == expected


@pytest.mark.asyncio
async def test_gate_follows_controller_changes(controller, identity):
    decisions = []
    gate = VerificationGate(controller, require_verification=True, on_change=decisions.append)
    gate.attach()

    assert gate.decision == GateDecision.REDIRECT_SIGN_IN
    assert gate.redirect_to == "/signin"

    identity.emit(AuthEventType.SIGNED_IN, make_session(confirmed=False))
    assert gate.decision == GateDecision.REDIRECT_VERIFICATION
    assert gate.redirect_to == "/email-verification"

    identity.emit(AuthEventType.USER_UPDATED, make_session(confirmed=True))
    assert gate.can_render is True
    assert gate.redirect_to is None

    identity.emit(AuthEventType.SIGNED_OUT, None)
    assert decisions == [
        GateDecision.REDIRECT_VERIFICATION,
        GateDecision.RENDER,
        GateDecision.REDIRECT_SIGN_IN,
    ]
    gate.detach()


@pytest.mark.asyncio
async def test_gate_never_mutates_controller(controller, identity):
    identity.emit(AuthEventType.SIGNED_IN, make_session(confirmed=False))
    before = controller.snapshot()

    gate = VerificationGate(controller, require_verification=True)
    gate.attach()
    gate.detach()

    assert controller.snapshot() == before


@pytest.mark.asyncio
async def test_detached_gate_stops_updating(controller, identity):
    gate = VerificationGate(controller)
    gate.attach()
    gate.detach()

    identity.emit(AuthEventType.SIGNED_IN, make_session())

    assert gate.decision == GateDecision.REDIRECT_SIGN_IN
