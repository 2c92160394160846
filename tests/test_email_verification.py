import asyncio

import pytest

from summarizer_auth.schemas.auth import AuthState
from summarizer_auth.services.auth.cooldown_store import PENDING_EMAIL_KEY, VERIFICATION_RESEND_KEY
from summarizer_auth.services.auth.email_verification import (
    RecordingNavigator,
    VerificationFlow,
    VerificationState,
)

LINK = (
    "https://app.test/email-verification"
    "?access_token=acc&refresh_token=ref&type=signup&email=a%40b.com&lang=en"
)
BAD_LINK = LINK.replace("access_token=acc", "access_token=expired")


@pytest.fixture
def navigator():
    return RecordingNavigator()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def flow(controller, rate_limiter, store, navigator, settings, sleeps):
    async def fake_sleep(seconds):
        sleeps.append(seconds)

    flow = VerificationFlow(controller, rate_limiter, store, navigator, settings, sleep=fake_sleep)
    yield flow
    flow.dispose()


@pytest.fixture
def pending_signup(identity):
    identity.register("a@b.com", confirmed=False)
    identity.verification_links[("acc", "ref")] = "a@b.com"


@pytest.mark.asyncio
async def test_valid_link_verifies_and_redirects(flow, controller, navigator, store, sleeps, pending_signup):
    store.set(PENDING_EMAIL_KEY, "a@b.com")

    state = await flow.handle_visit(LINK)
    await flow.wait_for_redirect()

    assert state == VerificationState.VERIFIED
    assert flow.states == [
        VerificationState.AWAITING_LINK,
        VerificationState.VERIFYING,
        VerificationState.VERIFIED,
    ]
    assert controller.state == AuthState.AUTHENTICATED
    assert store.get(PENDING_EMAIL_KEY) is None
    assert sleeps == [2.0]
    assert navigator.last_navigation == "https://app.test/"
    assert flow.redirect_to == "https://app.test/"


@pytest.mark.asyncio
async def test_tokens_are_scrubbed_after_success(flow, navigator, pending_signup):
    await flow.handle_visit(LINK)

    assert navigator.current_url == "https://app.test/email-verification?lang=en"
    await flow.wait_for_redirect()
    assert all("access_token" not in u for u in navigator.navigations)


@pytest.mark.asyncio
async def test_invalid_link_fails_and_scrubs_tokens(flow, navigator, rate_limiter):
    state = await flow.handle_visit(BAD_LINK)

    assert state == VerificationState.FAILED
    assert flow.error is not None
    assert navigator.current_url == "https://app.test/email-verification?lang=en"
    # resend only becomes available after the cooldown
    assert flow.can_resend is False
    assert rate_limiter.remaining(VERIFICATION_RESEND_KEY) == 60


@pytest.mark.asyncio
async def test_failed_flow_allows_resend_after_cooldown(flow, identity, clock):
    await flow.handle_visit(BAD_LINK)

    early = await flow.resend()
    assert early.error is not None
    assert "resend" not in identity.call_names()

    clock.advance(60)
    assert flow.can_resend is True

    result = await flow.resend()
    assert result.error is None
    assert identity.calls[-1][:3] == ("resend", "signup", "a@b.com")
    assert flow.can_resend is False


@pytest.mark.asyncio
async def test_failed_flow_back_to_sign_in(flow, navigator):
    await flow.handle_visit(BAD_LINK)

    flow.back_to_sign_in()

    assert navigator.last_navigation == "/signin"


@pytest.mark.asyncio
async def test_missing_token_keeps_awaiting_link(flow, navigator, store):
    store.set(PENDING_EMAIL_KEY, "pending@x.com")

    state = await flow.handle_visit("https://app.test/email-verification")

    assert state == VerificationState.AWAITING_LINK
    assert flow.states == [VerificationState.AWAITING_LINK]
    assert flow.email == "pending@x.com"
    assert flow.can_resend is False
    assert navigator.current_url is None


@pytest.mark.asyncio
async def test_wrong_link_type_does_not_verify(flow, identity, navigator):
    link = LINK.replace("type=signup", "type=recovery")

    state = await flow.handle_visit(link)

    assert state == VerificationState.AWAITING_LINK
    assert "set_session" not in identity.call_names()
    assert "access_token" not in navigator.current_url


@pytest.mark.asyncio
async def test_tokens_in_fragment_are_accepted(flow, pending_signup, navigator):
    link = "https://app.test/email-verification#access_token=acc&refresh_token=ref&type=signup"

    state = await flow.handle_visit(link)

    assert state == VerificationState.VERIFIED
    assert navigator.current_url.startswith("https://app.test/email-verification")
    assert "access_token" not in navigator.current_url


@pytest.mark.asyncio
async def test_verified_flow_does_not_reenter(flow, pending_signup, identity):
    await flow.handle_visit(LINK)
    calls_before = len(identity.calls)

    state = await flow.handle_visit("https://app.test/email-verification")

    assert state == VerificationState.VERIFIED
    assert len(identity.calls) == calls_before
    assert VerificationState.AWAITING_LINK not in flow.states[1:]


@pytest.mark.asyncio
async def test_remember_pending_email_prefills_status(flow, store):
    flow.remember_pending_email("  New@X.com ")

    assert store.get(PENDING_EMAIL_KEY) == "new@x.com"
    status = flow.status()
    assert status.email == "new@x.com"
    assert status.state == "awaiting-link"


@pytest.mark.asyncio
async def test_resend_without_email_reports_error(flow):
    result = await flow.resend()

    assert result.error == "No email address found. Please try signing up again."


@pytest.mark.asyncio
async def test_disposed_flow_cancels_pending_redirect(controller, rate_limiter, store, navigator, settings, pending_signup):
    gate = asyncio.Event()

    async def blocked_sleep(seconds):
        await gate.wait()

    flow = VerificationFlow(controller, rate_limiter, store, navigator, settings, sleep=blocked_sleep)
    await flow.handle_visit(LINK)
    flow.dispose()

    with pytest.raises(asyncio.CancelledError):
        await flow.wait_for_redirect()
    assert navigator.navigations == []


@pytest.mark.asyncio
async def test_reset_starts_a_new_verification(flow, identity, store, navigator, pending_signup):
    await flow.handle_visit(LINK)
    assert flow.state == VerificationState.VERIFIED

    flow.reset()
    flow.remember_pending_email("second@x.com")
    identity.register("second@x.com", confirmed=False)
    identity.verification_links[("acc2", "ref2")] = "second@x.com"

    status = flow.status()
    assert status.state == "awaiting-link"
    assert status.email == "second@x.com"
    assert status.error is None
    assert status.redirect_to is None

    second_link = "https://app.test/email-verification?access_token=acc2&refresh_token=ref2&type=signup"
    state = await flow.handle_visit(second_link)

    assert state == VerificationState.VERIFIED
    assert ("set_session", "acc2", "ref2") in identity.calls
    assert flow.states == [
        VerificationState.AWAITING_LINK,
        VerificationState.VERIFYING,
        VerificationState.VERIFIED,
    ]
    assert store.get(PENDING_EMAIL_KEY) is None


@pytest.mark.asyncio
async def test_new_link_after_verified_is_consumed(flow, identity, pending_signup):
    await flow.handle_visit(LINK)
    identity.register("second@x.com", confirmed=False)
    identity.verification_links[("acc2", "ref2")] = "second@x.com"

    state = await flow.handle_visit(
        "https://app.test/email-verification?access_token=acc2&refresh_token=ref2&type=signup"
    )

    assert state == VerificationState.VERIFIED
    assert ("set_session", "acc2", "ref2") in identity.calls


@pytest.mark.asyncio
async def test_same_link_is_not_consumed_twice(flow, identity, navigator, pending_signup):
    await flow.handle_visit(LINK)
    calls_before = len(identity.calls)

    state = await flow.handle_visit(LINK)

    assert state == VerificationState.VERIFIED
    assert len(identity.calls) == calls_before
    assert "access_token" not in navigator.current_url


@pytest.mark.asyncio
async def test_reset_cancels_pending_redirect(controller, rate_limiter, store, navigator, settings, pending_signup):
    gate = asyncio.Event()

    async def blocked_sleep(seconds):
        await gate.wait()

    flow = VerificationFlow(controller, rate_limiter, store, navigator, settings, sleep=blocked_sleep)
    await flow.handle_visit(LINK)
    flow.reset()
    gate.set()
    await asyncio.sleep(0)

    assert navigator.navigations == []
    assert flow.redirect_to is None
    flow.dispose()
