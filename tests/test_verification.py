import asyncio

from challenge_py.client.errors import PhoneAuthError
from challenge_py.config.state import VerificationStore
from challenge_py.session.state import SessionEvent, SessionMachine, SessionState
from challenge_py.session.verification import VerificationGate
from fakes import FakeProvider

PHONE = "+919876543210"


class Monotonic:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def make_gate(state, provider, **kwargs):
    return VerificationGate(provider, VerificationStore(state), 42, **kwargs)


def test_otp_flow_writes_grant_and_restore_skips_otp(state, provider):
    gate = make_gate(state, provider)

    assert asyncio.run(gate.request_code("9876543210"))
    assert provider.sent == [PHONE]
    assert gate.state is SessionState.AWAITING_OTP

    assert asyncio.run(gate.confirm_code("123456"))
    assert gate.state is SessionState.VERIFIED
    assert gate.verified_phone == PHONE
    grant = state.get("verifications")[f"{PHONE}_42"]
    assert grant["challengeId"] == "42"

    # a fresh session over the same storage restores without sending a code
    fresh = FakeProvider()
    restored = make_gate(state, fresh)
    assert restored.restore() == PHONE
    assert restored.state is SessionState.VERIFIED
    assert fresh.sent == []


def test_wrong_code_keeps_waiting(state, provider):
    gate = make_gate(state, provider)
    asyncio.run(gate.request_code(PHONE))

    assert not asyncio.run(gate.confirm_code("000000"))
    assert gate.error == "Invalid OTP code. Please try again."
    assert gate.state is SessionState.AWAITING_OTP
    assert state.get("verifications") == {}

    assert asyncio.run(gate.confirm_code("123456"))


def test_malformed_code_is_rejected_before_provider(state, provider):
    gate = make_gate(state, provider)
    asyncio.run(gate.request_code(PHONE))

    assert not asyncio.run(gate.confirm_code("12ab"))
    assert gate.error == "Please enter a valid 6-digit OTP code"
    assert provider.confirmed == []


def test_confirm_without_request_fails(state, provider):
    gate = make_gate(state, provider)
    assert not asyncio.run(gate.confirm_code("123456"))
    assert gate.error == "OTP session expired. Please request a new OTP."


def test_invalid_phone_messages(state, provider):
    gate = make_gate(state, provider)

    assert not asyncio.run(gate.request_code("   "))
    assert gate.error == "Please enter your phone number"

    assert not asyncio.run(gate.request_code("12345"))
    assert gate.error.startswith("Please enter a valid phone number")
    assert provider.sent == []
    assert gate.state is SessionState.PHONE_ENTRY


def test_provider_errors_are_mapped(state, provider):
    gate = make_gate(state, provider)
    provider.send_error = PhoneAuthError("auth/too-many-requests", "TOO_MANY_ATTEMPTS_TRY_LATER")

    assert not asyncio.run(gate.request_code(PHONE))
    assert gate.error == "Too many requests. Please wait a few minutes and try again."
    assert not gate.loading

    provider.send_error = None
    asyncio.run(gate.request_code(PHONE))
    provider.confirm_error = PhoneAuthError("auth/code-expired", "SESSION_EXPIRED")
    assert not asyncio.run(gate.confirm_code("123456"))
    assert gate.error == "OTP code has expired. Please request a new one."


def test_resend_waits_for_cooldown(state, provider):
    clock = Monotonic()
    gate = make_gate(state, provider, monotonic=clock)
    asyncio.run(gate.request_code(PHONE))

    clock.now += 15
    assert gate.cooldown_remaining() == 45
    assert not asyncio.run(gate.resend())
    assert gate.error == "Please wait 45 seconds before requesting a new OTP."

    clock.now += 45
    assert asyncio.run(gate.resend())
    assert provider.sent == [PHONE, PHONE]


def test_ended_session_refuses_new_codes(state, provider):
    machine = SessionMachine()
    machine.apply(SessionEvent.SESSION_ENDED)
    gate = make_gate(state, provider, machine=machine)

    assert not asyncio.run(gate.request_code(PHONE))
    assert gate.error == "The challenge has ended."
    assert provider.sent == []


def test_changed_phone_forces_reverification(state, provider):
    gate = make_gate(state, provider)
    asyncio.run(gate.request_code(PHONE))
    asyncio.run(gate.confirm_code("123456"))

    assert gate.is_phone_consistent("9876543210")
    assert not gate.is_phone_consistent("9123456789")
    assert gate.state is SessionState.PHONE_ENTRY
    assert gate.verified_phone is None
    assert not gate.store.is_verified_for_challenge(PHONE, 42)
    assert "re-verify" in gate.error


def test_restore_prefers_given_phone(state, provider):
    store = VerificationStore(state)
    store.store("+919123456789", 42)
    store.store(PHONE, 42)

    assert make_gate(state, provider).restore("9876543210") == PHONE
    assert make_gate(state, provider).restore("9123456789") == "+919123456789"


def test_restore_without_grant(state, provider):
    gate = make_gate(state, provider)
    assert gate.restore(PHONE) is None
    assert gate.state is SessionState.PHONE_ENTRY
