import asyncio
from datetime import datetime, timezone

import pytest

from challenge_py.client.errors import ApiError
from challenge_py.client.models import RegistrationResult, RegistrationStatus
from challenge_py.config.state import AccessCodeStore
from challenge_py.session.registration import (
    RegistrationDetails,
    RegistrationOutcome,
    RegistrationResolver,
    already_registered_message,
)
from challenge_py.session.state import SessionMachine, SessionState

PHONE = "+919876543210"


@pytest.fixture
def codes(state):
    return AccessCodeStore(state)


@pytest.fixture
def resolver(client, codes):
    return RegistrationResolver(client, codes, machine=SessionMachine(SessionState.VERIFIED))


def test_details_required_then_register(client, codes, resolver):
    assert asyncio.run(resolver.resolve(42, PHONE)) is RegistrationOutcome.NEEDS_DETAILS
    assert resolver.machine.state is SessionState.NEEDS_DETAILS

    result = asyncio.run(resolver.register({"name": "Asha", "phone": PHONE, "challenge_id": 42}))
    assert result.access_code == "ABC123"
    assert codes.get(PHONE, 42) == "ABC123"
    assert resolver.machine.state is SessionState.REGISTERED
    assert resolver.identity.complete
    assert resolver.identity.user_id == 7
    assert client.registrations == [
        {"name": "Asha", "phone": PHONE, "challenge_id": 42, "utm_src": "organic"}
    ]


def test_registered_user_goes_straight_in(client, codes, resolver):
    codes.put(PHONE, 42, "XYZ789")
    client.status = RegistrationStatus(
        is_registered=True, user_id=5, registration_id=50, user_name="Asha"
    )

    assert asyncio.run(resolver.resolve(42, PHONE)) is RegistrationOutcome.REGISTERED
    assert resolver.machine.state is SessionState.REGISTERED
    assert resolver.identity.registration_id == 50
    assert resolver.identity.access_code == "XYZ789"
    assert client.registrations == []


def test_known_user_is_registered_automatically(client, resolver):
    client.status = RegistrationStatus(is_registered=False, user_id=5, user_name="Asha")

    assert asyncio.run(resolver.resolve(42, PHONE)) is RegistrationOutcome.NEEDS_REGISTRATION
    assert client.registrations[0]["name"] == "Asha"
    assert resolver.machine.state is SessionState.REGISTERED
    assert (resolver.identity.user_id, resolver.identity.registration_id) == (7, 70)


def test_register_without_ids_is_not_registered(client, codes, resolver):
    client.registered_status = RegistrationStatus(is_registered=False, user_name="Asha")
    details = {"name": "Asha", "phone": PHONE, "challenge_id": 42}

    assert asyncio.run(resolver.register(details)) is None
    assert resolver.error == "Failed to verify registration. Please try again."
    assert resolver.machine.state is SessionState.VERIFIED
    assert not resolver.identity.complete
    assert codes.get(PHONE, 42) == "ABC123"


def test_unknown_user_needs_details(client, resolver):
    client.status = RegistrationStatus(is_registered=False)
    assert asyncio.run(resolver.resolve(42, PHONE)) is RegistrationOutcome.NEEDS_DETAILS
    assert client.registrations == []


def test_status_lookup_failure(client, resolver):
    client.status_error = ApiError("Service unavailable", 503)
    assert asyncio.run(resolver.resolve(42, PHONE)) is None
    assert resolver.error == "Service unavailable"
    assert resolver.machine.state is SessionState.VERIFIED


@pytest.mark.parametrize(
    "details, message",
    [
        ({"name": "  ", "phone": PHONE, "challenge_id": 42}, "Name is required"),
        (
            {"name": "Asha", "phone": PHONE, "challenge_id": 42, "email": "asha@"},
            "Please enter a valid email address",
        ),
    ],
)
def test_invalid_details_are_not_sent(client, resolver, details, message):
    assert asyncio.run(resolver.register(details)) is None
    assert resolver.error == message
    assert client.registrations == []


def test_blank_optional_fields_are_dropped():
    details = RegistrationDetails(
        name=" Asha ",
        phone=PHONE,
        challenge_id="42",
        email="",
        college_name=" ",
        year_of_passing="",
    )
    assert details.to_payload() == {
        "name": "Asha",
        "phone": PHONE,
        "challenge_id": 42,
        "utm_src": "organic",
    }


def test_already_registered_error(client, resolver):
    client.register_error = ApiError(
        "Conflict",
        409,
        {"already_registered": True, "challenge_start_at": "2025-12-05T10:00:00Z"},
    )
    details = {"name": "Asha", "phone": PHONE, "challenge_id": 42}
    assert asyncio.run(resolver.register(details)) is None
    assert resolver.error.startswith("You have already registered for this challenge.")


def test_already_registered_message_names_local_start():
    start = datetime(2025, 12, 5, 10, 0, tzinfo=timezone.utc).astimezone()
    hour = start.hour % 12 or 12
    message = already_registered_message({"challenge_start_at": "2025-12-05T10:00:00Z"})
    assert message == (
        "You have already registered for this challenge. "
        f"The challenge will be on {start:%B} {start.day} at {hour}:{start:%M %p}."
    )
    assert already_registered_message({}) == "You have already registered for this challenge."


def test_backend_error_message_is_used(client, resolver):
    client.register_error = ApiError("Bad Request", 400, {"detail": "Registration is closed"})
    asyncio.run(resolver.register({"name": "Asha", "phone": PHONE, "challenge_id": 42}))
    assert resolver.error == "Registration is closed"


def test_unsuccessful_response_is_an_error(client, codes, resolver):
    client.register_result = RegistrationResult(success=False, message="Challenge is full")
    details = {"name": "Asha", "phone": PHONE, "challenge_id": 42}
    assert asyncio.run(resolver.register(details)) is None
    assert resolver.error == "Challenge is full"
    assert codes.get(PHONE, 42) is None
    assert resolver.machine.state is SessionState.VERIFIED
