import pytest

from challenge_py.config.state import StateFile
from fakes import FakeClient, FakeProvider


@pytest.fixture
def state():
    return StateFile(None)


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def provider():
    return FakeProvider()
