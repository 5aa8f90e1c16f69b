import pytest

from fakes import FakeBackend

@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()
