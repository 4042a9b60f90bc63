import pytest

from tests.fakes import FakeBot


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fake_bot() -> FakeBot:
    return FakeBot()
