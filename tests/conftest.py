import pytest

from buzzroom_server.models import Role
from tests.helpers import join, make_coordinator


@pytest.fixture
async def coordinator():
    coord = make_coordinator()
    coord.start()
    yield coord
    await coord.stop()


@pytest.fixture
async def strict_coordinator():
    coord = make_coordinator(enforce_roles=True)
    coord.start()
    yield coord
    await coord.stop()


@pytest.fixture
async def host(coordinator):
    return await join(coordinator, Role.HOST)
