"""
Test helpers: a recording WebSocket stand-in and coordinator drivers.
"""
from buzzroom_server.config import Settings
from buzzroom_server.coordinator import SessionCoordinator, event
from buzzroom_server.models import Role


class MockWebSocket:
    """Lightweight mock for fastapi.WebSocket."""
    def __init__(self):
        self.sent_messages: list[dict] = []

    async def send_json(self, data: dict):
        self.sent_messages.append(data)

    def last(self, msg_type: str) -> dict | None:
        """Return the last sent message of a given type."""
        for msg in reversed(self.sent_messages):
            if msg.get("type") == msg_type:
                return msg
        return None

    def all(self, msg_type: str) -> list[dict]:
        """Return all sent messages of a given type."""
        return [m for m in self.sent_messages if m.get("type") == msg_type]

    def types(self) -> list[str]:
        return [m.get("type") for m in self.sent_messages]


class BrokenWebSocket(MockWebSocket):
    """A socket whose peer has gone away without a close frame."""
    async def send_json(self, data: dict):
        raise RuntimeError("socket is gone")


async def join(coordinator, role=Role.PARTICIPANT, websocket=None):
    """Connect a mock client and wait until its welcome has been delivered."""
    ws = websocket or MockWebSocket()
    connection = coordinator.join(ws, role)
    await coordinator.drain()
    return connection, ws


async def act(coordinator, connection, event_type, **payload):
    """Submit one action frame and wait until it has been applied and delivered."""
    coordinator.submit(connection.id, event(event_type, payload))
    await coordinator.drain()


async def join_team(coordinator, team_name, role=Role.PARTICIPANT):
    connection, ws = await join(coordinator, role)
    await act(coordinator, connection, "register-team", teamName=team_name)
    return connection, ws


def make_coordinator(**settings):
    return SessionCoordinator("test-room", Settings(**settings))
