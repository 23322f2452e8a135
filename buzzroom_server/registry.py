"""
registry.py
Connection Registry.
Tracks the live connections of one session and the display names they have
self-declared. Names are weak references: not unique, not authenticated.
"""
from typing import Dict, List, Optional

from fastapi import WebSocket

from .models import Role, now_ms


class Connection:
    """
    Connection Class.
    One live socket plus whatever identity it has claimed so far.
    """
    def __init__(self, connection_id: str, websocket: WebSocket, role: Role = Role.PARTICIPANT):
        self.id = connection_id
        self.websocket = websocket
        self.role = role
        self.team_name: str | None = None         # quiz identity
        self.participant_name: str | None = None  # poll identity
        self.connected_at: int = now_ms()

    @property
    def is_host(self) -> bool:
        return self.role == Role.HOST

    def __repr__(self) -> str:
        return f"Connection(id={self.id[:8]}, role={self.role.value}, team={self.team_name!r})"


class ConnectionRegistry:
    """Registry for all live connections of a single session."""

    def __init__(self):
        self.connections: Dict[str, Connection] = {}

    def __len__(self) -> int:
        return len(self.connections)

    def add(self, connection: Connection) -> Connection:
        self.connections[connection.id] = connection
        return connection

    def disconnect(self, connection_id: str) -> Optional[Connection]:
        """Removes and returns the connection, or None if it was never here."""
        return self.connections.pop(connection_id, None)

    def get(self, connection_id: str) -> Optional[Connection]:
        return self.connections.get(connection_id)

    def register_team(self, connection_id: str, team_name: str) -> Optional[Connection]:
        """Last registration wins; a connection carries at most one quiz name."""
        connection = self.connections.get(connection_id)
        if connection:
            connection.team_name = team_name
        return connection

    def register_participant(self, connection_id: str, name: str) -> Optional[Connection]:
        connection = self.connections.get(connection_id)
        if connection:
            connection.participant_name = name
        return connection

    def advertises_team(self, team_name: str, exclude_id: Optional[str] = None) -> bool:
        """True if some live connection (other than exclude_id) still claims team_name."""
        return any(
            c.team_name == team_name
            for cid, c in self.connections.items()
            if cid != exclude_id
        )

    def clear_teams(self) -> None:
        for connection in self.connections.values():
            connection.team_name = None

    def roster(self) -> List[dict]:
        """Registered quiz teams in connection order."""
        return [
            {"socketId": c.id, "teamName": c.team_name}
            for c in self.connections.values()
            if c.team_name is not None
        ]

    def team_count(self) -> int:
        return len({c.team_name for c in self.connections.values() if c.team_name is not None})

    def all(self) -> List[Connection]:
        return list(self.connections.values())
