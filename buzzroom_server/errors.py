"""Domain exceptions raised by session state and turned into `error` events."""


class ProtocolError(Exception):
    """An action the coordinator must refuse and report to its sender only."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
