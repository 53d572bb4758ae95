from typing import Any, Dict, Optional


def session_room(code: str) -> str:
    return f"session:{code}"


def host_room(code: str) -> str:
    return f"host:{code}"


class Broadcaster:
    """Sends session events over Socket.IO.

    Safe to call from background tasks; ``socketio.emit`` does not need a
    request context.
    """

    def __init__(self, socketio, namespace: str):
        self.socketio = socketio
        self.namespace = namespace

    def emit(self, event: str, payload: Dict[str, Any], to: str) -> None:
        self.socketio.emit(event, payload, to=to, namespace=self.namespace)

    def to_session(self, code: str, event: str, payload: Dict[str, Any]) -> None:
        self.emit(event, payload, session_room(code))

    def to_host(self, code: str, event: str, payload: Dict[str, Any]) -> None:
        self.emit(event, payload, host_room(code))

    def to_connection(self, connection_id: Optional[str], event: str, payload: Dict[str, Any]) -> None:
        if connection_id:
            self.emit(event, payload, connection_id)
