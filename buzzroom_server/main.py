"""
main.py
The Application Entry Point.
Responsible for routing and HTTP/WebSocket separation. All state mutation
happens inside the session coordinators; this module only moves frames.
"""
import json
import logging
from typing import Any, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware

from .config import load_settings
from .logging_config import configure_logging
from .models import SessionSummary
from .sessions import is_valid_session_id, manager

settings = load_settings()
configure_logging(settings.log_level)
manager.configure(settings)

logger = logging.getLogger(__name__)

app = FastAPI(title="BuzzRoom: Live Buzzer & Polling")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("shutdown")
async def shutdown_event():
    """Stop every coordinator's queue worker."""
    await manager.shutdown()


# --- REST Endpoints (read-only) ---

@app.get("/api/health")
async def health():
    return {"status": "ok", "sessions": len(manager.sessions)}


@app.get("/api/sessions", response_model=List[SessionSummary])
async def list_sessions():
    """Returns a real-time list of live sessions."""
    return manager.list_summaries()


@app.get("/api/sessions/{session_id}", response_model=SessionSummary)
async def get_session(session_id: str):
    coordinator = manager.get(session_id)
    if coordinator is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return coordinator.summary()


# --- WebSocket Endpoints (stateful) ---

def _decode_frame(message: dict) -> Any:
    """
    JSON from a text or binary frame. Anything undecodable becomes None,
    which the coordinator reports back as a malformed frame.
    """
    raw = message.get("text")
    if raw is None and message.get("bytes") is not None:
        try:
            raw = message["bytes"].decode("utf-8")
        except UnicodeDecodeError:
            return None
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


@app.websocket("/ws")
async def default_session_endpoint(websocket: WebSocket, role: Optional[str] = None,
                                   token: Optional[str] = None):
    """Single shared room for clients that do not name a session."""
    await websocket_endpoint(websocket, manager.settings.default_session_id, role, token)


@app.websocket("/ws/{session_id}")
async def websocket_endpoint(websocket: WebSocket, session_id: str,
                             role: Optional[str] = None, token: Optional[str] = None):
    """
    Connection loop for one client.
    Frames are handed to the session's queue untouched; the coordinator
    validates, applies and answers them in arrival order.
    """
    if not is_valid_session_id(session_id):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    coordinator = manager.get_or_create(session_id)
    connection = coordinator.join(websocket, manager.resolve_role(role, token))
    logger.info("[WS] %s joined %s", connection.id[:8], session_id)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))
            coordinator.submit(connection.id, _decode_frame(message))
    except WebSocketDisconnect:
        logger.info("[WS] %s left %s", connection.id[:8], session_id)
    finally:
        coordinator.leave(connection.id)


def run() -> None:
    """Console entry point: serve the app with the configured host/port."""
    uvicorn.run(app, host=settings.host, port=settings.port)
