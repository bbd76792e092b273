"""Active dialogue sessions and their WebSocket audiences."""

import time
import uuid
from typing import Dict, List, Any
import logging

from fastapi import HTTPException, WebSocket

from config.settings import AppConfig
from dialogue_engine.core import DialogueController
from dialogue_engine.exceptions import (
    DialogueError,
    IllegalMoveError,
    NotFoundError,
    SessionEndedError,
    StoreUnavailableError,
)
from dialogue_engine.models import MoveOutcome
from dialogue_engine.types import DialogueEventCallback, DialogueEventData
from stores.base_store import ContentStore
from web.move_request import MoveRequest
from web.session_request import SessionCreateRequest

logger = logging.getLogger(__name__)

# Ended sessions stay readable this long before they are pruned
ENDED_SESSION_RETENTION_SECONDS = 600.0


def http_error(e: DialogueError) -> HTTPException:
    """Translate a dialogue failure into the HTTP error reported to clients."""
    if isinstance(e, NotFoundError):
        status_code = 404
    elif isinstance(e, StoreUnavailableError):
        status_code = 503
    elif isinstance(e, (IllegalMoveError, SessionEndedError)):
        status_code = 409
    else:
        status_code = 400
    return HTTPException(status_code=status_code, detail=e.message)


class SessionManager:
    """Manages active dialogue sessions and WebSocket connections."""

    def __init__(self):
        self.config: AppConfig | None = None
        self.store: ContentStore | None = None
        self.active_sessions: Dict[str, DialogueController] = {}
        self.connections: Dict[str, List[WebSocket]] = {}
        self.ended_at: Dict[str, float] = {}

    @property
    def configured(self) -> bool:
        return self.config is not None and self.store is not None

    def configure(self, config: AppConfig, store: ContentStore) -> None:
        """Attach the application config and the shared content store."""
        self.config = config
        self.store = store
        logger.info(f"Session manager using '{store.store_name}' content store")

    def require_store(self) -> ContentStore:
        if self.store is None:
            raise HTTPException(status_code=503, detail="Content store not configured")
        return self.store

    async def create_session(self, request: SessionCreateRequest) -> str:
        """Open a dialogue on the requested topic and return its id."""
        store = self.require_store()
        if self.config is None:
            raise RuntimeError("Session manager has no configuration")
        self.prune_ended_sessions()

        session_id = str(uuid.uuid4())
        controller = DialogueController(
            request.apply_to(self.config.dialogue),
            store,
            event_callback=self._event_forwarder(session_id),
        )
        await controller.start(request.topic)

        self.active_sessions[session_id] = controller
        self.connections.setdefault(session_id, [])

        logger.info(f"Created session {session_id}: {request.topic}")
        return session_id

    def get_controller(self, session_id: str) -> DialogueController:
        if session_id not in self.active_sessions:
            raise HTTPException(status_code=404, detail="Session not found")
        return self.active_sessions[session_id]

    async def apply_move(self, session_id: str, request: MoveRequest) -> MoveOutcome:
        controller = self.get_controller(session_id)
        return await controller.apply_move(
            request.kind,
            target=request.target_id,
            payload=request.payload(),
            expected_version=request.expected_version,
            actor=request.actor,
        )

    async def close_session(self, session_id: str) -> None:
        """Abandon a session and forget it."""
        controller = self.get_controller(session_id)
        await controller.close()
        self._forget(session_id)
        logger.info(f"Closed session {session_id}")

    def prune_ended_sessions(
        self, retention_seconds: float = ENDED_SESSION_RETENTION_SECONDS
    ) -> list[str]:
        """Forget sessions that ended more than ``retention_seconds`` ago."""
        cutoff = time.monotonic() - retention_seconds
        expired = [sid for sid, ended in self.ended_at.items() if ended <= cutoff]
        for session_id in expired:
            self._forget(session_id)
        if expired:
            logger.info(f"Pruned {len(expired)} ended session(s)")
        return expired

    def _forget(self, session_id: str) -> None:
        self.active_sessions.pop(session_id, None)
        self.connections.pop(session_id, None)
        self.ended_at.pop(session_id, None)

    async def shutdown(self) -> None:
        """Close every session and release the content store."""
        for session_id in list(self.active_sessions):
            await self.close_session(session_id)
        if self.store is not None:
            await self.store.close()

    def _event_forwarder(self, session_id: str) -> DialogueEventCallback:
        async def forward(event_type: str, data: DialogueEventData) -> None:
            await self._broadcast_to_session(
                session_id, {"type": event_type, "session_id": session_id, **data}
            )
            if event_type == "session_ended":
                self.ended_at[session_id] = time.monotonic()
                await self._close_connections(session_id)

        return forward

    async def _broadcast_to_session(
        self, session_id: str, message: Dict[str, Any]
    ) -> None:
        """Broadcast message to all connected clients for a session."""
        if session_id not in self.connections:
            return

        dead_connections = []
        for websocket in self.connections[session_id]:
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.debug(f"WebSocket send failed: {e}")
                dead_connections.append(websocket)

        # Remove dead connections
        for conn in dead_connections:
            self.connections[session_id].remove(conn)

    async def _close_connections(self, session_id: str) -> None:
        """Close and drop every socket watching a finished session."""
        for websocket in self.connections.pop(session_id, []):
            try:
                await websocket.close()
            except Exception as e:
                logger.debug(f"WebSocket close failed: {e}")

    def add_connection(self, session_id: str, websocket: WebSocket) -> None:
        """Add WebSocket connection for a session."""
        if session_id not in self.connections:
            self.connections[session_id] = []
        self.connections[session_id].append(websocket)

    def remove_connection(self, session_id: str, websocket: WebSocket) -> None:
        """Remove WebSocket connection."""
        if session_id in self.connections and websocket in self.connections[session_id]:
            self.connections[session_id].remove(websocket)
