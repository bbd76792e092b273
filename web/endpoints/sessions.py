"""Dialogue session and WebSocket endpoints."""

import logging

from fastapi import HTTPException, WebSocket, WebSocketDisconnect, APIRouter

from dialogue_engine.exceptions import DialogueError
from web.move_request import MoveRequest
from web.session_manager import SessionManager, http_error
from web.session_request import SessionCreateRequest
from web.session_response import AllowedMovesResponse, MoveResponse, SessionResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")
ws_router = APIRouter()


def setup_session_manager() -> SessionManager:
    """Get the global session manager."""
    # Import here to avoid circular imports
    from web import api
    return api.session_manager


def _session_response(session_manager: SessionManager, session_id: str) -> SessionResponse:
    controller = session_manager.get_controller(session_id)
    return SessionResponse.from_snapshot(session_id, controller.snapshot())


@router.post("/sessions", response_model=SessionResponse, status_code=201)
async def create_session(setup: SessionCreateRequest):
    """Open a dialogue on a topic; the Opponent moves first."""
    session_manager = setup_session_manager()
    try:
        session_id = await session_manager.create_session(setup)
    except DialogueError as e:
        raise http_error(e)
    return _session_response(session_manager, session_id)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str):
    """Get the full state of a session."""
    return _session_response(setup_session_manager(), session_id)


@router.get("/sessions/{session_id}/allowed-moves", response_model=AllowedMovesResponse)
async def get_allowed_moves(session_id: str):
    """Get the move menu for the actor whose turn it is."""
    controller = setup_session_manager().get_controller(session_id)
    state = controller.snapshot()
    return AllowedMovesResponse(
        turn=state["turn"],
        version=state["version"],
        allowed_moves=state["allowed_moves"],
        move_tracker=state["move_tracker"],
    )


@router.post("/sessions/{session_id}/moves", response_model=MoveResponse)
async def apply_move(session_id: str, move: MoveRequest):
    """Apply a move for the actor whose turn it is."""
    session_manager = setup_session_manager()
    try:
        outcome = await session_manager.apply_move(session_id, move)
    except DialogueError as e:
        raise http_error(e)
    return MoveResponse.from_outcome(outcome, _session_response(session_manager, session_id))


@router.post("/sessions/{session_id}/cancel-selection", response_model=SessionResponse)
async def cancel_selection(session_id: str):
    """Leave target selection without making a move."""
    session_manager = setup_session_manager()
    controller = session_manager.get_controller(session_id)
    try:
        await controller.cancel_selection()
    except DialogueError as e:
        raise http_error(e)
    return _session_response(session_manager, session_id)


@router.delete("/sessions/{session_id}")
async def close_session(session_id: str):
    """Abandon a session."""
    await setup_session_manager().close_session(session_id)
    return {"status": "closed", "session_id": session_id}


@ws_router.websocket("/ws/session/{session_id}")
async def websocket_endpoint(websocket: WebSocket, session_id: str):
    """WebSocket endpoint for real-time session updates."""
    session_manager = setup_session_manager()
    try:
        controller = session_manager.get_controller(session_id)
    except HTTPException:
        # Policy violation: there is no such session to watch
        await websocket.close(code=1008)
        return

    await websocket.accept()
    snapshot = controller.snapshot()
    await websocket.send_json(
        {"type": "connected", "session_id": session_id, "state": snapshot}
    )
    if snapshot["phase"] == "ended":
        await websocket.close()
        return

    session_manager.add_connection(session_id, websocket)
    try:
        # Keep connection alive
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        session_manager.remove_connection(session_id, websocket)
