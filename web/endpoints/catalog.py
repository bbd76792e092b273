"""Topic and rebuttal lookups passed through to the content store."""

import logging

from fastapi import APIRouter

from dialogue_engine.exceptions import DialogueError
from web.endpoints.sessions import setup_session_manager
from web.session_manager import http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.get("/topics")
async def get_topics():
    """List the topics a dialogue can be opened on."""
    store = setup_session_manager().require_store()
    try:
        topics = await store.fetch_topics()
    except DialogueError as e:
        raise http_error(e)
    return {"topics": [t.topic for t in topics]}


@router.get("/rebuttals")
async def get_rebuttals(target_id: int):
    """List saved rebuttals for a statement, oldest first."""
    store = setup_session_manager().require_store()
    try:
        rebuttals = await store.fetch_rebuttals(target_id)
    except DialogueError as e:
        raise http_error(e)
    return {"target_id": target_id, "rebuttals": [r.to_dict() for r in rebuttals]}
