"""System health endpoints."""

import logging

from fastapi import APIRouter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.get("/health")
async def health_check():
    """Health check endpoint to verify API is running."""
    from web import api

    store = api.session_manager.store
    return {
        "isAlive": True,
        "store": store.store_name if store else None,
        "active_sessions": len(api.session_manager.active_sessions),
    }
