"""
Cut editor endpoints.

Flow: open the editor on a street, place markers (map clicks work too),
review the ordered pieces, rename them, then commit or cancel.
"""

import logging
from typing import Any

from fastapi import APIRouter

from core.api import api_route
from zones.api.models import MarkerRequest, RenameRequest, StartCutRequest
from zones.session import session_registry

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/zones", tags=["zone-cuts"])


@router.get("/sessions/{session_id}/cuts")
@api_route(logger)
async def get_cut_state(session_id: str) -> dict[str, Any]:
    return session_registry.get(session_id).cut_editor.state()


@router.post("/sessions/{session_id}/cuts")
@api_route(logger)
async def start_cut(session_id: str, request: StartCutRequest) -> dict[str, Any]:
    session = session_registry.get(session_id)
    session.start_cut(request.street_id)
    return session.cut_editor.state()


@router.post("/sessions/{session_id}/cuts/markers")
@api_route(logger)
async def add_marker(session_id: str, request: MarkerRequest) -> dict[str, Any]:
    session = session_registry.get(session_id)
    marker_id = session.cut_editor.place_marker(request.coord)
    return {"marker_id": marker_id, "state": session.cut_editor.state()}


@router.patch("/sessions/{session_id}/cuts/markers/{marker_id}")
@api_route(logger)
async def drag_marker(
    session_id: str,
    marker_id: str,
    request: MarkerRequest,
) -> dict[str, Any]:
    session = session_registry.get(session_id)
    session.cut_editor.move_marker(marker_id, request.coord)
    return session.cut_editor.state()


@router.delete("/sessions/{session_id}/cuts/markers/{marker_id}")
@api_route(logger)
async def remove_marker(session_id: str, marker_id: str) -> dict[str, Any]:
    """Secondary click on a marker."""
    session = session_registry.get(session_id)
    session.canvas.context_marker(marker_id)
    return session.cut_editor.state()


@router.post("/sessions/{session_id}/cuts/review")
@api_route(logger)
async def review_cuts(session_id: str) -> dict[str, Any]:
    session = session_registry.get(session_id)
    session.review_cuts()
    return session.cut_editor.state()


@router.put("/sessions/{session_id}/cuts/pending/{index}")
@api_route(logger)
async def rename_pending(
    session_id: str,
    index: int,
    request: RenameRequest,
) -> dict[str, Any]:
    session = session_registry.get(session_id)
    session.cut_editor.rename(index, request.label)
    return session.cut_editor.state()


@router.post("/sessions/{session_id}/cuts/back")
@api_route(logger)
async def back_to_editing(session_id: str) -> dict[str, Any]:
    session = session_registry.get(session_id)
    session.cut_editor.back_to_editing()
    return session.cut_editor.state()


@router.post("/sessions/{session_id}/cuts/commit")
@api_route(logger)
async def commit_cuts(session_id: str) -> dict[str, Any]:
    session = session_registry.get(session_id)
    created = await session.commit_cuts()
    return {"status": "success", "created": created, "state": session.state()}


@router.delete("/sessions/{session_id}/cuts")
@api_route(logger)
async def cancel_cut(session_id: str) -> dict[str, Any]:
    session = session_registry.get(session_id)
    session.cut_editor.cancel()
    return session.cut_editor.state()
