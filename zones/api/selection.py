"""
Selection and bulk assignment endpoints.

``scope`` is ``segments`` or ``streets``. Segment selection changes redraw
the map; assignment writes one record at a time and reloads the session
afterwards, also when a write failed partway.
"""

import logging
from typing import Any

from fastapi import APIRouter

from core.api import api_route
from zones.api.models import (
    SelectAllRequest,
    SelectByZoneRequest,
    TargetRequest,
    ToggleRequest,
)
from zones.constants import SCOPE_STREETS
from zones.session import session_registry

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/zones", tags=["zone-selection"])


@router.get("/sessions/{session_id}/selection")
@api_route(logger)
async def get_selection(session_id: str) -> dict[str, Any]:
    return session_registry.get(session_id).selection_state()


@router.post("/sessions/{session_id}/selection/{scope}/toggle")
@api_route(logger)
async def toggle(
    session_id: str,
    scope: str,
    request: ToggleRequest,
) -> dict[str, Any]:
    session = session_registry.get(session_id)
    session.toggle(scope, request.id, multi_key=request.multi_key)
    return session.selection_state()


@router.post("/sessions/{session_id}/selection/{scope}/all")
@api_route(logger)
async def select_all(
    session_id: str,
    scope: str,
    request: SelectAllRequest | None = None,
) -> dict[str, Any]:
    session = session_registry.get(session_id)
    controller = session.selection(scope)
    if scope == SCOPE_STREETS:
        session.street_search = request.search if request else None
    controller.select_all(session.visible_ids(scope))
    return session.selection_state()


@router.delete("/sessions/{session_id}/selection/{scope}")
@api_route(logger)
async def deselect_all(session_id: str, scope: str) -> dict[str, Any]:
    session = session_registry.get(session_id)
    session.selection(scope).deselect_all()
    return session.selection_state()


@router.post("/sessions/{session_id}/selection/{scope}/by-zone")
@api_route(logger)
async def select_by_zone(
    session_id: str,
    scope: str,
    request: SelectByZoneRequest,
) -> dict[str, Any]:
    """Select everything in a zone, or everything unassigned for null."""
    session = session_registry.get(session_id)
    session.selection(scope).select_by_zone(
        request.zone_id,
        session.assignments(scope),
    )
    return session.selection_state()


@router.put("/sessions/{session_id}/selection/{scope}/target")
@api_route(logger)
async def choose_target(
    session_id: str,
    scope: str,
    request: TargetRequest,
) -> dict[str, Any]:
    session = session_registry.get(session_id)
    session.selection(scope).choose_target(request.target)
    return session.selection_state()


@router.post("/sessions/{session_id}/selection/{scope}/assign")
@api_route(logger)
async def assign(session_id: str, scope: str) -> dict[str, Any]:
    session = session_registry.get(session_id)
    count = await session.assign(scope)
    return {"status": "success", "assigned": count, "state": session.state()}


@router.post("/sessions/{session_id}/selection/segments/streets/{street_id}")
@api_route(logger)
async def select_street_segments(session_id: str, street_id: str) -> dict[str, Any]:
    session = session_registry.get(session_id)
    session.select_street_segments(street_id)
    return session.selection_state()


@router.delete("/sessions/{session_id}/selection/segments/streets/{street_id}")
@api_route(logger)
async def deselect_street_segments(
    session_id: str,
    street_id: str,
) -> dict[str, Any]:
    session = session_registry.get(session_id)
    session.deselect_street_segments(street_id)
    return session.selection_state()
