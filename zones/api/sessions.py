"""
Map session endpoints.

A session holds the loaded streets and what is drawn for one operator. The
map payload is a GeoJSON FeatureCollection of drawn lines and cut markers;
clicks reported by the browser are dispatched back to the session.
"""

import logging
from typing import Any

from fastapi import APIRouter

from config import map_settings
from core.api import api_route
from zones.api.models import FocusRequest, MapClickRequest
from zones.session import MapSession, session_registry

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/zones", tags=["zone-sessions"])


def map_payload(session: MapSession) -> dict[str, Any]:
    return {
        **map_settings(),
        "session_id": session.id,
        "viewport": session.canvas.viewport,
        "features": session.canvas.to_geojson(),
        "state": session.state(),
    }


@router.post("/sessions")
@api_route(logger)
async def create_session() -> dict[str, Any]:
    """Open a map session and load every street that has geometry."""
    session = await session_registry.create()
    return map_payload(session)


@router.delete("/sessions/{session_id}")
@api_route(logger)
async def close_session(session_id: str) -> dict[str, Any]:
    session_registry.close(session_id)
    return {"status": "success", "session_id": session_id}


@router.post("/sessions/{session_id}/reload")
@api_route(logger)
async def reload_session(session_id: str) -> dict[str, Any]:
    session = session_registry.get(session_id)
    await session.reload()
    return map_payload(session)


@router.get("/sessions/{session_id}/map")
@api_route(logger)
async def get_map(session_id: str) -> dict[str, Any]:
    return map_payload(session_registry.get(session_id))


@router.get("/sessions/{session_id}/summary")
@api_route(logger)
async def get_summary(session_id: str) -> dict[str, Any]:
    """Counts for the map info panel."""
    return session_registry.get(session_id).state()["summary"]


@router.post("/sessions/{session_id}/map/layers/{layer_id}/click")
@api_route(logger)
async def click_layer(
    session_id: str,
    layer_id: str,
    request: MapClickRequest,
) -> dict[str, Any]:
    """A drawn line was clicked: place a cut marker or select its segment."""
    session = session_registry.get(session_id)
    session.canvas.click_layer(layer_id, request.coord, multi_key=request.multi_key)
    return map_payload(session)


@router.post("/sessions/{session_id}/map/click")
@api_route(logger)
async def click_map(session_id: str, request: MapClickRequest) -> dict[str, Any]:
    session = session_registry.get(session_id)
    session.canvas.click_map(request.coord)
    return map_payload(session)


@router.put("/sessions/{session_id}/focus")
@api_route(logger)
async def focus_street(session_id: str, request: FocusRequest) -> dict[str, Any]:
    """Open (or close, with a null id) the segment view of one street."""
    session = session_registry.get(session_id)
    session.focus_street(request.street_id)
    return session.state()
