"""
Street, segment and district endpoints.

Plain reads go straight to the repository. Writes take a session id so the
session's map is reloaded after the change.
"""

import logging
from typing import Any

from fastapi import APIRouter

from core.api import api_route
from zones.repository import StreetRepository
from zones.session import session_registry

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/zones", tags=["zone-streets"])

repository = StreetRepository()


@router.get("/streets")
@api_route(logger)
async def list_streets(search: str | None = None) -> list[dict[str, Any]]:
    streets = await repository.list_streets(search)
    return [street.model_dump() for street in streets]


@router.get("/streets/{street_id}")
@api_route(logger)
async def get_street(street_id: str) -> dict[str, Any]:
    street = await repository.get_street(street_id)
    return street.model_dump()


@router.get("/districts")
@api_route(logger)
async def list_districts() -> list[dict[str, Any]]:
    districts = await repository.list_districts()
    return [district.model_dump() for district in districts]


@router.delete("/sessions/{session_id}/streets/{street_id}/segments")
@api_route(logger)
async def delete_street_segments(session_id: str, street_id: str) -> dict[str, Any]:
    """Remove every segment of a street so it can be cut again."""
    session = session_registry.get(session_id)
    deleted = await session.delete_street_segments(street_id)
    return {"status": "success", "deleted": deleted}


@router.post("/sessions/{session_id}/segments/{segment_id}/split-sides")
@api_route(logger)
async def split_segment_sides(session_id: str, segment_id: str) -> dict[str, Any]:
    """Replace a both-sides segment by its even and odd halves."""
    session = session_registry.get(session_id)
    created = await session.split_segment_sides(segment_id)
    return {
        "status": "success",
        "segments": [segment.model_dump() for segment in created],
    }
