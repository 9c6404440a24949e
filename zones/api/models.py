"""Request bodies shared by the zone routers."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, Field

LatLon = Annotated[list[float], Field(min_length=2, max_length=2)]


class MapClickRequest(BaseModel):
    """A click on the map or a drawn line, in ``[lat, lon]``."""

    coord: LatLon
    multi_key: bool = False


class ToggleRequest(BaseModel):
    id: str
    multi_key: bool = False


class SelectAllRequest(BaseModel):
    # Street scope only: name filter applied before selecting.
    search: str | None = None


class SelectByZoneRequest(BaseModel):
    zone_id: str | None = None


class TargetRequest(BaseModel):
    """Zone id, ``"none"`` to unassign, or null to clear the choice."""

    target: str | None = None


class FocusRequest(BaseModel):
    street_id: str | None = None


class StartCutRequest(BaseModel):
    street_id: str


class MarkerRequest(BaseModel):
    coord: LatLon


class RenameRequest(BaseModel):
    label: str
