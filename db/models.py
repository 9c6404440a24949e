"""Beanie ODM document models for MongoDB collections.

Usage:
    from db.models import District, Segment, Street

    # Streets that have geometry
    streets = await Street.find(Street.coordinates != None).to_list()

    # Insert a cut segment
    segment = Segment(street_id=street.id, label="Segment 1", side="both")
    await segment.insert()

    # Update
    segment.district_id = district.id
    await segment.save()
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal

from beanie import Document, Indexed, PydanticObjectId
from pydantic import Field, field_validator, model_validator
from pymongo import ASCENDING, IndexModel

SegmentSide = Literal["even", "odd", "both"]
BuildingType = Literal["houses", "buildings", "mixed"]


class StreetType(StrEnum):
    """Kinds of thoroughfare a street can be."""

    STREET = "street"
    AVENUE = "avenue"
    IMPASSE = "impasse"
    BOULEVARD = "boulevard"
    PLACE = "place"
    CHEMIN = "chemin"
    ROUTE = "route"

    @property
    def label(self) -> str:
        return _STREET_TYPE_LABELS[self]


_STREET_TYPE_LABELS = {
    StreetType.STREET: "Rue",
    StreetType.AVENUE: "Avenue",
    StreetType.IMPASSE: "Impasse",
    StreetType.BOULEVARD: "Boulevard",
    StreetType.PLACE: "Place",
    StreetType.CHEMIN: "Chemin",
    StreetType.ROUTE: "Route",
}


class District(Document):
    """A named, colored zone that segments and streets are assigned to."""

    name: Indexed(str)
    color: str = "#3b82f6"
    description: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    class Settings:
        name = "districts"

    class Config:
        extra = "allow"


class Street(Document):
    """
    Street geometry and identity.

    ``coordinates`` is stored in display order (``[lat, lon]`` pairs). It is
    either one polyline or a list of polylines when the street has gaps.
    """

    name: str
    type: StreetType = StreetType.STREET
    coordinates: list[Any] | None = None
    district_id: PydanticObjectId | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    class Settings:
        name = "streets"
        indexes = [
            IndexModel([("name", ASCENDING)], name="streets_name_idx"),
            IndexModel(
                [("district_id", ASCENDING)],
                name="streets_district_idx",
            ),
        ]

    class Config:
        extra = "allow"


class Segment(Document):
    """
    A portion of a street, the unit of zone assignment.

    Segments either carry a house-number range or, when created by cutting
    on the map, a free-text label and a custom two-point geometry.
    """

    street_id: Indexed(PydanticObjectId)
    number_start: int | None = None
    number_end: int | None = None
    label: str | None = None
    side: SegmentSide = "both"
    building_type: BuildingType = "mixed"
    geometry: dict[str, Any] | None = None
    district_id: PydanticObjectId | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    class Settings:
        name = "segments"
        indexes = [
            IndexModel(
                [("street_id", ASCENDING), ("number_start", ASCENDING)],
                name="segments_street_number_idx",
            ),
            IndexModel(
                [("district_id", ASCENDING)],
                name="segments_district_idx",
            ),
        ]

    class Config:
        extra = "allow"

    @field_validator("geometry", mode="before")
    @classmethod
    def validate_geometry(cls, v: Any) -> dict[str, Any] | None:
        """Custom geometry must be a line of at least two points."""
        if v is None:
            return None
        if not isinstance(v, dict):
            msg = "geometry must be a LineString mapping"
            raise ValueError(msg)
        coords = v.get("coordinates")
        if not isinstance(coords, list) or len(coords) < 2:
            msg = "geometry must contain at least two points"
            raise ValueError(msg)
        return {"type": v.get("type", "LineString"), "coordinates": coords}

    @model_validator(mode="after")
    def validate_number_range(self) -> Segment:
        if (
            self.number_start is not None
            and self.number_end is not None
            and self.number_start > self.number_end
        ):
            msg = "number_start must not exceed number_end"
            raise ValueError(msg)
        return self


ALL_DOCUMENT_MODELS = [
    District,
    Street,
    Segment,
]
