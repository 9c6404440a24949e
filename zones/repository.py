"""Street, segment and district data access.

This is the only module that talks to storage. Reads return projections
with string identifiers so the map, selection and cutting code never touch
ODM documents directly. Every call is an independent request; nothing is
cached.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from beanie import PydanticObjectId
from beanie.operators import In
from pydantic import BaseModel, ConfigDict, Field
from pymongo.errors import PyMongoError

from core.exceptions import PersistenceError, ResourceNotFoundError, ValidationError
from core.spatial import normalize_line_coordinates
from db.models import District, Segment, Street

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

_PATCHABLE_SEGMENT_FIELDS = {
    "number_start",
    "number_end",
    "label",
    "side",
    "building_type",
    "geometry",
    "district_id",
}

# =============================================================================
# Projections
# =============================================================================


class SegmentProjection(BaseModel):
    """Segment fields needed for rendering, selection and cutting."""

    id: str
    street_id: str
    number_start: int | None = None
    number_end: int | None = None
    label: str | None = None
    side: str = "both"
    building_type: str = "mixed"
    geometry: dict[str, Any] | None = None
    district_id: str | None = None

    model_config = ConfigDict(extra="ignore")

    @property
    def custom_line(self) -> list[list[float]] | None:
        """Custom display-frame geometry, when it holds at least two points."""
        if not self.geometry:
            return None
        line = normalize_line_coordinates(self.geometry)
        return line if len(line) >= 2 else None

    @property
    def display_name(self) -> str:
        if self.label:
            return self.label
        if self.number_start is not None and self.number_end is not None:
            return f"{self.number_start}-{self.number_end}"
        return self.id


class StreetProjection(BaseModel):
    """Street with its nested segments."""

    id: str
    name: str
    type: str = "street"
    type_label: str = "Rue"
    coordinates: list[Any] | None = None
    district_id: str | None = None
    segments: list[SegmentProjection] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class DistrictProjection(BaseModel):
    id: str
    name: str
    color: str
    description: str | None = None

    model_config = ConfigDict(extra="ignore")


def _str_or_none(value: Any) -> str | None:
    return str(value) if value is not None else None


def segment_projection(doc: Segment) -> SegmentProjection:
    return SegmentProjection(
        id=str(doc.id),
        street_id=str(doc.street_id),
        number_start=doc.number_start,
        number_end=doc.number_end,
        label=doc.label,
        side=doc.side,
        building_type=doc.building_type,
        geometry=doc.geometry,
        district_id=_str_or_none(doc.district_id),
    )


def street_projection(
    doc: Street,
    segments: list[SegmentProjection] | None = None,
) -> StreetProjection:
    return StreetProjection(
        id=str(doc.id),
        name=doc.name,
        type=str(doc.type),
        type_label=doc.type.label,
        coordinates=doc.coordinates,
        district_id=_str_or_none(doc.district_id),
        segments=segments or [],
    )


def district_projection(doc: District) -> DistrictProjection:
    return DistrictProjection(
        id=str(doc.id),
        name=doc.name,
        color=doc.color,
        description=doc.description,
    )


# =============================================================================
# Helpers
# =============================================================================


def coerce_oid(value: str | PydanticObjectId, kind: str = "record") -> PydanticObjectId:
    if isinstance(value, PydanticObjectId):
        return value
    try:
        return PydanticObjectId(str(value))
    except Exception as exc:
        msg = f"Invalid {kind} id: {value!r}"
        raise ValidationError(msg) from exc


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    """Translate driver failures into PersistenceError."""
    try:
        yield
    except PyMongoError as exc:
        logger.exception("Storage failure while trying to %s", action)
        msg = f"Could not {action}: {exc}"
        raise PersistenceError(msg) from exc


def split_range_by_side(
    number_start: int,
    number_end: int,
) -> dict[str, tuple[int, int] | None]:
    """Even and odd house-number sub-ranges of an inclusive range."""
    first_even = number_start if number_start % 2 == 0 else number_start + 1
    last_even = number_end if number_end % 2 == 0 else number_end - 1
    first_odd = number_start if number_start % 2 == 1 else number_start + 1
    last_odd = number_end if number_end % 2 == 1 else number_end - 1
    return {
        "even": (first_even, last_even) if first_even <= last_even else None,
        "odd": (first_odd, last_odd) if first_odd <= last_odd else None,
    }


# =============================================================================
# Repository
# =============================================================================


class StreetRepository:
    """Stateless request/response access to streets, segments and districts."""

    async def list_streets(self, search: str | None = None) -> list[StreetProjection]:
        """Streets that have geometry, by name, each with nested segments."""
        query: dict[str, Any] = {"coordinates": {"$ne": None}}
        if search:
            query["name"] = {"$regex": re.escape(search), "$options": "i"}

        with storage_errors("load streets"):
            streets = await Street.find(query).sort("+name").to_list()
            street_ids = [street.id for street in streets]
            segments = (
                await Segment.find(In(Segment.street_id, street_ids)).to_list()
                if street_ids
                else []
            )

        by_street: dict[str, list[SegmentProjection]] = defaultdict(list)
        for segment in segments:
            by_street[str(segment.street_id)].append(segment_projection(segment))

        return [
            street_projection(street, by_street.get(str(street.id)))
            for street in streets
        ]

    async def get_street(self, street_id: str) -> StreetProjection:
        oid = coerce_oid(street_id, "street")
        with storage_errors("load street"):
            street = await Street.get(oid)
            if street is None:
                msg = f"Street {street_id} not found"
                raise ResourceNotFoundError(msg)
            segments = await Segment.find(Segment.street_id == oid).to_list()
        return street_projection(street, [segment_projection(s) for s in segments])

    async def list_districts(self) -> list[DistrictProjection]:
        with storage_errors("load districts"):
            districts = await District.find_all().sort("+name").to_list()
        return [district_projection(district) for district in districts]

    async def _require_district(self, zone_id: str | None) -> PydanticObjectId | None:
        if zone_id is None:
            return None
        oid = coerce_oid(zone_id, "district")
        with storage_errors("load district"):
            district = await District.get(oid)
        if district is None:
            msg = f"District {zone_id} not found"
            raise ResourceNotFoundError(msg)
        return oid

    async def _require_segment(self, segment_id: str) -> Segment:
        oid = coerce_oid(segment_id, "segment")
        with storage_errors("load segment"):
            segment = await Segment.get(oid)
        if segment is None:
            msg = f"Segment {segment_id} not found"
            raise ResourceNotFoundError(msg)
        return segment

    async def insert_segment(
        self,
        street_id: str,
        *,
        label: str | None = None,
        side: str = "both",
        building_type: str = "mixed",
        geometry: dict[str, Any] | None = None,
        number_start: int | None = None,
        number_end: int | None = None,
        district_id: str | None = None,
    ) -> SegmentProjection:
        street_oid = coerce_oid(street_id, "street")
        district_oid = await self._require_district(district_id)
        try:
            segment = Segment(
                street_id=street_oid,
                label=label,
                side=side,
                building_type=building_type,
                geometry=geometry,
                number_start=number_start,
                number_end=number_end,
                district_id=district_oid,
            )
        except ValueError as exc:
            msg = f"Invalid segment: {exc}"
            raise ValidationError(msg) from exc

        with storage_errors("create segment"):
            await segment.insert()
        logger.debug("Created segment %s on street %s", segment.id, street_id)
        return segment_projection(segment)

    async def update_segment(
        self,
        segment_id: str,
        patch: dict[str, Any],
    ) -> SegmentProjection:
        unknown = set(patch) - _PATCHABLE_SEGMENT_FIELDS
        if unknown:
            msg = f"Cannot update segment fields: {', '.join(sorted(unknown))}"
            raise ValidationError(msg)
        segment = await self._require_segment(segment_id)
        if "district_id" in patch:
            patch = {
                **patch,
                "district_id": await self._require_district(patch["district_id"]),
            }
        try:
            updated = Segment.model_validate(
                {**segment.model_dump(exclude={"id", "revision_id"}), **patch},
            )
        except ValueError as exc:
            msg = f"Invalid segment update: {exc}"
            raise ValidationError(msg) from exc

        for field in patch:
            setattr(segment, field, getattr(updated, field))
        with storage_errors("update segment"):
            await segment.save()
        return segment_projection(segment)

    async def assign_segment_zone(
        self,
        segment_id: str,
        zone_id: str | None,
    ) -> SegmentProjection:
        return await self.update_segment(segment_id, {"district_id": zone_id})

    async def assign_street_zone(self, street_id: str, zone_id: str | None) -> None:
        oid = coerce_oid(street_id, "street")
        district_oid = await self._require_district(zone_id)
        with storage_errors("update street"):
            street = await Street.get(oid)
            if street is None:
                msg = f"Street {street_id} not found"
                raise ResourceNotFoundError(msg)
            street.district_id = district_oid
            await street.save()

    async def delete_segment(self, segment_id: str) -> None:
        segment = await self._require_segment(segment_id)
        with storage_errors("delete segment"):
            await segment.delete()

    async def delete_street_segments(self, street_id: str) -> int:
        oid = coerce_oid(street_id, "street")
        with storage_errors("delete street segments"):
            result = await Segment.find(Segment.street_id == oid).delete()
        deleted = result.deleted_count if result is not None else 0
        logger.info("Deleted %d segments of street %s", deleted, street_id)
        return deleted

    async def split_segment_by_side(self, segment_id: str) -> list[SegmentProjection]:
        """
        Replace a ``both`` segment by its even and odd halves.

        Each half is created only when its number range is non-empty; the
        original is deleted after both inserts succeeded.
        """
        segment = await self._require_segment(segment_id)
        if segment.side != "both":
            msg = "Segment is already split by side"
            raise ValidationError(msg)
        if segment.number_start is None or segment.number_end is None:
            msg = "Segment has no house-number range to split"
            raise ValidationError(msg)

        ranges = split_range_by_side(segment.number_start, segment.number_end)
        created: list[SegmentProjection] = []
        for side in ("even", "odd"):
            side_range = ranges[side]
            if side_range is None:
                continue
            half = Segment(
                street_id=segment.street_id,
                number_start=side_range[0],
                number_end=side_range[1],
                side=side,
                building_type=segment.building_type,
                district_id=segment.district_id,
            )
            with storage_errors("create side segment"):
                await half.insert()
            created.append(segment_projection(half))

        with storage_errors("delete split segment"):
            await segment.delete()
        logger.info(
            "Split segment %s into %d side segments",
            segment_id,
            len(created),
        )
        return created
