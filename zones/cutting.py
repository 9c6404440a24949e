"""
Cut editor: split a street into new segments with markers placed on the map.

The editor moves through ``IDLE -> EDITING -> REVIEWING -> IDLE``. Markers
are ordered by their position along the street when the cut is saved, so
the order in which they were clicked never matters.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from core.exceptions import (
    GeometryError,
    PersistenceError,
    ResourceNotFoundError,
    TractageError,
    ValidationError,
)
from core.spatial import (
    line_endpoints,
    normalize_line_coordinates,
    project_points_onto_line,
)
from zones.constants import (
    CUT_SEGMENT_BUILDING_TYPE,
    CUT_SEGMENT_LABEL,
    CUT_SEGMENT_SIDE,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from zones.rendering import MapCanvas
    from zones.repository import StreetProjection

    SegmentWriter = Callable[..., Awaitable[Any]]

logger = logging.getLogger(__name__)


class EditorMode(StrEnum):
    IDLE = "idle"
    EDITING = "editing"
    REVIEWING = "reviewing"


@dataclass
class PendingSegment:
    start: list[float]
    end: list[float]
    label: str

    def geometry(self) -> dict[str, Any]:
        """Two-point display-frame line stored on the new segment."""
        return {"type": "LineString", "coordinates": [self.start, self.end]}

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start, "end": self.end, "label": self.label}


def build_pending_segments(
    street_start: Sequence[float],
    street_end: Sequence[float],
    ordered_cuts: Sequence[Sequence[float]],
) -> list[PendingSegment]:
    """N cut points give N+1 pieces from street start to street end."""
    stops = [list(street_start), *(list(c) for c in ordered_cuts), list(street_end)]
    return [
        PendingSegment(
            start=stops[i],
            end=stops[i + 1],
            label=CUT_SEGMENT_LABEL.format(index=i + 1),
        )
        for i in range(len(stops) - 1)
    ]


class CutEditor:
    """Marker placement, review and commit for one street at a time."""

    def __init__(self, canvas: MapCanvas) -> None:
        self.canvas = canvas
        self.mode = EditorMode.IDLE
        self.street: StreetProjection | None = None
        self._markers: dict[str, list[float]] = {}
        self.pending: list[PendingSegment] = []

    @property
    def is_editing(self) -> bool:
        return self.mode is EditorMode.EDITING

    @property
    def markers(self) -> dict[str, list[float]]:
        return {marker_id: list(coord) for marker_id, coord in self._markers.items()}

    def _require_mode(self, mode: EditorMode, action: str) -> None:
        if self.mode is not mode:
            msg = f"Cannot {action} while the cut editor is {self.mode}"
            raise ValidationError(msg)

    def _clear_markers(self) -> None:
        for marker_id in self._markers:
            self.canvas.remove_marker(marker_id)
        self._markers = {}

    def enter(self, street: StreetProjection) -> None:
        """Start cutting ``street``. Re-entering discards the current markers."""
        if len(normalize_line_coordinates(street.coordinates)) < 2:
            msg = f"Street {street.name} has no usable geometry"
            raise ValidationError(msg)
        self._clear_markers()
        self.pending = []
        self.street = street
        self.mode = EditorMode.EDITING
        self.canvas.on_map_click(self.handle_map_click)
        logger.info("Cut editor opened on %s", street.name)

    def handle_map_click(self, coord: list[float]) -> None:
        self.place_marker(coord)

    def place_marker(self, coord: Sequence[float]) -> str | None:
        """Drop a marker at ``coord``; ignored unless editing."""
        if not self.is_editing:
            return None
        point = [float(coord[0]), float(coord[1])]
        marker_id = ""

        def on_drag(new_coord: list[float]) -> None:
            self._require_mode(EditorMode.EDITING, "move markers")
            self._markers[marker_id] = [float(new_coord[0]), float(new_coord[1])]

        def on_remove() -> None:
            self.remove_marker(marker_id)

        marker_id = self.canvas.add_marker(point, on_drag, on_remove)
        self._markers[marker_id] = point
        return marker_id

    def move_marker(self, marker_id: str, coord: Sequence[float]) -> None:
        self._require_mode(EditorMode.EDITING, "move markers")
        if marker_id not in self._markers:
            msg = f"Marker {marker_id} not found"
            raise ResourceNotFoundError(msg)
        self.canvas.move_marker(marker_id, coord)
        self._markers[marker_id] = [float(coord[0]), float(coord[1])]

    def remove_marker(self, marker_id: str) -> None:
        """Markers only change while editing; the review shows the saved cuts."""
        self._require_mode(EditorMode.EDITING, "remove markers")
        if self._markers.pop(marker_id, None) is not None:
            self.canvas.remove_marker(marker_id)

    def save(self) -> list[PendingSegment]:
        """Order the markers along the street and build the pending pieces."""
        self._require_mode(EditorMode.EDITING, "save cuts")
        if not self._markers:
            msg = "Place at least one cut marker"
            raise ValidationError(msg)
        line = normalize_line_coordinates(self.street.coordinates)
        endpoints = line_endpoints(self.street.coordinates)
        if len(line) < 2 or endpoints is None:
            msg = f"Street {self.street.name} has no usable geometry"
            raise ValidationError(msg)

        cuts = list(self._markers.values())
        try:
            distances = project_points_onto_line(line, cuts)
        except GeometryError as exc:
            msg = f"Cannot place cuts on {self.street.name}: {exc.message}"
            raise ValidationError(msg) from exc

        ordered = [cut for _, cut in sorted(zip(distances, cuts, strict=True))]
        self.pending = build_pending_segments(endpoints[0], endpoints[1], ordered)
        self.mode = EditorMode.REVIEWING
        self.canvas.off_map_click(self.handle_map_click)
        return self.pending

    def rename(self, index: int, label: str) -> PendingSegment:
        self._require_mode(EditorMode.REVIEWING, "rename segments")
        if not 0 <= index < len(self.pending):
            msg = f"No pending segment at position {index}"
            raise ValidationError(msg)
        self.pending[index].label = label
        return self.pending[index]

    def back_to_editing(self) -> None:
        """Leave the review without committing; markers are kept."""
        self._require_mode(EditorMode.REVIEWING, "go back to editing")
        self.pending = []
        self.mode = EditorMode.EDITING
        self.canvas.on_map_click(self.handle_map_click)

    async def commit(self, insert_segment: SegmentWriter) -> list[str]:
        """
        Create one segment per pending piece, in order.

        A failed insert stops the loop; earlier inserts are kept and their
        ids are listed in the error details.
        """
        self._require_mode(EditorMode.REVIEWING, "commit cuts")
        if any(not piece.label.strip() for piece in self.pending):
            msg = "Every segment needs a name"
            raise ValidationError(msg)

        street = self.street
        created: list[str] = []
        for index, piece in enumerate(self.pending):
            try:
                segment = await insert_segment(
                    street.id,
                    label=piece.label.strip(),
                    side=CUT_SEGMENT_SIDE,
                    building_type=CUT_SEGMENT_BUILDING_TYPE,
                    geometry=piece.geometry(),
                )
            except TractageError as exc:
                logger.warning(
                    "Cut commit on %s stopped at piece %d: %s",
                    street.name,
                    index + 1,
                    exc.message,
                )
                msg = f"Could not create {piece.label}: {exc.message}"
                raise PersistenceError(
                    msg,
                    {"created": created, "failed_index": index},
                ) from exc
            created.append(segment.id)

        logger.info("Cut %s into %d segments", street.name, len(created))
        self._reset()
        return created

    def cancel(self) -> None:
        """Drop markers and pending pieces without writing anything."""
        self._reset()

    def _reset(self) -> None:
        self._clear_markers()
        self.canvas.off_map_click(self.handle_map_click)
        self.pending = []
        self.street = None
        self.mode = EditorMode.IDLE

    def state(self) -> dict[str, Any]:
        return {
            "mode": str(self.mode),
            "street_id": self.street.id if self.street else None,
            "markers": [
                {"marker_id": marker_id, "coord": coord}
                for marker_id, coord in self._markers.items()
            ],
            "pending": [piece.to_dict() for piece in self.pending],
        }
