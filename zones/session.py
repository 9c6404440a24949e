"""
Map sessions.

A ``MapSession`` is the mutable state container behind one operator's map:
loaded streets and districts, the canvas and what is drawn on it, both
selection sets and the cut editor. Event handlers are bound to the session
and read its state when they run.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from core.exceptions import PersistenceError, ResourceNotFoundError, ValidationError
from zones.constants import SCOPE_SEGMENTS, SCOPE_STREETS, SELECTION_SCOPES
from zones.cutting import CutEditor, EditorMode
from zones.rendering import FeatureCanvas, LineTarget, MapView, summarize
from zones.repository import StreetRepository
from zones.selection import SelectionController

if TYPE_CHECKING:
    from zones.cutting import PendingSegment
    from zones.repository import (
        DistrictProjection,
        SegmentProjection,
        StreetProjection,
    )

logger = logging.getLogger(__name__)


class MapSession:
    def __init__(
        self,
        repository: StreetRepository | None = None,
        session_id: str | None = None,
    ) -> None:
        self.id = session_id or uuid.uuid4().hex
        self.repository = repository or StreetRepository()
        self.canvas = FeatureCanvas()
        self.view = MapView(self.canvas, self.route_line_click)
        self.selections = {
            SCOPE_SEGMENTS: SelectionController(SCOPE_SEGMENTS, self.refresh),
            SCOPE_STREETS: SelectionController(SCOPE_STREETS),
        }
        self.cut_editor = CutEditor(self.canvas)
        self.focused_street_id: str | None = None
        self.street_search: str | None = None
        self.streets: list[StreetProjection] = []
        self.districts: list[DistrictProjection] = []

    # -- state ----------------------------------------------------------------

    @property
    def zone_colors(self) -> dict[str, str]:
        return {district.id: district.color for district in self.districts}

    def selection(self, scope: str) -> SelectionController:
        if scope not in SELECTION_SCOPES:
            msg = f"Unknown selection scope: {scope}"
            raise ValidationError(msg)
        return self.selections[scope]

    def find_street(self, street_id: str) -> StreetProjection:
        for street in self.streets:
            if street.id == street_id:
                return street
        msg = f"Street {street_id} is not loaded on this map"
        raise ResourceNotFoundError(msg)

    def all_segments(self) -> list[SegmentProjection]:
        return [segment for street in self.streets for segment in street.segments]

    def assignments(self, scope: str) -> dict[str, str | None]:
        """Current zone of every loaded item of ``scope``."""
        if scope == SCOPE_STREETS:
            return {street.id: street.district_id for street in self.streets}
        return {segment.id: segment.district_id for segment in self.all_segments()}

    def visible_ids(self, scope: str) -> list[str]:
        """Items "select all" applies to: the search hits, or the focused street."""
        if scope == SCOPE_STREETS:
            needle = (self.street_search or "").strip().lower()
            return [
                street.id
                for street in self.streets
                if not needle or needle in street.name.lower()
            ]
        if self.focused_street_id is not None:
            return [s.id for s in self.find_street(self.focused_street_id).segments]
        return [segment.id for segment in self.all_segments()]

    # -- loading and drawing --------------------------------------------------

    async def reload(self) -> None:
        """Fetch streets and districts again and redraw the map."""
        self.streets = await self.repository.list_streets()
        self.districts = await self.repository.list_districts()

        loaded = {scope: set(self.assignments(scope)) for scope in SELECTION_SCOPES}
        for scope, controller in self.selections.items():
            stale = [item for item in controller.selected if item not in loaded[scope]]
            if stale:
                controller.deselect_many(stale)
        if self.focused_street_id not in loaded[SCOPE_STREETS]:
            self.focused_street_id = None
        logger.info(
            "Session %s loaded %d streets and %d districts",
            self.id,
            len(self.streets),
            len(self.districts),
        )
        self.refresh()

    def refresh(self) -> None:
        self.view.render(
            self.streets,
            self.zone_colors,
            set(self.selections[SCOPE_SEGMENTS].selected),
        )

    def route_line_click(
        self,
        target: LineTarget,
        coord: list[float],
        multi_key: bool,
    ) -> None:
        """Send a line click to the cut editor or to segment selection."""
        if self.cut_editor.mode is EditorMode.EDITING:
            self.cut_editor.place_marker(coord)
            return
        if self.cut_editor.mode is EditorMode.REVIEWING:
            return
        self.focused_street_id = target.street_id
        if target.segment_id is not None:
            self.selections[SCOPE_SEGMENTS].toggle(
                target.segment_id,
                multi_key=multi_key,
            )

    def focus_street(self, street_id: str | None) -> None:
        if street_id is not None:
            self.find_street(street_id)
        self.focused_street_id = street_id

    # -- selection writes -----------------------------------------------------

    def toggle(
        self,
        scope: str,
        item_id: str,
        *,
        multi_key: bool = False,
    ) -> list[str]:
        """Toggle a loaded item; ids outside the loaded streets are rejected."""
        controller = self.selection(scope)
        if item_id not in self.assignments(scope):
            msg = f"No loaded {scope} item with id {item_id}"
            raise ResourceNotFoundError(msg)
        return controller.toggle(item_id, multi_key=multi_key)

    async def assign(self, scope: str) -> int:
        controller = self.selection(scope)
        writer = (
            self.repository.assign_street_zone
            if scope == SCOPE_STREETS
            else self.repository.assign_segment_zone
        )
        try:
            count = await controller.assign(writer)
        except PersistenceError:
            await self.reload()
            raise
        await self.reload()
        return count

    def select_street_segments(self, street_id: str) -> list[str]:
        segment_ids = [s.id for s in self.find_street(street_id).segments]
        return self.selections[SCOPE_SEGMENTS].select_many(segment_ids)

    def deselect_street_segments(self, street_id: str) -> list[str]:
        segment_ids = [s.id for s in self.find_street(street_id).segments]
        return self.selections[SCOPE_SEGMENTS].deselect_many(segment_ids)

    # -- cutting --------------------------------------------------------------

    def start_cut(self, street_id: str) -> None:
        self.cut_editor.enter(self.find_street(street_id))
        self.focused_street_id = street_id

    def review_cuts(self) -> list[PendingSegment]:
        return self.cut_editor.save()

    async def commit_cuts(self) -> list[str]:
        try:
            created = await self.cut_editor.commit(self.repository.insert_segment)
        except PersistenceError:
            await self.reload()
            raise
        await self.reload()
        return created

    # -- street maintenance ---------------------------------------------------

    async def delete_street_segments(self, street_id: str) -> int:
        deleted = await self.repository.delete_street_segments(street_id)
        await self.reload()
        return deleted

    async def split_segment_sides(self, segment_id: str) -> list[SegmentProjection]:
        created = await self.repository.split_segment_by_side(segment_id)
        await self.reload()
        return created

    # -- serialization --------------------------------------------------------

    def selection_state(self) -> dict[str, Any]:
        return {
            scope: {
                "selected": controller.selected,
                "target": controller.target,
            }
            for scope, controller in self.selections.items()
        }

    def state(self) -> dict[str, Any]:
        return {
            "session_id": self.id,
            "focused_street_id": self.focused_street_id,
            "summary": summarize(
                self.streets,
                self.selections[SCOPE_SEGMENTS].selected,
            ),
            "selection": self.selection_state(),
            "cuts": self.cut_editor.state(),
            "viewport": self.canvas.viewport,
        }


class SessionRegistry:
    """In-process map sessions, keyed by id."""

    def __init__(self) -> None:
        self._sessions: dict[str, MapSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def create(self, repository: StreetRepository | None = None) -> MapSession:
        session = MapSession(repository)
        await session.reload()
        self._sessions[session.id] = session
        logger.info("Opened map session %s", session.id)
        return session

    def get(self, session_id: str) -> MapSession:
        session = self._sessions.get(session_id)
        if session is None:
            msg = f"Map session {session_id} not found"
            raise ResourceNotFoundError(msg)
        return session

    def close(self, session_id: str) -> None:
        session = self.get(session_id)
        session.cut_editor.cancel()
        del self._sessions[session_id]
        logger.info("Closed map session %s", session_id)

    def close_all(self) -> int:
        count = len(self._sessions)
        for session_id in list(self._sessions):
            self.close(session_id)
        return count


session_registry = SessionRegistry()
