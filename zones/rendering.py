"""
Map render engine.

Turns the loaded streets, the district color table and the current
selection into drawn lines. Planning (which lines, which colors) is pure and
lives in module functions; ``MapView`` draws the plan on a ``MapCanvas`` and
owns the registry of drawn layers.

Per street, the first matching strategy wins:

1. side-separated: some segment is side-specific, even and odd segments both
   exist and one side carries an assignment. Each side is drawn on its own
   parallel line. A street of only "both" segments has no sides to separate.
2. segment-divided: zones disagree, a segment has custom geometry, or a
   segment is selected, on a single-way street with several segments.
3. whole-street: one line per way in the aggregate color.

Multi-way streets go through 1 or 3 way by way.
"""

from __future__ import annotations

import functools
import itertools
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from core.exceptions import GeometryError, ResourceNotFoundError
from core.spatial import (
    GeometryService,
    bounds_of,
    is_multi_way,
    iter_ways,
    offset_parallel,
    proportional_slice,
)
from zones.constants import (
    DEFAULT_OPACITY,
    DEFAULT_WEIGHT,
    EVEN_SIDE_OFFSET_METERS,
    FIT_BOUNDS_PADDING,
    MARKER_COLOR,
    MIXED_COLOR,
    ODD_SIDE_OFFSET_METERS,
    SELECTED_COLOR,
    SELECTED_OPACITY,
    SELECTED_WEIGHT,
    UNASSIGNED_COLOR,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Collection, Iterable, Mapping, Sequence

    from zones.repository import SegmentProjection, StreetProjection

logger = logging.getLogger(__name__)

STRATEGY_SIDES = "side-separated"
STRATEGY_SEGMENTS = "segment-divided"
STRATEGY_WHOLE = "whole-street"


@dataclass(frozen=True)
class LineStyle:
    color: str
    weight: int = DEFAULT_WEIGHT
    opacity: float = DEFAULT_OPACITY


@dataclass(frozen=True)
class LineTarget:
    """What a drawn line stands for when it is clicked."""

    street_id: str
    segment_id: str | None = None


@dataclass
class RenderedLine:
    street_id: str
    segment_id: str | None
    coords: list[list[float]]
    style: LineStyle
    tooltip: str
    strategy: str
    side: str | None = None
    layer_id: str | None = None

    @property
    def target(self) -> LineTarget:
        return LineTarget(self.street_id, self.segment_id)


# =============================================================================
# Canvas
# =============================================================================


class MapCanvas(Protocol):
    """What the render engine and cut editor need from a slippy map."""

    def add_line(
        self,
        coords: Sequence[Sequence[float]],
        style: LineStyle,
        tooltip: str,
        on_click: Callable[[list[float], bool], None],
        properties: dict[str, Any] | None = None,
    ) -> str: ...

    def remove_layer(self, layer_id: str) -> None: ...

    def fit_bounds(self, bounds: list[list[float]]) -> None: ...

    def add_marker(
        self,
        coord: Sequence[float],
        on_drag: Callable[[list[float]], None],
        on_remove: Callable[[], None],
    ) -> str: ...

    def move_marker(self, marker_id: str, coord: Sequence[float]) -> None: ...

    def remove_marker(self, marker_id: str) -> None: ...

    def on_map_click(self, handler: Callable[[list[float]], None]) -> None: ...

    def off_map_click(self, handler: Callable[[list[float]], None]) -> None: ...


@dataclass
class _CanvasLine:
    coords: list[list[float]]
    style: LineStyle
    tooltip: str
    on_click: Callable[[list[float], bool], None]
    properties: dict[str, Any] = field(default_factory=dict)


@dataclass
class _CanvasMarker:
    coord: list[float]
    on_drag: Callable[[list[float]], None]
    on_remove: Callable[[], None]


class FeatureCanvas:
    """
    In-memory map canvas.

    Keeps drawn lines and markers, serializes them as GeoJSON for the
    browser, and dispatches the events the browser reports back.
    """

    def __init__(self) -> None:
        self._lines: dict[str, _CanvasLine] = {}
        self._markers: dict[str, _CanvasMarker] = {}
        self._map_click_handlers: list[Callable[[list[float]], None]] = []
        self._ids = itertools.count(1)
        self.viewport: list[list[float]] | None = None

    # -- drawing --------------------------------------------------------------

    def add_line(
        self,
        coords: Sequence[Sequence[float]],
        style: LineStyle,
        tooltip: str,
        on_click: Callable[[list[float], bool], None],
        properties: dict[str, Any] | None = None,
    ) -> str:
        layer_id = f"line-{next(self._ids)}"
        self._lines[layer_id] = _CanvasLine(
            coords=[list(coord) for coord in coords],
            style=style,
            tooltip=tooltip,
            on_click=on_click,
            properties=dict(properties or {}),
        )
        return layer_id

    def remove_layer(self, layer_id: str) -> None:
        self._lines.pop(layer_id, None)

    def fit_bounds(self, bounds: list[list[float]]) -> None:
        self.viewport = bounds

    def add_marker(
        self,
        coord: Sequence[float],
        on_drag: Callable[[list[float]], None],
        on_remove: Callable[[], None],
    ) -> str:
        marker_id = f"marker-{next(self._ids)}"
        self._markers[marker_id] = _CanvasMarker(list(coord), on_drag, on_remove)
        return marker_id

    def move_marker(self, marker_id: str, coord: Sequence[float]) -> None:
        self._get_marker(marker_id).coord = list(coord)

    def remove_marker(self, marker_id: str) -> None:
        self._markers.pop(marker_id, None)

    def on_map_click(self, handler: Callable[[list[float]], None]) -> None:
        if handler not in self._map_click_handlers:
            self._map_click_handlers.append(handler)

    def off_map_click(self, handler: Callable[[list[float]], None]) -> None:
        if handler in self._map_click_handlers:
            self._map_click_handlers.remove(handler)

    # -- inspection -----------------------------------------------------------

    @property
    def layer_ids(self) -> list[str]:
        return list(self._lines)

    @property
    def marker_ids(self) -> list[str]:
        return list(self._markers)

    def marker_coord(self, marker_id: str) -> list[float]:
        return list(self._get_marker(marker_id).coord)

    def _get_line(self, layer_id: str) -> _CanvasLine:
        line = self._lines.get(layer_id)
        if line is None:
            msg = f"Map layer {layer_id} not found"
            raise ResourceNotFoundError(msg)
        return line

    def _get_marker(self, marker_id: str) -> _CanvasMarker:
        marker = self._markers.get(marker_id)
        if marker is None:
            msg = f"Marker {marker_id} not found"
            raise ResourceNotFoundError(msg)
        return marker

    # -- events ---------------------------------------------------------------

    def click_layer(
        self,
        layer_id: str,
        coord: Sequence[float],
        *,
        multi_key: bool = False,
    ) -> None:
        """A drawn line was clicked. Does not propagate to the map."""
        self._get_line(layer_id).on_click(list(coord), multi_key)

    def click_map(self, coord: Sequence[float]) -> None:
        for handler in list(self._map_click_handlers):
            handler(list(coord))

    def drag_marker(self, marker_id: str, coord: Sequence[float]) -> None:
        marker = self._get_marker(marker_id)
        marker.on_drag(list(coord))
        marker.coord = list(coord)

    def context_marker(self, marker_id: str) -> None:
        """Secondary click on a marker."""
        self._get_marker(marker_id).on_remove()

    # -- serialization --------------------------------------------------------

    def to_geojson(self) -> dict[str, Any]:
        features = []
        for layer_id, line in self._lines.items():
            features.append(
                GeometryService.feature_from_geometry(
                    GeometryService.line_geometry(line.coords),
                    {
                        **line.properties,
                        "kind": "line",
                        "layer_id": layer_id,
                        "color": line.style.color,
                        "weight": line.style.weight,
                        "opacity": line.style.opacity,
                        "tooltip": line.tooltip,
                    },
                ),
            )
        for marker_id, marker in self._markers.items():
            features.append(
                GeometryService.feature_from_geometry(
                    GeometryService.point_geometry(marker.coord),
                    {
                        "kind": "marker",
                        "marker_id": marker_id,
                        "color": MARKER_COLOR,
                        "draggable": True,
                    },
                ),
            )
        return GeometryService.feature_collection(features)


# =============================================================================
# Planning
# =============================================================================


def zone_color(zone_id: str | None, zone_colors: Mapping[str, str]) -> str:
    if not zone_id:
        return UNASSIGNED_COLOR
    return zone_colors.get(zone_id, UNASSIGNED_COLOR)


def aggregate_color(
    segments: Iterable[SegmentProjection],
    zone_colors: Mapping[str, str],
) -> str:
    """Unassigned, the single zone's color, or the mixed color."""
    zones = {segment.district_id for segment in segments if segment.district_id}
    if not zones:
        return UNASSIGNED_COLOR
    if len(zones) == 1:
        return zone_color(next(iter(zones)), zone_colors)
    return MIXED_COLOR


def line_style(color: str, *, selected: bool = False) -> LineStyle:
    if selected:
        return LineStyle(SELECTED_COLOR, SELECTED_WEIGHT, SELECTED_OPACITY)
    return LineStyle(color, DEFAULT_WEIGHT, DEFAULT_OPACITY)


def sort_segments(segments: Iterable[SegmentProjection]) -> list[SegmentProjection]:
    """Order by house number; segments without one keep their order, last."""
    return sorted(
        segments,
        key=lambda s: (s.number_start is None, s.number_start or 0),
    )


def street_tooltip(street: StreetProjection) -> str:
    assigned = sum(1 for segment in street.segments if segment.district_id)
    return f"{street.name}: {len(street.segments)} segment(s), {assigned} assigned"


def divide_line(
    street: StreetProjection,
    line: Sequence[Sequence[float]],
    segments: Sequence[SegmentProjection],
    zone_colors: Mapping[str, str],
    selection: Collection[str],
    *,
    strategy: str,
    side: str | None = None,
    drawn_custom: set[str] | None = None,
) -> list[RenderedLine]:
    """One clickable sub-line per segment along ``line``."""
    tooltip = street_tooltip(street)
    result: list[RenderedLine] = []
    for index, segment in enumerate(segments):
        custom = segment.custom_line
        if custom is not None:
            if drawn_custom is not None:
                if segment.id in drawn_custom:
                    continue
                drawn_custom.add(segment.id)
            coords = custom
        else:
            coords = proportional_slice(line, index, len(segments))
        if len(coords) < 2:
            continue
        selected = segment.id in selection
        result.append(
            RenderedLine(
                street_id=street.id,
                segment_id=segment.id,
                coords=coords,
                style=line_style(
                    zone_color(segment.district_id, zone_colors),
                    selected=selected,
                ),
                tooltip=tooltip,
                strategy=strategy,
                side=side,
            ),
        )
    return result


def _whole_way(
    street: StreetProjection,
    way: Sequence[Sequence[float]],
    zone_colors: Mapping[str, str],
    selection: Collection[str],
) -> RenderedLine:
    has_selected = any(segment.id in selection for segment in street.segments)
    return RenderedLine(
        street_id=street.id,
        segment_id=None,
        coords=[list(coord) for coord in way],
        style=line_style(
            aggregate_color(street.segments, zone_colors),
            selected=has_selected,
        ),
        tooltip=street_tooltip(street),
        strategy=STRATEGY_WHOLE,
    )


def whole_street_lines(
    street: StreetProjection,
    zone_colors: Mapping[str, str],
    selection: Collection[str],
) -> list[RenderedLine]:
    ways = [way for way in iter_ways(street.coordinates) if len(way) >= 2]
    return [_whole_way(street, way, zone_colors, selection) for way in ways]


def _side_separated_lines(
    street: StreetProjection,
    ways: Sequence[Sequence[Sequence[float]]],
    even: Sequence[SegmentProjection],
    odd: Sequence[SegmentProjection],
    zone_colors: Mapping[str, str],
    selection: Collection[str],
) -> list[RenderedLine]:
    result: list[RenderedLine] = []
    drawn_custom: set[str] = set()
    for way in ways:
        even_line = offset_parallel(way, EVEN_SIDE_OFFSET_METERS)
        odd_line = offset_parallel(way, ODD_SIDE_OFFSET_METERS)
        if even_line is None and odd_line is None:
            logger.warning(
                "Parallel lines failed for %s, drawing the whole street",
                street.name,
            )
            result.append(_whole_way(street, way, zone_colors, selection))
            continue
        for side, side_line, side_segments in (
            ("even", even_line, even),
            ("odd", odd_line, odd),
        ):
            if side_line is None:
                logger.warning(
                    "Offset failed for %s side of %s, using the street line",
                    side,
                    street.name,
                )
                side_line = [list(coord) for coord in way]
            result.extend(
                divide_line(
                    street,
                    side_line,
                    side_segments,
                    zone_colors,
                    selection,
                    strategy=STRATEGY_SIDES,
                    side=side,
                    drawn_custom=drawn_custom,
                ),
            )
    return result


def plan_street_lines(
    street: StreetProjection,
    zone_colors: Mapping[str, str],
    selection: Collection[str],
) -> list[RenderedLine]:
    """Decide the rendering strategy for one street and plan its lines."""
    if not street.coordinates:
        return []
    ways = [way for way in iter_ways(street.coordinates) if len(way) >= 2]
    if not ways:
        return []
    multi = is_multi_way(street.coordinates)

    segments = sort_segments(street.segments)
    even = [s for s in segments if s.side in ("even", "both")]
    odd = [s for s in segments if s.side in ("odd", "both")]
    split_by_side = any(s.side != "both" for s in segments)
    if (
        split_by_side
        and even
        and odd
        and (any(s.district_id for s in even) or any(s.district_id for s in odd))
    ):
        return _side_separated_lines(street, ways, even, odd, zone_colors, selection)

    zones = {s.district_id for s in segments if s.district_id}
    has_custom = any(s.custom_line is not None for s in segments)
    has_selected = any(s.id in selection for s in segments)
    divide = len(zones) > 1 or has_custom or has_selected
    if divide and len(segments) > 1 and not multi:
        return divide_line(
            street,
            ways[0],
            segments,
            zone_colors,
            selection,
            strategy=STRATEGY_SEGMENTS,
        )

    return [_whole_way(street, way, zone_colors, selection) for way in ways]


def summarize(
    streets: Sequence[StreetProjection],
    selection: Collection[str],
) -> dict[str, int]:
    """Counts shown in the map info panel."""
    segments = [segment for street in streets for segment in street.segments]
    return {
        "streets": len(streets),
        "segments": len(segments),
        "assigned_segments": sum(1 for s in segments if s.district_id),
        "selected": len(selection),
    }


# =============================================================================
# Map view
# =============================================================================


class MapView:
    """
    Draws planned lines on a canvas and tracks what it drew.

    ``click_router`` is called for every line click with the line target,
    the clicked coordinate and the modifier-key flag. It must look up the
    current interaction mode itself when called.
    """

    def __init__(
        self,
        canvas: MapCanvas,
        click_router: Callable[[LineTarget, list[float], bool], None],
    ) -> None:
        self.canvas = canvas
        self._click_router = click_router
        self._layers: dict[str, list[str]] = {}
        self.lines: list[RenderedLine] = []

    def layers_for(self, street_id: str) -> list[str]:
        return list(self._layers.get(street_id, []))

    def line_for_layer(self, layer_id: str) -> RenderedLine | None:
        return next((line for line in self.lines if line.layer_id == layer_id), None)

    def clear(self) -> None:
        for layer_ids in self._layers.values():
            for layer_id in layer_ids:
                self.canvas.remove_layer(layer_id)
        self._layers.clear()
        self.lines = []

    def _dispatch_click(
        self,
        target: LineTarget,
        coord: list[float],
        multi_key: bool,
    ) -> None:
        self._click_router(target, coord, multi_key)

    def render(
        self,
        streets: Sequence[StreetProjection],
        zone_colors: Mapping[str, str],
        selection: Collection[str],
    ) -> list[RenderedLine]:
        """Redraw everything from scratch and fit the viewport."""
        self.clear()
        for street in streets:
            try:
                planned = plan_street_lines(street, zone_colors, selection)
            except (GeometryError, ValueError, TypeError):
                logger.warning(
                    "Rendering %s failed, falling back to the whole street",
                    street.name,
                    exc_info=True,
                )
                try:
                    planned = whole_street_lines(street, zone_colors, selection)
                except (GeometryError, ValueError, TypeError):
                    logger.exception("Skipping street %s", street.name)
                    continue
            self._draw(street.id, planned)

        if self.lines:
            bounds = bounds_of(
                (line.coords for line in self.lines),
                pad=FIT_BOUNDS_PADDING,
            )
            if bounds is not None:
                self.canvas.fit_bounds(bounds)
        logger.debug("Rendered %d lines for %d streets", len(self.lines), len(streets))
        return self.lines

    def _draw(self, street_id: str, planned: list[RenderedLine]) -> None:
        layer_ids = self._layers.setdefault(street_id, [])
        for line in planned:
            line.layer_id = self.canvas.add_line(
                line.coords,
                line.style,
                line.tooltip,
                functools.partial(self._dispatch_click, line.target),
                {
                    "street_id": line.street_id,
                    "segment_id": line.segment_id,
                    "strategy": line.strategy,
                    "side": line.side,
                },
            )
            layer_ids.append(line.layer_id)
            self.lines.append(line)
