"""
Spatial and geometry utilities.

Street and segment coordinates are stored in the map display frame
(``[lat, lon]``). Shapely and pyproj work in the projection frame
(``[lon, lat]``), so every helper that does real geometry converts at its
boundary and measures in a local azimuthal equidistant frame (meters).
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any

import pyproj
from pyproj.exceptions import ProjError
from shapely.errors import GEOSException
from shapely.geometry import LineString, Point
from shapely.ops import linemerge, transform

from core.exceptions import GeometryError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from shapely.geometry.base import BaseGeometry

logger = logging.getLogger(__name__)

WGS84 = pyproj.CRS("EPSG:4326")

Coordinate = list[float]
Line = list[Coordinate]


class GeometryService:
    """GeoJSON helpers used when serializing rendered map layers."""

    @staticmethod
    def line_geometry(display_coords: Sequence[Sequence[float]]) -> dict[str, Any]:
        """Build a GeoJSON LineString from display-frame coordinates."""
        return {
            "type": "LineString",
            "coordinates": to_projection_frame(display_coords),
        }

    @staticmethod
    def point_geometry(display_coord: Sequence[float]) -> dict[str, Any]:
        """Build a GeoJSON Point from a display-frame coordinate."""
        return {
            "type": "Point",
            "coordinates": [float(display_coord[1]), float(display_coord[0])],
        }

    @staticmethod
    def feature_from_geometry(
        geometry: dict[str, Any] | None,
        properties: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Build a GeoJSON Feature from geometry and properties."""
        return {
            "type": "Feature",
            "geometry": geometry,
            "properties": properties or {},
        }

    @staticmethod
    def feature_collection(features: list[dict[str, Any]]) -> dict[str, Any]:
        """Build a GeoJSON FeatureCollection."""
        return {"type": "FeatureCollection", "features": features}


# =============================================================================
# Coordinate frames
# =============================================================================


def to_projection_frame(coords: Iterable[Sequence[float]]) -> Line:
    """Convert display-frame ``[lat, lon]`` pairs to ``[lon, lat]``."""
    return [[coord[1], coord[0]] for coord in coords]


def to_display_frame(coords: Iterable[Sequence[float]]) -> Line:
    """Convert projection-frame ``[lon, lat]`` pairs to ``[lat, lon]``."""
    return [[coord[1], coord[0]] for coord in coords]


# =============================================================================
# Raw street geometry
# =============================================================================


def _coerce_point(item: Any) -> Coordinate | None:
    """Return a display-frame point from a pair or a lat/lng mapping."""
    if isinstance(item, dict):
        lat = item.get("lat", item.get("latitude"))
        lon = item.get("lng", item.get("lon", item.get("longitude")))
        if lat is None or lon is None:
            return None
        try:
            return [float(lat), float(lon)]
        except (TypeError, ValueError):
            return None
    if isinstance(item, (list, tuple)) and len(item) >= 2:
        if isinstance(item[0], (list, tuple, dict)):
            return None
        try:
            return [float(item[0]), float(item[1])]
        except (TypeError, ValueError):
            return None
    return None


def _raw_coordinates(raw: Any) -> list[Any]:
    if isinstance(raw, dict):
        raw = raw.get("coordinates")
    return raw if isinstance(raw, list) else []


def is_multi_way(raw: Any) -> bool:
    """Return True when raw geometry is a list of disjoint ways."""
    coords = _raw_coordinates(raw)
    if not coords:
        return False
    first = coords[0]
    return (
        isinstance(first, (list, tuple))
        and len(first) > 0
        and isinstance(first[0], (list, tuple, dict))
    )


def iter_ways(raw: Any) -> list[Line]:
    """Split raw geometry into display-frame ways, dropping unusable points."""
    coords = _raw_coordinates(raw)
    ways = coords if is_multi_way(coords) else [coords]
    result: list[Line] = []
    for way in ways:
        if not isinstance(way, (list, tuple)):
            continue
        points = [point for point in map(_coerce_point, way) if point is not None]
        result.append(points)
    return result


def normalize_line_coordinates(raw: Any) -> Line:
    """Flatten raw street geometry into one ordered display-frame line."""
    return [point for way in iter_ways(raw) for point in way]


def line_endpoints(raw: Any) -> tuple[Coordinate, Coordinate] | None:
    """Return the first point of the first way and the last of the last way."""
    ways = [way for way in iter_ways(raw) if way]
    if not ways:
        return None
    return ways[0][0], ways[-1][-1]


def bounds_of(
    lines: Iterable[Sequence[Sequence[float]]],
    pad: float = 0.0,
) -> list[list[float]] | None:
    """Return ``[[south, west], [north, east]]`` of display-frame lines."""
    lats: list[float] = []
    lons: list[float] = []
    for line in lines:
        for coord in line:
            lats.append(float(coord[0]))
            lons.append(float(coord[1]))
    if not lats:
        return None
    south, north = min(lats), max(lats)
    west, east = min(lons), max(lons)
    lat_buffer = (north - south) * pad
    lon_buffer = (east - west) * pad
    return [
        [south - lat_buffer, west - lon_buffer],
        [north + lat_buffer, east + lon_buffer],
    ]


# =============================================================================
# Line transforms
# =============================================================================


def get_local_transformers(
    geom: BaseGeometry,
) -> tuple[
    Callable[[float, float], tuple[float, float]],
    Callable[[float, float], tuple[float, float]],
]:
    """
    Build local azimuthal equidistant transformers centered on the geometry.

    Returns (to_meters, to_wgs84) callables.
    """
    centroid = geom.centroid
    lon = float(centroid.x)
    lat = float(centroid.y)

    local_crs = pyproj.CRS.from_proj4(
        f"+proj=aeqd +lat_0={lat} +lon_0={lon} +datum=WGS84 +units=m +no_defs",
    )
    to_meters = pyproj.Transformer.from_crs(
        WGS84,
        local_crs,
        always_xy=True,
    ).transform
    to_wgs84 = pyproj.Transformer.from_crs(
        local_crs,
        WGS84,
        always_xy=True,
    ).transform
    return to_meters, to_wgs84


def _projection_line(line: Sequence[Sequence[float]]) -> LineString | None:
    """Build a lon/lat LineString, or None when fewer than 2 distinct points."""
    points: Line = []
    for coord in line:
        lat, lon = float(coord[0]), float(coord[1])
        if not (math.isfinite(lat) and math.isfinite(lon)):
            return None
        if not points or points[-1] != [lon, lat]:
            points.append([lon, lat])
    if len(points) < 2:
        return None
    return LineString(points)


def offset_parallel(
    line: Sequence[Sequence[float]],
    offset_meters: float,
) -> Line | None:
    """
    Shift a display-frame line perpendicular to itself by ``offset_meters``.

    Positive and negative offsets land on opposite sides of the line. The
    result keeps the input orientation. Returns None instead of raising when
    the line is too short, degenerate, or the offset cannot be computed.
    """
    if len(line) < 2:
        return None
    try:
        geo_line = _projection_line(line)
        if geo_line is None or geo_line.length == 0:
            return None
        to_meters, to_wgs84 = get_local_transformers(geo_line)
        metric_line = transform(to_meters, geo_line)
        shifted = metric_line.offset_curve(
            offset_meters,
            join_style="mitre",
            mitre_limit=10.0,
        )
        if shifted.geom_type == "MultiLineString":
            # Collinear vertices can split the offset into touching parts.
            shifted = linemerge(shifted)
        if shifted.is_empty or shifted.geom_type != "LineString":
            logger.debug(
                "Offset of %.1fm produced %s, ignoring",
                offset_meters,
                shifted.geom_type,
            )
            return None
        start = metric_line.project(Point(shifted.coords[0]))
        end = metric_line.project(Point(shifted.coords[-1]))
        if start > end:
            shifted = LineString(list(shifted.coords)[::-1])
        result = transform(to_wgs84, shifted)
    except (GEOSException, ValueError, ProjError) as exc:
        logger.warning("Parallel offset failed: %s", exc)
        return None
    return to_display_frame(result.coords)


def proportional_slice(
    line: Sequence[Sequence[float]],
    index: int,
    total: int,
) -> Line:
    """
    Return the points of ``line`` covering ``[index/total, (index+1)/total]``.

    Indices are rounded outward so adjacent slices share their boundary.
    """
    if total < 1:
        msg = f"total must be >= 1, got {total}"
        raise ValueError(msg)
    if not 0 <= index < total:
        msg = f"index {index} out of range for {total} slices"
        raise ValueError(msg)
    last = len(line) - 1
    start_idx = math.floor(index / total * last)
    end_idx = math.ceil((index + 1) / total * last)
    return [list(coord) for coord in line[start_idx : end_idx + 1]]


def project_points_onto_line(
    line: Sequence[Sequence[float]],
    points: Sequence[Sequence[float]],
) -> list[float]:
    """Distance along ``line`` (meters) of the nearest point to each point."""
    geo_line = _projection_line(line)
    if geo_line is None:
        msg = "Line needs at least two distinct points"
        raise GeometryError(msg)
    try:
        to_meters, _ = get_local_transformers(geo_line)
        metric_line = transform(to_meters, geo_line)
        distances = []
        for point in points:
            x, y = to_meters(float(point[1]), float(point[0]))
            distances.append(float(metric_line.project(Point(x, y))))
    except (GEOSException, ValueError, ProjError) as exc:
        msg = f"Could not project onto line: {exc}"
        raise GeometryError(msg) from exc
    return distances


def project_onto_line(
    line: Sequence[Sequence[float]],
    point: Sequence[float],
) -> float:
    """Distance along ``line`` (meters) of the point nearest to ``point``."""
    return project_points_onto_line(line, [point])[0]
