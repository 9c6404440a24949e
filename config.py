"""Centralized configuration for environment variables.

This module is the single source of truth for configuration used across the
application. Import constants from here rather than calling os.getenv directly
in multiple places.

MongoDB settings are read by ``db.manager``; fixed rendering constants
(colors, line weights, side offsets) live in ``zones.constants``.
"""

from __future__ import annotations

import os
from typing import Final

from dotenv import load_dotenv

# Load environment variables from .env if present
load_dotenv()


def _float_pair(raw: str, default: tuple[float, float]) -> list[float]:
    parts = [part.strip() for part in raw.split(",") if part.strip()]
    if len(parts) != 2:
        return list(default)
    try:
        return [float(parts[0]), float(parts[1])]
    except ValueError:
        return list(default)


# --- Map Configuration ---
DEFAULT_MAP_CENTER: Final[tuple[float, float]] = (44.8771, 4.8772)
MAP_CENTER: Final[list[float]] = _float_pair(
    os.getenv("MAP_CENTER", ""),
    DEFAULT_MAP_CENTER,
)
MAP_ZOOM: Final[int] = int(os.getenv("MAP_ZOOM", "15"))
TILE_URL: Final[str] = os.getenv(
    "TILE_URL",
    "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png",
)
TILE_ATTRIBUTION: Final[str] = os.getenv(
    "TILE_ATTRIBUTION",
    "&copy; OpenStreetMap contributors",
)

# --- HTTP Configuration ---
CORS_ALLOWED_ORIGINS: Final[list[str]] = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", "").split(",")
    if origin.strip()
]


def map_settings() -> dict[str, object]:
    """Base map settings sent to the browser with every map payload."""
    return {
        "center": list(MAP_CENTER),
        "zoom": MAP_ZOOM,
        "tile_url": TILE_URL,
        "attribution": TILE_ATTRIBUTION,
    }


__all__ = [
    "CORS_ALLOWED_ORIGINS",
    "DEFAULT_MAP_CENTER",
    "MAP_CENTER",
    "MAP_ZOOM",
    "TILE_ATTRIBUTION",
    "TILE_URL",
    "map_settings",
]
