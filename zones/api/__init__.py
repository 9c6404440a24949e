"""Zone assignment API package.

Contains API route handlers organized by domain:
    - sessions: map sessions, the rendered map and click dispatch
    - selection: selection sets and bulk zone assignment
    - cuts: the cut editor
    - streets: street/district reads and segment maintenance
"""

import logging

from fastapi import APIRouter

from . import cuts, selection, sessions, streets

logger = logging.getLogger(__name__)
router = APIRouter()

router.include_router(sessions.router)
router.include_router(selection.router)
router.include_router(cuts.router)
router.include_router(streets.router)

logger.info("Zone API routes loaded successfully")

__all__ = [
    "cuts",
    "router",
    "selection",
    "sessions",
    "streets",
]
