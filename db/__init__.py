"""Database package for MongoDB operations using Beanie ODM.

Modules:
    manager: DatabaseManager singleton for connection handling
    models: Beanie Document models (districts, streets, segments)

Usage:
    from db import init_database
    from db.models import Segment

    await init_database()
    segments = await Segment.find(Segment.street_id == street_id).to_list()
"""

from __future__ import annotations

import logging

from db.manager import DatabaseManager, db_manager
from db.models import ALL_DOCUMENT_MODELS, District, Segment, Street, StreetType

logger = logging.getLogger(__name__)


async def init_database() -> None:
    """Initialize Beanie (and with it, the model indexes) at startup."""
    logger.info("Initializing database...")
    await db_manager.init_beanie()
    logger.info("Database initialization complete.")


__all__ = [
    "ALL_DOCUMENT_MODELS",
    "DatabaseManager",
    "District",
    "Segment",
    "Street",
    "StreetType",
    "db_manager",
    "init_database",
]
