"""
FeedTrak - Multi-user Feed Reader Backend
=========================================

RSS/Atom ingestion with feed discovery, YouTube channel resolution,
deduplicated entry storage and per-user read state.

Main Components:
- Database: SQLite with connection pooling and schema management
- Configuration: environment variables with Pydantic validation
- Ingestion: discovery, normalization, thumbnails, OPML import
- Jobs: retrying background fetch and thumbnail jobs
- Services: per-user reader operations
"""

__version__ = "1.0.0"
__author__ = "FeedTrak Development Team"
__description__ = "Multi-user RSS/Atom feed reader backend"

# Core imports for easy access
from .config.settings import get_settings
from .database.connection import get_db_manager
from .database.schema import DatabaseSchema
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import FeedTrakError

__all__ = [
    "get_settings",
    "get_db_manager",
    "DatabaseSchema",
    "configure_application_logging",
    "get_logger_for_component",
    "FeedTrakError",
]
