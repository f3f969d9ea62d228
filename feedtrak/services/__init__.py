"""
FeedTrak Services
=================

Service layer used by the CLI and any web front end.
"""

from .reader_service import (
    ReaderService,
    OpmlUploadResult,
    format_import_message,
)

__all__ = [
    'ReaderService',
    'OpmlUploadResult',
    'format_import_message',
]
