"""
Business logic services.

Each service handles one stage of the import.
"""

from services.airtable_service import AirtableService, get_airtable_service
from services.remote_duplicate_service import (
    RemoteDuplicateService,
    get_remote_duplicate_service,
    SequentialLookupRunner,
    BoundedLookupRunner,
    get_lookup_runner,
)
from services.finalize_service import FinalizeService, get_finalize_service
from services.import_session import ImportSession
from services.session_store import store_session, get_session, delete_session

__all__ = [
    "AirtableService",
    "get_airtable_service",
    "RemoteDuplicateService",
    "get_remote_duplicate_service",
    "SequentialLookupRunner",
    "BoundedLookupRunner",
    "get_lookup_runner",
    "FinalizeService",
    "get_finalize_service",
    "ImportSession",
    "store_session",
    "get_session",
    "delete_session",
]
