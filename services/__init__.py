"""
Business logic services.

Each service handles one stage of the import pipeline.
"""

from services.import_repository import (
    ImportRepository,
    BatchInsertOutcome,
    get_import_repository,
)
from services.duplicate_service import DuplicateService, get_duplicate_service
from services.lead_matcher_service import LeadMatcherService, get_lead_matcher_service
from services.import_wizard import ImportSession, CommitSelection
from services.import_service import ImportService, get_import_service

__all__ = [
    "ImportRepository",
    "BatchInsertOutcome",
    "get_import_repository",
    "DuplicateService",
    "get_duplicate_service",
    "LeadMatcherService",
    "get_lead_matcher_service",
    "ImportSession",
    "CommitSelection",
    "ImportService",
    "get_import_service",
]
