"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema, FrozenSchema
from models.imports import (
    # Enums
    EntityType,
    ImportStep,
    LeadStatus,
    OpportunityStatus,
    ValueType,
    MatchType,
    DuplicateReason,

    # Pipeline values
    ParsedTable,
    ContactSlotMapping,
    FieldMapping,
    DetectedMapping,
    MatchAlternative,
    MatchAnnotation,
    DuplicateAnnotation,
    CandidateEntity,
    TransactionCandidate,
    ContactDraft,
    LeadCandidate,
    ContactCandidate,
    OpportunityCandidate,
    TaskCandidate,
    ImportContext,
    ImportResult,
    PreviewSummary,

    # API
    CreateImportSessionRequest,
    SelectEntityTypeRequest,
    ContactSlotMappingIn,
    FieldMappingRequest,
    ImportOptionsRequest,
    ImportSessionResponse,
)

__all__ = [
    "BaseSchema",
    "FrozenSchema",
    "EntityType",
    "ImportStep",
    "LeadStatus",
    "OpportunityStatus",
    "ValueType",
    "MatchType",
    "DuplicateReason",
    "ParsedTable",
    "ContactSlotMapping",
    "FieldMapping",
    "DetectedMapping",
    "MatchAlternative",
    "MatchAnnotation",
    "DuplicateAnnotation",
    "CandidateEntity",
    "TransactionCandidate",
    "ContactDraft",
    "LeadCandidate",
    "ContactCandidate",
    "OpportunityCandidate",
    "TaskCandidate",
    "ImportContext",
    "ImportResult",
    "PreviewSummary",
    "CreateImportSessionRequest",
    "SelectEntityTypeRequest",
    "ContactSlotMappingIn",
    "FieldMappingRequest",
    "ImportOptionsRequest",
    "ImportSessionResponse",
]
