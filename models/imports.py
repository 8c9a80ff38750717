"""
Import pipeline schemas.

Two phases are modelled as distinct immutable types:
raw text (ParsedTable) and typed rows (CandidateEntity subclasses).
Match and duplicate annotations are attached with model_copy().
"""

import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import Field

from models.base import BaseSchema, FrozenSchema


# ===================
# ENUMS
# ===================

class EntityType(str, Enum):
    """Record types the importer can create."""
    TRANSACTIONS = "transactions"
    LEADS = "leads"
    CONTACTS = "contacts"
    OPPORTUNITIES = "opportunities"
    TASKS = "tasks"


class ImportStep(str, Enum):
    """Wizard steps, in forward order."""
    SELECT_ENTITY_TYPE = "select-entity-type"
    UPLOAD = "upload"
    MAP_COLUMNS = "map-columns"
    PREVIEW = "preview"
    IMPORTING = "importing"
    COMPLETE = "complete"


class LeadStatus(str, Enum):
    """Lead pipeline status."""
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    UNQUALIFIED = "unqualified"
    WON = "won"
    LOST = "lost"


class OpportunityStatus(str, Enum):
    """Opportunity status."""
    ACTIVE = "active"
    WON = "won"
    LOST = "lost"


class ValueType(str, Enum):
    """How an opportunity value recurs."""
    ONE_TIME = "one_time"
    RECURRING = "recurring"


class MatchType(str, Enum):
    """How a reference name was resolved."""
    EXACT = "exact"
    FUZZY = "fuzzy"
    NONE = "none"


class DuplicateReason(str, Enum):
    """Which equality tuple flagged a duplicate."""
    SAME_DATE_AMOUNT_ACCOUNT = "same_date_amount_account"
    EXACT_NAME_AND_DOMAIN = "exact_name_and_domain"
    EXACT_NAME = "exact_name"
    SAME_DOMAIN = "same_domain"


# ===================
# RAW TABLE
# ===================

class ParsedTable(FrozenSchema):
    """
    Header row plus data rows, all cells raw text.

    Headers need not be unique. Rows may be shorter or longer than the
    header row; use cell() for safe access.
    """

    headers: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def cell(self, row_index: int, column_index: Optional[int]) -> str:
        """Return the raw cell, or "" when unmapped or out of range."""
        if column_index is None:
            return ""
        row = self.rows[row_index]
        if column_index < 0 or column_index >= len(row):
            return ""
        return row[column_index]


# ===================
# COLUMN MAPPING
# ===================

class ContactSlotMapping(FrozenSchema):
    """Header indices for one repeated contact group on a lead row."""

    slot_index: int = Field(..., ge=0)
    label: str
    fields: dict[str, Optional[int]] = Field(default_factory=dict)

    def get(self, field: str) -> Optional[int]:
        return self.fields.get(field)


class FieldMapping(FrozenSchema):
    """
    Canonical field → header index (None = unmapped).

    Leads additionally carry an ordered list of contact slots.
    """

    entity_type: EntityType
    fields: dict[str, Optional[int]] = Field(default_factory=dict)
    contact_slots: tuple[ContactSlotMapping, ...] = ()

    def get(self, field: str) -> Optional[int]:
        return self.fields.get(field)

    def is_mapped(self, field: str) -> bool:
        return self.fields.get(field) is not None

    def mapped_indices(self) -> list[int]:
        """All header indices in use, lead fields first then slots."""
        indices = [i for i in self.fields.values() if i is not None]
        for slot in self.contact_slots:
            indices.extend(i for i in slot.fields.values() if i is not None)
        return indices


class DetectedMapping(FrozenSchema):
    """Detector proposal, surfaced for confirmation before use."""

    mapping: FieldMapping
    scores: dict[str, int] = Field(default_factory=dict)
    unmapped_headers: tuple[int, ...] = ()


# ===================
# ANNOTATIONS
# ===================

class MatchAlternative(FrozenSchema):
    """Runner-up existing record for a reference name."""

    record_id: str
    name: str
    confidence: int = Field(..., ge=0, le=100)


class MatchAnnotation(FrozenSchema):
    """Resolution of a free-text parent name against existing leads."""

    reference_name: str
    matched_record_id: Optional[str] = None
    matched_record_name: Optional[str] = None
    match_confidence: int = Field(0, ge=0, le=100)
    match_type: MatchType = MatchType.NONE
    candidate_alternatives: tuple[MatchAlternative, ...] = ()

    @property
    def is_matched(self) -> bool:
        return self.matched_record_id is not None


class DuplicateAnnotation(FrozenSchema):
    """
    Structural duplicate flag.

    matched_existing_id points at a stored record; matched_row_number
    points at an earlier row of the same file.
    """

    is_duplicate: bool = False
    matched_existing_id: Optional[str] = None
    matched_row_number: Optional[int] = None
    match_reason: Optional[DuplicateReason] = None


# ===================
# CANDIDATE ENTITIES
# ===================

class CandidateEntity(FrozenSchema):
    """
    One transformed source row, not yet committed.

    row_number is the spreadsheet row (header = 1, first data row = 2).
    """

    row_number: int = Field(..., ge=2)
    is_valid: bool = True
    validation_errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    match: Optional[MatchAnnotation] = None
    duplicate: Optional[DuplicateAnnotation] = None

    @property
    def display_key(self) -> str:
        """Key field value used to identify the row in messages."""
        return ""

    @property
    def reference_name(self) -> Optional[str]:
        """Free-text parent name, for types attached to an existing lead."""
        return None

    @property
    def is_duplicate(self) -> bool:
        return self.duplicate is not None and self.duplicate.is_duplicate

    @property
    def is_matched(self) -> bool:
        return self.match is not None and self.match.is_matched

    def describe(self) -> str:
        """Row label for user-facing messages, e.g. 'Row 4 (Acme Corp)'."""
        key = self.display_key
        if key:
            return f"Row {self.row_number} ({key})"
        return f"Row {self.row_number}"


class TransactionCandidate(CandidateEntity):
    """Bank/ledger transaction row. Negative amounts are money out."""

    date: Optional[datetime.date] = None
    amount: Optional[Decimal] = None
    description: Optional[str] = None
    notes: Optional[str] = None

    @property
    def display_key(self) -> str:
        return self.description or ""


class ContactDraft(FrozenSchema):
    """Contact nested in a lead row (one per filled contact slot)."""

    slot_index: int = 0
    first_name: str
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    title: Optional[str] = None


class LeadCandidate(CandidateEntity):
    """Company/lead row with up to N nested contacts."""

    name: Optional[str] = None
    website: Optional[str] = None
    website_domain: Optional[str] = None
    industry: Optional[str] = None
    status: LeadStatus = LeadStatus.NEW
    source: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    notes: Optional[str] = None
    contacts: tuple[ContactDraft, ...] = ()

    @property
    def display_key(self) -> str:
        return self.name or ""


class ContactCandidate(CandidateEntity):
    """Contact row attached to an existing lead by name."""

    lead_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    title: Optional[str] = None
    notes: Optional[str] = None

    @property
    def display_key(self) -> str:
        full = " ".join(p for p in (self.first_name, self.last_name) if p)
        return full or (self.lead_name or "")

    @property
    def reference_name(self) -> Optional[str]:
        return self.lead_name


class OpportunityCandidate(CandidateEntity):
    """Deal row attached to an existing lead by name."""

    lead_name: Optional[str] = None
    name: Optional[str] = None
    value: Optional[Decimal] = None
    value_type: ValueType = ValueType.ONE_TIME
    probability: Optional[int] = None
    expected_close_date: Optional[datetime.date] = None
    status: OpportunityStatus = OpportunityStatus.ACTIVE
    notes: Optional[str] = None

    @property
    def display_key(self) -> str:
        return self.name or (self.lead_name or "")

    @property
    def reference_name(self) -> Optional[str]:
        return self.lead_name


class TaskCandidate(CandidateEntity):
    """To-do row attached to an existing lead by name."""

    lead_name: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[datetime.date] = None

    @property
    def display_key(self) -> str:
        return self.title or (self.lead_name or "")

    @property
    def reference_name(self) -> Optional[str]:
        return self.lead_name


# ===================
# COMMIT CONTEXT
# ===================

class ImportContext(FrozenSchema):
    """Tenant scope stamped onto every inserted row."""

    workspace_id: str
    user_id: str
    account_id: Optional[str] = None


# ===================
# RESULTS
# ===================

class ImportResult(BaseSchema):
    """Outcome of one commit."""

    success: bool = Field(..., description="True when no accepted row failed")
    imported: int = Field(0, ge=0)
    failed: int = Field(0, ge=0)
    skipped_duplicates: int = Field(0, ge=0)
    skipped_unmatched: int = Field(0, ge=0)
    sub_entities_created: int = Field(0, ge=0)
    errors: list[str] = Field(default_factory=list)
    unmatched_names: list[str] = Field(default_factory=list)


class PreviewSummary(BaseSchema):
    """Counts shown above the preview table."""

    total_rows: int = 0
    valid: int = 0
    invalid: int = 0
    duplicates: int = 0
    matched: int = 0
    unmatched: int = 0
    importable: int = 0


# ===================
# API SCHEMAS
# ===================

class CreateImportSessionRequest(BaseSchema):
    """Open a wizard session, optionally skipping the type step."""

    entity_type: Optional[EntityType] = None
    account_id: Optional[str] = Field(None, description="Required for transactions")


class SelectEntityTypeRequest(BaseSchema):
    entity_type: EntityType
    account_id: Optional[str] = Field(None, description="Required for transactions")


class ContactSlotMappingIn(BaseSchema):
    slot_index: int = Field(..., ge=0)
    label: Optional[str] = None
    fields: dict[str, Optional[int]] = Field(default_factory=dict)


class FieldMappingRequest(BaseSchema):
    """User-edited mapping, header indices or null."""

    fields: dict[str, Optional[int]] = Field(default_factory=dict)
    contact_slots: list[ContactSlotMappingIn] = Field(default_factory=list)


class ImportOptionsRequest(BaseSchema):
    include_duplicates: bool = False


class ImportSessionResponse(BaseSchema):
    """Snapshot of a wizard session."""

    session_id: str
    step: ImportStep
    entity_type: Optional[EntityType] = None
    account_id: Optional[str] = None
    filename: Optional[str] = None
    headers: list[str] = Field(default_factory=list)
    row_count: int = 0
    sample_rows: list[list[str]] = Field(default_factory=list)
    detected_mapping: Optional[dict[str, Any]] = None
    mapping: Optional[dict[str, Any]] = None
    mapping_errors: list[str] = Field(default_factory=list)
    candidates: list[dict[str, Any]] = Field(default_factory=list)
    summary: Optional[PreviewSummary] = None
    include_duplicates: bool = False
    include_unmatched: bool = False
    commit_in_progress: bool = False
    result: Optional[ImportResult] = None
