"""
Entity importer contract.

One EntityImporter variant per entity type, selected by EntityType.
Each variant declares its canonical fields (with header synonyms, in
priority order) and knows how to:

- detect(headers) → proposed mapping
- validate_mapping(mapping, headers) → mapping errors
- transform(table, mapping) → candidate per row
- validate(candidate) → row errors
- to_record(candidate, context) → insert payload

transform() is pure: the same (table, mapping) always gives the same
candidates.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
import structlog

from models.imports import (
    CandidateEntity,
    ContactSlotMapping,
    DetectedMapping,
    EntityType,
    FieldMapping,
    ImportContext,
    ParsedTable,
)
from parsers.column_detector import detect_fields

logger = structlog.get_logger(__name__)


FIRST_DATA_ROW_NUMBER = 2


def field_label(field: str) -> str:
    """'expected_close_date' → 'Expected close date'"""
    return field.replace("_", " ").capitalize()


class RowReader:
    """Stripped cell access for one row through a mapping."""

    def __init__(self, table: ParsedTable, row_index: int, mapping: FieldMapping):
        self.table = table
        self.row_index = row_index
        self.mapping = mapping

    def get(self, field: str) -> str:
        return self.table.cell(self.row_index, self.mapping.get(field)).strip()

    def is_mapped(self, field: str) -> bool:
        return self.mapping.is_mapped(field)

    def slot(self, slot: ContactSlotMapping, field: str) -> str:
        return self.table.cell(self.row_index, slot.get(field)).strip()


class EntityImporter(ABC):
    """Base for per-entity detect/transform/validate variants."""

    entity_type: EntityType
    table: str
    candidate_cls: type[CandidateEntity] = CandidateEntity

    # Canonical field -> header synonyms, in priority order
    synonyms: dict[str, list[str]] = {}

    # Fields that must be mapped before preview
    required_mapping: tuple[str, ...] = ()

    # Fields that must have a value on each row
    required_fields: tuple[str, ...] = ()

    requires_parent_match: bool = False
    duplicate_detectable: bool = False

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(self.synonyms)

    # ===================
    # MAPPING
    # ===================

    def detect(self, headers: list[str]) -> DetectedMapping:
        """Propose a mapping for these headers."""
        return detect_fields(self.entity_type, list(headers), self.synonyms)

    def empty_mapping(self) -> FieldMapping:
        return FieldMapping(
            entity_type=self.entity_type,
            fields={field: None for field in self.fields},
        )

    def build_mapping(
        self,
        fields: dict[str, Optional[int]],
        contact_slots: Optional[list[ContactSlotMapping]] = None,
    ) -> FieldMapping:
        """Build a FieldMapping from user input; missing fields are unmapped."""
        merged = {field: None for field in self.fields}
        merged.update(fields)
        return FieldMapping(
            entity_type=self.entity_type,
            fields=merged,
            contact_slots=tuple(contact_slots or ()),
        )

    def validate_mapping(self, mapping: FieldMapping, headers: list[str]) -> list[str]:
        """
        Check a mapping can be applied.

        Returns:
            List of errors (empty when the mapping is usable)
        """
        errors = []

        if mapping.entity_type != self.entity_type:
            errors.append(
                f"Mapping is for {mapping.entity_type.value}, not {self.entity_type.value}"
            )

        for field in mapping.fields:
            if field not in self.synonyms:
                errors.append(f"Unknown field '{field}'")

        if mapping.contact_slots and self.entity_type != EntityType.LEADS:
            errors.append("Contact columns can only be mapped for leads")

        for index in mapping.mapped_indices():
            if index < 0 or index >= len(headers):
                errors.append(f"Column {index} does not exist (file has {len(headers)} columns)")

        for field in self.required_mapping:
            if not mapping.is_mapped(field):
                errors.append(f"{field_label(field)} column is required")

        return errors

    # ===================
    # TRANSFORM
    # ===================

    def transform(self, table: ParsedTable, mapping: FieldMapping) -> list[CandidateEntity]:
        """One candidate per data row, in file order."""
        return [
            self.transform_row(table, row_index, mapping)
            for row_index in range(table.row_count)
        ]

    def transform_row(
        self,
        table: ParsedTable,
        row_index: int,
        mapping: FieldMapping,
    ) -> CandidateEntity:
        row_number = row_index + FIRST_DATA_ROW_NUMBER
        values, field_errors, warnings = self.read_row(RowReader(table, row_index, mapping))

        candidate = self.candidate_cls(row_number=row_number, **values)

        # A field that failed to parse only reports the parse error
        errors = list(field_errors.values())
        errors.extend(
            message for field, message in self.check(candidate)
            if field not in field_errors
        )

        return candidate.model_copy(update={
            "is_valid": not errors,
            "validation_errors": tuple(errors),
            "warnings": tuple(warnings),
        })

    @abstractmethod
    def read_row(self, row: RowReader) -> tuple[dict[str, Any], dict[str, str], list[str]]:
        """
        Read typed values from one row.

        Returns:
            (candidate field values, field -> parse error, warnings)
        """

    # ===================
    # VALIDATION
    # ===================

    def check(self, candidate: CandidateEntity) -> list[tuple[str, str]]:
        """(field, message) for every rule the candidate breaks."""
        problems = []
        for field in self.required_fields:
            value = getattr(candidate, field, None)
            if value is None or value == "":
                problems.append((field, f"{field_label(field)} is required"))
        problems.extend(self.check_fields(candidate))
        return problems

    def check_fields(self, candidate: CandidateEntity) -> list[tuple[str, str]]:
        """Entity-specific rules beyond required fields."""
        return []

    def validate(self, candidate: CandidateEntity) -> list[str]:
        """Row errors for an already-built candidate."""
        return [message for _, message in self.check(candidate)]

    # ===================
    # COMMIT
    # ===================

    @abstractmethod
    def to_record(self, candidate: CandidateEntity, context: ImportContext) -> dict[str, Any]:
        """Insert payload for one accepted candidate."""

    def _base_record(self, context: ImportContext) -> dict[str, Any]:
        return {
            "workspace_id": context.workspace_id,
            "user_id": context.user_id,
        }

    def _parent_id(self, candidate: CandidateEntity) -> Optional[str]:
        if candidate.match is None:
            return None
        return candidate.match.matched_record_id
