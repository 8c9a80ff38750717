"""
Importers for records attached to an existing lead by name.

Contacts, opportunities and tasks carry a free-text lead name that is
resolved against the workspace's leads before commit.
"""

from typing import Any

from models.imports import (
    CandidateEntity,
    ContactCandidate,
    EntityType,
    ImportContext,
    OpportunityCandidate,
    OpportunityStatus,
    TaskCandidate,
    ValueType,
)
from parsers.entities.base import EntityImporter, RowReader, field_label
from parsers.entities.leads import CONTACT_SLOT_SYNONYMS
from parsers.value_parsers import (
    is_valid_email,
    parse_date,
    parse_decimal,
    parse_enum,
    parse_probability,
)
from utils.text_utils import clean_text

LEAD_NAME_SYNONYMS = [
    "lead name", "lead", "company", "company name", "account",
    "account name", "organization", "organisation", "client", "customer",
]


class ChildEntityImporter(EntityImporter):
    """Base for types that must match a parent lead."""

    requires_parent_match = True

    def _record(self, candidate: CandidateEntity, context: ImportContext) -> dict[str, Any]:
        return {
            **self._base_record(context),
            "lead_id": self._parent_id(candidate),
        }

    def _read_date(self, row: RowReader, field: str, errors: dict[str, str]):
        raw = row.get(field)
        parsed = parse_date(raw)
        if raw and parsed is None:
            errors[field] = f"{field_label(field)} '{raw}' is not a recognized date"
        return parsed


# ===================
# CONTACTS
# ===================

class ContactImporter(ChildEntityImporter):
    entity_type = EntityType.CONTACTS
    table = "contacts"
    candidate_cls = ContactCandidate

    synonyms = {
        "lead_name": LEAD_NAME_SYNONYMS,
        **CONTACT_SLOT_SYNONYMS,
        "notes": ["notes", "note", "comments"],
    }

    required_mapping = ("lead_name", "first_name")
    required_fields = ("lead_name", "first_name")

    def read_row(self, row: RowReader) -> tuple[dict[str, Any], dict[str, str], list[str]]:
        values = {
            "lead_name": clean_text(row.get("lead_name"), max_length=255),
            "first_name": clean_text(row.get("first_name")),
            "last_name": clean_text(row.get("last_name")),
            "email": clean_text(row.get("email")),
            "phone": clean_text(row.get("phone")),
            "title": clean_text(row.get("title")),
            "notes": clean_text(row.get("notes")),
        }
        return values, {}, []

    def check_fields(self, candidate: ContactCandidate) -> list[tuple[str, str]]:
        if candidate.email and not is_valid_email(candidate.email):
            return [("email", f"Email '{candidate.email}' is not a valid email address")]
        return []

    def to_record(self, candidate: ContactCandidate, context: ImportContext) -> dict[str, Any]:
        return {
            **self._record(candidate, context),
            "first_name": candidate.first_name,
            "last_name": candidate.last_name,
            "email": candidate.email,
            "phone": candidate.phone,
            "title": candidate.title,
            "notes": candidate.notes,
        }


# ===================
# OPPORTUNITIES
# ===================

class OpportunityImporter(ChildEntityImporter):
    entity_type = EntityType.OPPORTUNITIES
    table = "opportunities"
    candidate_cls = OpportunityCandidate

    synonyms = {
        "lead_name": LEAD_NAME_SYNONYMS,
        "name": ["name", "opportunity", "opportunity name", "deal", "deal name", "title"],
        "value": ["value", "amount", "deal value", "price", "revenue", "deal size"],
        "value_type": ["value type", "type", "billing type", "recurrence"],
        "probability": ["probability", "win probability", "likelihood", "chance"],
        "expected_close_date": [
            "expected close date", "close date", "expected close",
            "closing date", "expected close on",
        ],
        "status": ["status", "stage", "deal status"],
        "notes": ["notes", "note", "comments", "description"],
    }

    required_mapping = ("lead_name", "name")
    required_fields = ("lead_name", "name")

    def read_row(self, row: RowReader) -> tuple[dict[str, Any], dict[str, str], list[str]]:
        errors: dict[str, str] = {}

        raw_value = row.get("value")
        value = parse_decimal(raw_value)
        if raw_value and value is None:
            errors["value"] = f"Value '{raw_value}' is not a number"

        probability = None
        try:
            probability = parse_probability(row.get("probability"))
        except ValueError:
            errors["probability"] = f"Probability '{row.get('probability')}' is not a number"

        values = {
            "lead_name": clean_text(row.get("lead_name"), max_length=255),
            "name": clean_text(row.get("name"), max_length=255),
            "value": value,
            "value_type": parse_enum(row.get("value_type"), ValueType, ValueType.ONE_TIME),
            "probability": probability,
            "expected_close_date": self._read_date(row, "expected_close_date", errors),
            "status": parse_enum(row.get("status"), OpportunityStatus, OpportunityStatus.ACTIVE),
            "notes": clean_text(row.get("notes")),
        }
        return values, errors, []

    def check_fields(self, candidate: OpportunityCandidate) -> list[tuple[str, str]]:
        problems = []
        if candidate.probability is not None and not 0 <= candidate.probability <= 100:
            problems.append((
                "probability",
                f"Probability {candidate.probability} must be between 0 and 100",
            ))
        if candidate.value is not None and candidate.value < 0:
            problems.append(("value", "Value cannot be negative"))
        return problems

    def to_record(self, candidate: OpportunityCandidate, context: ImportContext) -> dict[str, Any]:
        return {
            **self._record(candidate, context),
            "name": candidate.name,
            "value": float(candidate.value) if candidate.value is not None else None,
            "value_type": candidate.value_type.value,
            "probability": candidate.probability,
            "expected_close_date": (
                candidate.expected_close_date.isoformat()
                if candidate.expected_close_date else None
            ),
            "status": candidate.status.value,
            "notes": candidate.notes,
        }


# ===================
# TASKS
# ===================

class TaskImporter(ChildEntityImporter):
    entity_type = EntityType.TASKS
    table = "tasks"
    candidate_cls = TaskCandidate

    synonyms = {
        "lead_name": LEAD_NAME_SYNONYMS,
        "title": ["title", "task", "task name", "subject", "name", "summary"],
        "description": ["description", "details", "notes", "body"],
        "due_date": ["due date", "due", "deadline", "due on", "date"],
    }

    required_mapping = ("lead_name", "title")
    required_fields = ("lead_name", "title")

    def read_row(self, row: RowReader) -> tuple[dict[str, Any], dict[str, str], list[str]]:
        errors: dict[str, str] = {}
        values = {
            "lead_name": clean_text(row.get("lead_name"), max_length=255),
            "title": clean_text(row.get("title"), max_length=255),
            "description": clean_text(row.get("description")),
            "due_date": self._read_date(row, "due_date", errors),
        }
        return values, errors, []

    def to_record(self, candidate: TaskCandidate, context: ImportContext) -> dict[str, Any]:
        return {
            **self._record(candidate, context),
            "title": candidate.title,
            "description": candidate.description,
            "due_date": candidate.due_date.isoformat() if candidate.due_date else None,
        }
