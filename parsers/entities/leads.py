"""
Lead (company) importer with repeated contact slots.

A lead row may carry several contacts ("Contact 1 Email", "Contact 2 Email").
Each slot with a first name becomes a ContactDraft inserted after its lead.
"""

from typing import Any, Optional

from config import settings
from models.imports import (
    ContactDraft,
    ContactSlotMapping,
    DetectedMapping,
    FieldMapping,
    ImportContext,
    LeadCandidate,
    LeadStatus,
    EntityType,
)
from parsers.column_detector import detect_lead_fields, slot_label
from parsers.entities.base import EntityImporter, RowReader
from parsers.value_parsers import is_valid_email, parse_enum
from utils.text_utils import clean_text, extract_domain

CONTACT_SLOT_SYNONYMS = {
    "first_name": ["first name", "firstname", "given name", "first"],
    "last_name": ["last name", "lastname", "surname", "family name", "last"],
    "email": ["email", "e mail", "email address", "mail"],
    "phone": ["phone", "phone number", "telephone", "tel", "mobile", "cell"],
    "title": ["title", "job title", "position", "role"],
}


class LeadImporter(EntityImporter):
    entity_type = EntityType.LEADS
    table = "leads"
    contact_table = "contacts"
    candidate_cls = LeadCandidate

    synonyms = {
        "name": [
            "name", "company", "company name", "lead name", "lead",
            "organization", "organisation", "business name", "account name",
        ],
        "website": ["website", "web site", "url", "domain", "web", "homepage"],
        "industry": ["industry", "sector", "vertical"],
        "status": ["status", "lead status", "stage"],
        "source": ["source", "lead source", "origin", "channel"],
        "address": ["address", "street", "street address", "address line 1", "address 1"],
        "city": ["city", "town"],
        "state": ["state", "province", "region", "county"],
        "country": ["country", "nation"],
        "postal_code": ["postal code", "zip", "zip code", "postcode", "post code"],
        "notes": ["notes", "note", "comments", "description"],
    }
    slot_synonyms = CONTACT_SLOT_SYNONYMS

    required_mapping = ("name",)
    required_fields = ("name",)

    duplicate_detectable = True

    def __init__(self, max_contact_slots: Optional[int] = None):
        self.max_contact_slots = max_contact_slots or settings.import_max_contact_slots

    def detect(self, headers: list[str]) -> DetectedMapping:
        return detect_lead_fields(
            list(headers),
            self.synonyms,
            self.slot_synonyms,
            self.max_contact_slots,
        )

    def build_mapping(
        self,
        fields: dict[str, Optional[int]],
        contact_slots: Optional[list[ContactSlotMapping]] = None,
    ) -> FieldMapping:
        """Slots are renumbered in the given order and padded with unmapped fields."""
        slots = []
        for slot_index, slot in enumerate(contact_slots or []):
            slot_fields = {field: None for field in self.slot_synonyms}
            slot_fields.update(slot.fields)
            slots.append(ContactSlotMapping(
                slot_index=slot_index,
                label=slot_label(slot_index),
                fields=slot_fields,
            ))
        return super().build_mapping(fields, slots)

    def validate_mapping(self, mapping: FieldMapping, headers: list[str]) -> list[str]:
        errors = super().validate_mapping(mapping, headers)

        if len(mapping.contact_slots) > self.max_contact_slots:
            errors.append(f"At most {self.max_contact_slots} contacts per lead are supported")

        for slot in mapping.contact_slots:
            for field in slot.fields:
                if field not in self.slot_synonyms:
                    errors.append(f"Unknown contact field '{field}' in {slot.label}")
            if not any(index is not None for index in slot.fields.values()):
                continue
            if slot.get("first_name") is None:
                errors.append(f"{slot.label}: first name column is required")

        return errors

    def read_row(self, row: RowReader) -> tuple[dict[str, Any], dict[str, str], list[str]]:
        errors: dict[str, str] = {}
        warnings: list[str] = []

        website = clean_text(row.get("website"))
        contacts = []

        for slot in row.mapping.contact_slots:
            draft = self._read_contact(row, slot, errors, warnings)
            if draft is not None:
                contacts.append(draft)

        values = {
            "name": clean_text(row.get("name"), max_length=255),
            "website": website,
            "website_domain": extract_domain(website),
            "industry": clean_text(row.get("industry")),
            "status": parse_enum(row.get("status"), LeadStatus, LeadStatus.NEW),
            "source": clean_text(row.get("source")),
            "address": clean_text(row.get("address")),
            "city": clean_text(row.get("city")),
            "state": clean_text(row.get("state")),
            "country": clean_text(row.get("country")),
            "postal_code": clean_text(row.get("postal_code")),
            "notes": clean_text(row.get("notes")),
            "contacts": tuple(contacts),
        }
        return values, errors, warnings

    def _read_contact(
        self,
        row: RowReader,
        slot: ContactSlotMapping,
        errors: dict[str, str],
        warnings: list[str],
    ) -> Optional[ContactDraft]:
        values = {field: clean_text(row.slot(slot, field)) for field in self.slot_synonyms}

        if not any(values.values()):
            return None

        if not values["first_name"]:
            warnings.append(f"Contact {slot.slot_index + 1} skipped: first name missing")
            return None

        email = values["email"]
        if email and not is_valid_email(email):
            errors[f"contact_{slot.slot_index}.email"] = (
                f"{slot.label} email '{email}' is not a valid email address"
            )

        return ContactDraft(slot_index=slot.slot_index, **values)

    def to_record(self, candidate: LeadCandidate, context: ImportContext) -> dict[str, Any]:
        return {
            **self._base_record(context),
            "name": candidate.name,
            "website": candidate.website,
            "industry": candidate.industry,
            "status": candidate.status.value,
            "source": candidate.source,
            "address": candidate.address,
            "city": candidate.city,
            "state": candidate.state,
            "country": candidate.country,
            "postal_code": candidate.postal_code,
            "notes": candidate.notes,
        }

    def contact_records(
        self,
        candidate: LeadCandidate,
        lead_id: str,
        context: ImportContext,
    ) -> list[dict[str, Any]]:
        """Insert payloads for the lead's nested contacts."""
        return [
            {
                **self._base_record(context),
                "lead_id": lead_id,
                "first_name": draft.first_name,
                "last_name": draft.last_name,
                "email": draft.email,
                "phone": draft.phone,
                "title": draft.title,
                "is_primary": draft.slot_index == 0,
            }
            for draft in candidate.contacts
        ]
