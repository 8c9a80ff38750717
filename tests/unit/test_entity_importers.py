"""
Unit tests for the per-entity importers.

Covers mapping validation, row transform and insert payloads for
transactions, leads (with contact slots), contacts, opportunities
and tasks.

Run: pytest tests/unit/test_entity_importers.py -v
"""

from datetime import date
from decimal import Decimal
import pytest

from models.imports import (
    ContactSlotMapping,
    EntityType,
    FieldMapping,
    ImportContext,
    LeadStatus,
    MatchAnnotation,
    MatchType,
    OpportunityStatus,
    ValueType,
)
from parsers.entities import (
    ContactImporter,
    LeadImporter,
    OpportunityImporter,
    TaskImporter,
    TransactionImporter,
    get_entity_importer,
)
from tests.factories import ACCOUNT_ID, USER_ID, WORKSPACE_ID, make_table

CONTEXT = ImportContext(workspace_id=WORKSPACE_ID, user_id=USER_ID, account_id=ACCOUNT_ID)


def _transform(importer, headers, rows):
    table = make_table(headers, rows)
    mapping = importer.detect(list(table.headers)).mapping
    assert importer.validate_mapping(mapping, list(table.headers)) == []
    return importer.transform(table, mapping)


# ===================
# SELECTION
# ===================

class TestGetEntityImporter:
    """Tests for get_entity_importer()"""

    @pytest.mark.parametrize("entity_type,cls", [
        (EntityType.TRANSACTIONS, TransactionImporter),
        (EntityType.LEADS, LeadImporter),
        (EntityType.CONTACTS, ContactImporter),
        (EntityType.OPPORTUNITIES, OpportunityImporter),
        (EntityType.TASKS, TaskImporter),
    ])
    def test_variant_per_type(self, entity_type, cls):
        assert isinstance(get_entity_importer(entity_type), cls)

    def test_accepts_plain_string(self):
        assert isinstance(get_entity_importer("leads"), LeadImporter)

    def test_parent_and_duplicate_flags(self):
        assert get_entity_importer(EntityType.CONTACTS).requires_parent_match
        assert not get_entity_importer(EntityType.LEADS).requires_parent_match
        assert get_entity_importer(EntityType.TRANSACTIONS).duplicate_detectable
        assert not get_entity_importer(EntityType.TASKS).duplicate_detectable


# ===================
# TRANSACTIONS
# ===================

class TestTransactionImporter:
    """Tests for TransactionImporter"""

    def test_valid_rows(self):
        candidates = _transform(
            TransactionImporter(),
            ["Date", "Amount", "Memo"],
            [["2024-01-01", "-50.00", "Coffee"], ["2024-01-02", "1,200.00", "Payroll"]],
        )

        assert [c.row_number for c in candidates] == [2, 3]
        assert all(c.is_valid for c in candidates)
        assert candidates[0].date == date(2024, 1, 1)
        assert candidates[0].amount == Decimal("-50.00")
        assert candidates[0].description == "Coffee"
        assert candidates[1].amount == Decimal("1200.00")

    def test_unparseable_date_reports_only_parse_error(self):
        candidates = _transform(
            TransactionImporter(),
            ["Date", "Amount", "Memo"],
            [["yesterday", "10", "Lunch"]],
        )

        assert not candidates[0].is_valid
        assert candidates[0].validation_errors == ("Date 'yesterday' is not a recognized date",)

    def test_oversized_amount_invalidates_only_its_row(self):
        candidates = _transform(
            TransactionImporter(),
            ["Date", "Amount", "Memo"],
            [
                ["2024-01-01", "123456789012345678901234567890", "Wire"],
                ["2024-01-02", "10", "Lunch"],
            ],
        )

        assert candidates[0].validation_errors == (
            "Amount '123456789012345678901234567890' is not a number",
        )
        assert candidates[1].is_valid

    def test_missing_values_are_required_errors(self):
        candidates = _transform(
            TransactionImporter(),
            ["Date", "Amount", "Memo"],
            [["2024-01-01", "", ""]],
        )

        assert candidates[0].validation_errors == (
            "Amount is required",
            "Description is required",
        )

    def test_debit_and_credit_columns(self):
        """Debit is money out (negative), credit is money in."""
        candidates = _transform(
            TransactionImporter(),
            ["Date", "Description", "Debit", "Credit"],
            [
                ["2024-01-05", "Fee", "12.00", ""],
                ["2024-01-06", "Refund", "", "30"],
                ["2024-01-07", "Odd", "5", "5"],
            ],
        )

        assert candidates[0].amount == Decimal("-12.00")
        assert candidates[1].amount == Decimal("30.00")
        assert not candidates[2].is_valid
        assert candidates[2].validation_errors == ("Both debit and credit are filled in",)

    def test_mapping_needs_an_amount_source(self):
        importer = TransactionImporter()
        mapping = importer.build_mapping({"date": 0, "description": 1})

        errors = importer.validate_mapping(mapping, ["Date", "Memo"])

        assert errors == ["Amount column (or debit/credit columns) is required"]

    def test_mapping_errors(self):
        importer = TransactionImporter()
        mapping = importer.build_mapping({"date": 0, "amount": 1, "description": 7, "foo": 2})

        errors = importer.validate_mapping(mapping, ["Date", "Amount", "Memo"])

        assert "Unknown field 'foo'" in errors
        assert "Column 7 does not exist (file has 3 columns)" in errors

    def test_missing_required_mapping(self):
        importer = TransactionImporter()

        errors = importer.validate_mapping(importer.empty_mapping(), ["A"])

        assert "Date column is required" in errors
        assert "Description column is required" in errors

    def test_contact_slots_rejected_for_transactions(self):
        importer = TransactionImporter()
        mapping = FieldMapping(
            entity_type=EntityType.TRANSACTIONS,
            fields={"date": 0, "amount": 1, "description": 2},
            contact_slots=(ContactSlotMapping(slot_index=0, label="Primary Contact", fields={"first_name": 2}),),
        )

        errors = importer.validate_mapping(mapping, ["Date", "Amount", "Memo"])

        assert errors == ["Contact columns can only be mapped for leads"]

    def test_mapping_for_other_entity_type(self):
        importer = TransactionImporter()
        mapping = FieldMapping(entity_type=EntityType.LEADS, fields={"date": 0, "amount": 0, "description": 0})

        errors = importer.validate_mapping(mapping, ["Date"])

        assert errors == ["Mapping is for leads, not transactions"]

    def test_transform_is_pure(self):
        importer = TransactionImporter()
        table = make_table(["Date", "Amount", "Memo"], [["2024-01-01", "-5", "Tea"]])
        mapping = importer.detect(list(table.headers)).mapping

        assert importer.transform(table, mapping) == importer.transform(table, mapping)

    def test_to_record(self):
        candidate = _transform(
            TransactionImporter(),
            ["Date", "Amount", "Memo", "Notes"],
            [["2024-01-01", "-50.00", "Coffee", "team"]],
        )[0]

        record = TransactionImporter().to_record(candidate, CONTEXT)

        assert record == {
            "workspace_id": WORKSPACE_ID,
            "user_id": USER_ID,
            "account_id": ACCOUNT_ID,
            "date": "2024-01-01",
            "amount": -50.0,
            "description": "Coffee",
            "notes": "team",
        }


# ===================
# LEADS
# ===================

class TestLeadImporter:
    """Tests for LeadImporter"""

    HEADERS = [
        "Company",
        "Website",
        "Status",
        "Contact 1 First Name",
        "Contact 1 Email",
        "Contact 2 First Name",
        "Contact 2 Email",
    ]

    def test_lead_with_contacts(self):
        candidates = _transform(
            LeadImporter(max_contact_slots=5),
            self.HEADERS,
            [["Acme Corp", "https://www.acme.com/about", "Qualified", "Jane", "jane@acme.com", "", ""]],
        )
        lead = candidates[0]

        assert lead.is_valid
        assert lead.name == "Acme Corp"
        assert lead.website_domain == "acme.com"
        assert lead.status == LeadStatus.QUALIFIED
        assert len(lead.contacts) == 1
        assert lead.contacts[0].first_name == "Jane"
        assert lead.contacts[0].slot_index == 0
        assert lead.warnings == ()

    def test_contact_without_first_name_is_skipped_with_warning(self):
        lead = _transform(
            LeadImporter(max_contact_slots=5),
            self.HEADERS,
            [["Acme Corp", "", "", "Jane", "", "", "bob@acme.com"]],
        )[0]

        assert lead.is_valid
        assert [c.first_name for c in lead.contacts] == ["Jane"]
        assert lead.warnings == ("Contact 2 skipped: first name missing",)

    def test_invalid_contact_email_invalidates_row(self):
        lead = _transform(
            LeadImporter(max_contact_slots=5),
            self.HEADERS,
            [["Beta", "", "", "Sam", "not-an-email", "", ""]],
        )[0]

        assert not lead.is_valid
        assert lead.validation_errors == (
            "Primary Contact email 'not-an-email' is not a valid email address",
        )

    def test_missing_name(self):
        lead = _transform(
            LeadImporter(max_contact_slots=5),
            self.HEADERS,
            [["", "beta.io", "", "", "", "", ""]],
        )[0]

        assert lead.validation_errors == ("Name is required",)

    def test_unknown_status_defaults_to_new(self):
        lead = _transform(
            LeadImporter(max_contact_slots=5),
            ["Company", "Status"],
            [["Acme", "Hot prospect"]],
        )[0]

        assert lead.status == LeadStatus.NEW

    def test_build_mapping_relabels_and_pads_slots(self):
        importer = LeadImporter(max_contact_slots=5)

        mapping = importer.build_mapping(
            {"name": 0},
            [ContactSlotMapping(slot_index=3, label="whatever", fields={"first_name": 1})],
        )

        slot = mapping.contact_slots[0]
        assert slot.slot_index == 0
        assert slot.label == "Primary Contact"
        assert set(slot.fields) == {"first_name", "last_name", "email", "phone", "title"}

    def test_slot_without_first_name_column(self):
        importer = LeadImporter(max_contact_slots=5)
        mapping = importer.build_mapping(
            {"name": 0},
            [
                ContactSlotMapping(slot_index=0, label="", fields={"first_name": 1}),
                ContactSlotMapping(slot_index=1, label="", fields={"email": 2}),
            ],
        )

        errors = importer.validate_mapping(mapping, ["Company", "First", "Email"])

        assert errors == ["Contact 2: first name column is required"]

    def test_too_many_slots(self):
        importer = LeadImporter(max_contact_slots=1)
        mapping = importer.build_mapping(
            {"name": 0},
            [
                ContactSlotMapping(slot_index=0, label="", fields={"first_name": 1}),
                ContactSlotMapping(slot_index=1, label="", fields={"first_name": 2}),
            ],
        )

        errors = importer.validate_mapping(mapping, ["Company", "First", "First 2"])

        assert errors == ["At most 1 contacts per lead are supported"]

    def test_records(self):
        importer = LeadImporter(max_contact_slots=5)
        lead = _transform(
            importer,
            self.HEADERS,
            [["Acme Corp", "acme.com", "", "Jane", "jane@acme.com", "Bob", ""]],
        )[0]

        record = importer.to_record(lead, CONTEXT)
        contacts = importer.contact_records(lead, "lead-9", CONTEXT)

        assert record["name"] == "Acme Corp"
        assert record["status"] == "new"
        assert record["workspace_id"] == WORKSPACE_ID
        assert "account_id" not in record
        assert [(c["first_name"], c["is_primary"], c["lead_id"]) for c in contacts] == [
            ("Jane", True, "lead-9"),
            ("Bob", False, "lead-9"),
        ]


# ===================
# CHILD ENTITIES
# ===================

class TestContactImporter:
    """Tests for ContactImporter"""

    def test_reads_contact_row(self):
        contact = _transform(
            ContactImporter(),
            ["Company", "First Name", "Last Name", "Email"],
            [["Acme Corp", "Jane", "Doe", "jane@acme.com"]],
        )[0]

        assert contact.is_valid
        assert contact.reference_name == "Acme Corp"
        assert contact.describe() == "Row 2 (Jane Doe)"

    def test_validation(self):
        candidates = _transform(
            ContactImporter(),
            ["Company", "First Name", "Email"],
            [["Acme Corp", "Jane", "jane@"], ["", "", ""]],
        )

        assert candidates[0].validation_errors == ("Email 'jane@' is not a valid email address",)
        assert candidates[1].validation_errors == ("Lead name is required", "First name is required")

    def test_to_record_uses_matched_lead(self):
        contact = _transform(
            ContactImporter(),
            ["Company", "First Name"],
            [["Acme Corp", "Jane"]],
        )[0]
        matched = contact.model_copy(update={"match": MatchAnnotation(
            reference_name="acme corp",
            matched_record_id="lead-1",
            matched_record_name="Acme Corp",
            match_confidence=100,
            match_type=MatchType.EXACT,
        )})

        record = ContactImporter().to_record(matched, CONTEXT)

        assert record["lead_id"] == "lead-1"
        assert record["first_name"] == "Jane"


class TestOpportunityImporter:
    """Tests for OpportunityImporter"""

    HEADERS = ["Lead", "Deal Name", "Value", "Probability", "Close Date", "Type", "Status"]

    def test_reads_typed_values(self):
        deal = _transform(
            OpportunityImporter(),
            self.HEADERS,
            [["Acme", "Renewal", "$1,200", "40%", "2024-03-31", "Recurring", "Won"]],
        )[0]

        assert deal.is_valid
        assert deal.value == Decimal("1200.00")
        assert deal.probability == 40
        assert deal.expected_close_date == date(2024, 3, 31)
        assert deal.value_type == ValueType.RECURRING
        assert deal.status == OpportunityStatus.WON

    def test_defaults(self):
        deal = _transform(
            OpportunityImporter(),
            self.HEADERS,
            [["Acme", "Pilot", "", "", "", "", ""]],
        )[0]

        assert deal.is_valid
        assert deal.value is None
        assert deal.value_type == ValueType.ONE_TIME
        assert deal.status == OpportunityStatus.ACTIVE

    def test_probability_out_of_range(self):
        deal = _transform(
            OpportunityImporter(),
            self.HEADERS,
            [["Acme", "Big", "12", "150", "", "", ""]],
        )[0]

        assert deal.validation_errors == ("Probability 150 must be between 0 and 100",)

    def test_parse_errors_come_before_rule_errors(self):
        deal = _transform(
            OpportunityImporter(),
            self.HEADERS,
            [["Acme", "Neg", "-5", "abc", "", "", ""]],
        )[0]

        assert deal.validation_errors == (
            "Probability 'abc' is not a number",
            "Value cannot be negative",
        )

    def test_to_record(self):
        deal = _transform(
            OpportunityImporter(),
            self.HEADERS,
            [["Acme", "Renewal", "1200", "0.4", "2024-03-31", "", ""]],
        )[0]

        record = OpportunityImporter().to_record(deal, CONTEXT)

        assert record["lead_id"] is None
        assert record["value"] == 1200.0
        assert record["probability"] == 40
        assert record["expected_close_date"] == "2024-03-31"
        assert record["value_type"] == "one_time"


class TestTaskImporter:
    """Tests for TaskImporter"""

    def test_reads_task(self):
        task = _transform(
            TaskImporter(),
            ["Lead Name", "Task", "Due Date"],
            [["Acme", "Call back", "2024-02-01"]],
        )[0]

        assert task.is_valid
        assert task.title == "Call back"
        assert task.due_date == date(2024, 2, 1)
        assert task.reference_name == "Acme"

    def test_bad_due_date(self):
        task = _transform(
            TaskImporter(),
            ["Lead Name", "Task", "Due Date"],
            [["Acme", "Call back", "someday"]],
        )[0]

        assert task.validation_errors == ("Due date 'someday' is not a recognized date",)
