"""
Unit tests for ImportRepository (Supabase boundary).

Run: pytest tests/unit/test_import_repository.py -v
"""

from datetime import date
import pytest
from unittest.mock import patch

from services.import_repository import (
    BatchInsertOutcome,
    ImportRepository,
    get_import_repository,
)
from exceptions import DatabaseError, StorageUnavailableError
from tests.factories import (
    ACCOUNT_ID,
    WORKSPACE_ID,
    LeadFactory,
    TransactionFactory,
    make_api_error,
    make_transport_error,
)


# ===================
# READ OPERATIONS
# ===================

class TestFetchExisting:
    """Tests for fetch_existing_transactions() and fetch_existing_leads()"""

    def test_transactions_scoped_to_account_and_dates(self, mock_db, mock_supabase):
        mock_supabase.set_table_data("transactions", [
            TransactionFactory.create(id="tx-2", date="2024-01-20"),
            TransactionFactory.create(id="tx-1", date="2024-01-05"),
            TransactionFactory.create(id="tx-before", date="2023-12-31"),
            TransactionFactory.create(id="tx-other-acct", date="2024-01-10", account_id="acct-2"),
        ])
        repo = ImportRepository()

        rows = repo.fetch_existing_transactions(
            WORKSPACE_ID, ACCOUNT_ID, date(2024, 1, 1), date(2024, 1, 31)
        )

        assert [row["id"] for row in rows] == ["tx-1", "tx-2"]

    def test_leads_oldest_first(self, mock_db, mock_supabase):
        newer = LeadFactory.create(id="lead-new", created_at="2024-02-01T00:00:00Z")
        older = LeadFactory.create(id="lead-old", created_at="2024-01-01T00:00:00Z")
        mock_supabase.set_table_data("leads", [newer, older])

        rows = ImportRepository().fetch_existing_leads(WORKSPACE_ID)

        assert [row["id"] for row in rows] == ["lead-old", "lead-new"]

    def test_leads_paged_up_to_limit(self, mock_db, mock_supabase):
        mock_supabase.set_table_data("leads", LeadFactory.create_batch(2500))

        rows = ImportRepository().fetch_existing_leads(WORKSPACE_ID, limit=2200)

        assert len(rows) == 2200
        assert mock_supabase.call_count("leads", "select") == 3

    def test_api_error_becomes_database_error(self, mock_db, mock_supabase):
        mock_supabase.fail_call("leads", "select", make_api_error("permission denied", "42501"))

        with pytest.raises(DatabaseError) as exc_info:
            ImportRepository().fetch_existing_leads(WORKSPACE_ID)

        assert "permission denied" in exc_info.value.message

    def test_transport_error_becomes_storage_unavailable(self, mock_db, mock_supabase):
        mock_supabase.fail_call("transactions", "select", make_transport_error())

        with pytest.raises(StorageUnavailableError) as exc_info:
            ImportRepository().fetch_existing_transactions(
                WORKSPACE_ID, ACCOUNT_ID, date(2024, 1, 1), date(2024, 1, 2)
            )

        assert exc_info.value.status_code == 503


# ===================
# WRITE OPERATIONS
# ===================

def _records(count):
    return [{"workspace_id": WORKSPACE_ID, "title": f"Task {i}"} for i in range(count)]


class TestInsertBatch:
    """Tests for insert_batch()"""

    def test_inserts_in_chunks(self, mock_db, mock_supabase):
        outcome = ImportRepository().insert_batch("tasks", _records(5), batch_size=2)

        assert outcome.inserted_count == 5
        assert outcome.failed_count == 0
        assert mock_supabase.call_count("tasks", "insert") == 3
        assert outcome.inserted[4]["title"] == "Task 4"
        assert outcome.inserted[4]["id"]

    def test_rejected_chunk_fails_only_its_rows(self, mock_db, mock_supabase):
        mock_supabase.fail_call("tasks", "insert", make_api_error("value too long"), on_call=2)

        outcome = ImportRepository().insert_batch("tasks", _records(5), batch_size=2)

        assert sorted(outcome.inserted) == [0, 1, 4]
        assert outcome.failures == {2: "value too long", 3: "value too long"}
        assert len(mock_supabase.inserted["tasks"]) == 3

    def test_transport_failure_carries_partial_outcome(self, mock_db, mock_supabase):
        mock_supabase.fail_call("tasks", "insert", make_transport_error(), on_call=2)

        with pytest.raises(StorageUnavailableError) as exc_info:
            ImportRepository().insert_batch("tasks", _records(5), batch_size=2)

        outcome = exc_info.value.outcome
        assert isinstance(outcome, BatchInsertOutcome)
        assert sorted(outcome.inserted) == [0, 1]
        assert exc_info.value.details["processed"] == 2
        assert mock_supabase.call_count("tasks", "insert") == 2

    def test_empty_records(self, mock_db, mock_supabase):
        outcome = ImportRepository().insert_batch("tasks", [], batch_size=2)

        assert outcome.inserted_count == 0
        assert mock_supabase.calls == []


class TestInsertLeadsWithContacts:
    """Tests for insert_leads_with_contacts()"""

    LEADS = [{"name": "Acme"}, {"name": "Globex"}, {"name": "Initech"}]

    def test_contacts_get_new_lead_ids(self, mock_db, mock_supabase):
        contacts = [[{"first_name": "Jane"}, {"first_name": "Bob"}], [], [{"first_name": "Peter"}]]

        outcome = ImportRepository().insert_leads_with_contacts(self.LEADS, contacts, batch_size=2)

        lead_ids = {row["name"]: row["id"] for row in mock_supabase.inserted["leads"]}
        stored = [(c["first_name"], c["lead_id"]) for c in mock_supabase.inserted["contacts"]]
        assert outcome.inserted_count == 3
        assert outcome.children_created == 3
        assert stored == [
            ("Jane", lead_ids["Acme"]),
            ("Bob", lead_ids["Acme"]),
            ("Peter", lead_ids["Initech"]),
        ]

    def test_rejected_contacts_keep_leads(self, mock_db, mock_supabase):
        mock_supabase.fail_call("contacts", "insert", make_api_error("invalid email"))
        contacts = [[{"first_name": "Jane"}], [{"first_name": "Sam"}], []]

        outcome = ImportRepository().insert_leads_with_contacts(self.LEADS, contacts, batch_size=2)

        assert outcome.inserted_count == 3
        assert outcome.children_created == 0
        assert outcome.child_failures == {0: "invalid email", 1: "invalid email"}

    def test_rejected_lead_chunk_skips_its_contacts(self, mock_db, mock_supabase):
        mock_supabase.fail_call("leads", "insert", make_api_error("duplicate key"))
        contacts = [[{"first_name": "Jane"}], [], [{"first_name": "Peter"}]]

        outcome = ImportRepository().insert_leads_with_contacts(self.LEADS, contacts, batch_size=2)

        assert outcome.failures == {0: "duplicate key", 1: "duplicate key"}
        assert sorted(outcome.inserted) == [2]
        assert [c["first_name"] for c in mock_supabase.inserted["contacts"]] == ["Peter"]

    def test_missing_lead_id_reports_its_contacts(self, mock_db, mock_supabase):
        """Leads stored but not returned (e.g. hidden by row-level security)."""
        repo = ImportRepository()
        original = repo._insert_chunk

        def insert_without_lead_rows(table, chunk):
            rows = original(table, chunk)
            return [] if table == "leads" else rows

        contacts = [[{"first_name": "Jane"}], [], [{"first_name": "Peter"}]]
        with patch.object(repo, "_insert_chunk", side_effect=insert_without_lead_rows):
            outcome = repo.insert_leads_with_contacts(self.LEADS, contacts, batch_size=2)

        assert outcome.inserted_count == 3
        assert outcome.children_created == 0
        assert outcome.child_failures == {0: "lead id not returned", 2: "lead id not returned"}
        assert "contacts" not in mock_supabase.inserted


def test_get_import_repository_is_singleton(mock_db):
    assert get_import_repository() is get_import_repository()
