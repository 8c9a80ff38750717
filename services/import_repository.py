"""
Storage boundary for bulk imports.

Three operations against Supabase:
- fetch existing records (duplicate check, lead matching)
- batch insert accepted rows for one entity type
- insert leads together with their nested contacts

Inserts are chunked. A chunk rejected by PostgREST fails only its own
rows; a transport failure stops the call and raises
StorageUnavailableError carrying what was inserted so far.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional
import structlog

import httpx
from postgrest.exceptions import APIError

from config import get_supabase_client, settings
from exceptions import DatabaseError, StorageUnavailableError

logger = structlog.get_logger(__name__)


# PostgREST caps rows per response; fetches page through in this size
FETCH_PAGE_SIZE = 1000


@dataclass
class BatchInsertOutcome:
    """
    Per-row result of a chunked insert.

    Keys are positions in the list passed to the insert call.
    """
    inserted: dict[int, dict] = field(default_factory=dict)
    failures: dict[int, str] = field(default_factory=dict)

    # Leads only: nested contacts
    children_created: int = 0
    child_failures: dict[int, str] = field(default_factory=dict)

    @property
    def inserted_count(self) -> int:
        return len(self.inserted)

    @property
    def failed_count(self) -> int:
        return len(self.failures)


def _api_error_message(e: APIError) -> str:
    return getattr(e, "message", None) or str(e)


class ImportRepository:
    """Supabase access for the import pipeline."""

    def __init__(self):
        self.db = get_supabase_client()

    # ===================
    # READ OPERATIONS
    # ===================

    def _fetch_paged(self, build_query, limit: int, operation: str) -> list[dict]:
        """Run a query page by page until exhausted or limit reached."""
        rows: list[dict] = []
        try:
            while len(rows) < limit:
                start = len(rows)
                end = min(start + FETCH_PAGE_SIZE, limit) - 1
                result = build_query().range(start, end).execute()
                page = result.data or []
                rows.extend(page)
                if len(page) < end - start + 1:
                    break
        except APIError as e:
            logger.error(f"{operation}_failed", error=_api_error_message(e))
            raise DatabaseError("select", _api_error_message(e))
        except httpx.HTTPError as e:
            logger.error(f"{operation}_failed", error=str(e), error_type=type(e).__name__)
            raise StorageUnavailableError(f"Could not reach the database: {e}")

        return rows[:limit]

    def fetch_existing_transactions(
        self,
        workspace_id: str,
        account_id: str,
        date_min: date,
        date_max: date,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """
        Existing transactions for one account within a date range.

        Returns:
            List of {id, date, amount, account_id}
        """
        limit = limit or settings.import_existing_fetch_limit

        logger.info(
            "fetching_existing_transactions",
            account_id=account_id,
            date_min=date_min.isoformat(),
            date_max=date_max.isoformat(),
        )

        def build_query():
            return (
                self.db.table("transactions")
                .select("id, date, amount, account_id")
                .eq("workspace_id", workspace_id)
                .eq("account_id", account_id)
                .gte("date", date_min.isoformat())
                .lte("date", date_max.isoformat())
                .order("date")
                .order("id")
            )

        rows = self._fetch_paged(build_query, limit, "fetch_existing_transactions")

        logger.info("existing_transactions_fetched", count=len(rows))
        return rows

    def fetch_existing_leads(
        self,
        workspace_id: str,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """
        Existing leads for a workspace, oldest first.

        The order is the tie-break order for fuzzy matching.

        Returns:
            List of {id, name, website}
        """
        limit = limit or settings.import_existing_fetch_limit

        logger.info("fetching_existing_leads", workspace_id=workspace_id, limit=limit)

        def build_query():
            return (
                self.db.table("leads")
                .select("id, name, website")
                .eq("workspace_id", workspace_id)
                .order("created_at")
                .order("id")
            )

        rows = self._fetch_paged(build_query, limit, "fetch_existing_leads")

        if len(rows) >= limit:
            logger.warning("existing_leads_truncated", limit=limit)

        logger.info("existing_leads_fetched", count=len(rows))
        return rows

    # ===================
    # WRITE OPERATIONS
    # ===================

    def _insert_chunk(self, table: str, chunk: list[dict]) -> list[dict]:
        result = self.db.table(table).insert(chunk).execute()
        return result.data or []

    def insert_batch(
        self,
        table: str,
        records: list[dict[str, Any]],
        batch_size: Optional[int] = None,
        outcome: Optional[BatchInsertOutcome] = None,
    ) -> BatchInsertOutcome:
        """
        Insert records in chunks.

        Args:
            table: Target table
            records: Insert payloads
            batch_size: Rows per request
            outcome: Filled in place when given, so a caller still sees
                what landed if the call raises

        Returns:
            BatchInsertOutcome keyed by position in records

        Raises:
            StorageUnavailableError: Transport failure; .outcome holds the
                rows inserted before it
        """
        batch_size = batch_size or settings.import_batch_size
        outcome = outcome if outcome is not None else BatchInsertOutcome()

        for start in range(0, len(records), batch_size):
            chunk = records[start:start + batch_size]
            try:
                rows = self._insert_chunk(table, chunk)
            except APIError as e:
                message = _api_error_message(e)
                logger.warning(
                    "import_chunk_rejected",
                    table=table,
                    start=start,
                    size=len(chunk),
                    error=message,
                )
                for position in range(start, start + len(chunk)):
                    outcome.failures[position] = message
                continue
            except httpx.HTTPError as e:
                logger.error(
                    "import_chunk_transport_failed",
                    table=table,
                    start=start,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise StorageUnavailableError(
                    f"Could not reach the database: {e}",
                    outcome=outcome,
                    details={"table": table, "processed": start},
                )

            for offset in range(len(chunk)):
                outcome.inserted[start + offset] = rows[offset] if offset < len(rows) else {}

            logger.debug("import_chunk_inserted", table=table, start=start, size=len(chunk))

        logger.info(
            "import_batch_inserted",
            table=table,
            inserted=outcome.inserted_count,
            failed=outcome.failed_count,
        )
        return outcome

    def insert_leads_with_contacts(
        self,
        leads: list[dict[str, Any]],
        contacts: list[list[dict[str, Any]]],
        batch_size: Optional[int] = None,
        outcome: Optional[BatchInsertOutcome] = None,
    ) -> BatchInsertOutcome:
        """
        Insert leads, then each inserted lead's contacts with its new id.

        Args:
            leads: Lead payloads
            contacts: Contact payloads per lead (same positions as leads),
                lead_id is filled in here
            batch_size: Leads per request
            outcome: Filled in place when given

        Returns:
            BatchInsertOutcome for the leads; children_created and
            child_failures describe the contacts

        Raises:
            StorageUnavailableError: Transport failure; .outcome holds the
                leads and contacts inserted before it
        """
        batch_size = batch_size or settings.import_batch_size
        outcome = outcome if outcome is not None else BatchInsertOutcome()

        for start in range(0, len(leads), batch_size):
            chunk = leads[start:start + batch_size]
            try:
                rows = self._insert_chunk("leads", chunk)
            except APIError as e:
                message = _api_error_message(e)
                logger.warning("lead_chunk_rejected", start=start, size=len(chunk), error=message)
                for position in range(start, start + len(chunk)):
                    outcome.failures[position] = message
                continue
            except httpx.HTTPError as e:
                logger.error("lead_chunk_transport_failed", start=start, error=str(e))
                raise StorageUnavailableError(
                    f"Could not reach the database: {e}",
                    outcome=outcome,
                    details={"table": "leads", "processed": start},
                )

            child_rows = []
            child_positions = []
            for offset in range(len(chunk)):
                position = start + offset
                row = rows[offset] if offset < len(rows) else {}
                outcome.inserted[position] = row
                lead_id = row.get("id")
                if lead_id is None:
                    if contacts[position]:
                        outcome.child_failures[position] = "lead id not returned"
                    continue
                for contact in contacts[position]:
                    child_rows.append({**contact, "lead_id": lead_id})
                    child_positions.append(position)

            if not child_rows:
                continue

            try:
                self._insert_chunk("contacts", child_rows)
                outcome.children_created += len(child_rows)
            except APIError as e:
                message = _api_error_message(e)
                logger.warning("lead_contacts_rejected", start=start, size=len(child_rows), error=message)
                for position in child_positions:
                    outcome.child_failures[position] = message
            except httpx.HTTPError as e:
                logger.error("lead_contacts_transport_failed", start=start, error=str(e))
                raise StorageUnavailableError(
                    f"Could not reach the database: {e}",
                    outcome=outcome,
                    details={"table": "contacts", "processed": start + len(chunk)},
                )

        logger.info(
            "leads_with_contacts_inserted",
            leads=outcome.inserted_count,
            failed=outcome.failed_count,
            contacts=outcome.children_created,
        )
        return outcome


# Singleton instance
_import_repository: Optional[ImportRepository] = None


def get_import_repository() -> ImportRepository:
    """Get or create ImportRepository instance."""
    global _import_repository
    if _import_repository is None:
        _import_repository = ImportRepository()
    return _import_repository
