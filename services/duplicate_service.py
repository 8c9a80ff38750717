"""
Structural duplicate detection for transactions and leads.

A candidate is a duplicate when its equality key matches an existing
record, or an earlier valid row of the same file:
- transactions: (date, amount in cents, account)
- leads: normalized name, or normalized website domain

Existing records are fetched in one query per preview, never per row.
Invalid candidates are left unannotated.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional
import structlog

from models.imports import (
    CandidateEntity,
    DuplicateAnnotation,
    DuplicateReason,
    EntityType,
    ImportContext,
    LeadCandidate,
    TransactionCandidate,
)
from services.import_repository import ImportRepository, get_import_repository
from utils.text_utils import extract_domain, normalize_name

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")

NOT_DUPLICATE = DuplicateAnnotation(is_duplicate=False)

TransactionKey = tuple[date, Decimal, Optional[str]]


# ===================
# KEYS
# ===================

def transaction_key(candidate: TransactionCandidate, account_id: Optional[str]) -> TransactionKey:
    return (candidate.date, candidate.amount.quantize(CENTS), account_id)


def existing_transaction_key(row: dict) -> Optional[TransactionKey]:
    """Key for a stored transaction row; None if the row is unreadable."""
    try:
        row_date = date.fromisoformat(str(row["date"])[:10])
        amount = Decimal(str(row["amount"])).quantize(CENTS)
    except (KeyError, ValueError, InvalidOperation):
        return None
    return (row_date, amount, row.get("account_id"))


# ===================
# MATCHING
# ===================

def flag_transaction_duplicates(
    candidates: list[CandidateEntity],
    existing: list[dict],
    account_id: Optional[str],
) -> list[CandidateEntity]:
    """
    Annotate transaction candidates against existing rows and each other.

    Args:
        candidates: Transformed rows, file order
        existing: Stored transactions ({id, date, amount, account_id})
        account_id: Account the file is imported into

    Returns:
        Candidates with duplicate annotations (same order)
    """
    existing_by_key: dict[TransactionKey, str] = {}
    for row in existing:
        key = existing_transaction_key(row)
        if key is not None:
            existing_by_key.setdefault(key, row.get("id"))

    seen_in_file: dict[TransactionKey, int] = {}
    annotated = []

    for candidate in candidates:
        if not candidate.is_valid:
            annotated.append(candidate)
            continue

        key = transaction_key(candidate, account_id)

        if key in existing_by_key:
            annotation = DuplicateAnnotation(
                is_duplicate=True,
                matched_existing_id=existing_by_key[key],
                match_reason=DuplicateReason.SAME_DATE_AMOUNT_ACCOUNT,
            )
        elif key in seen_in_file:
            annotation = DuplicateAnnotation(
                is_duplicate=True,
                matched_row_number=seen_in_file[key],
                match_reason=DuplicateReason.SAME_DATE_AMOUNT_ACCOUNT,
            )
        else:
            annotation = NOT_DUPLICATE

        seen_in_file.setdefault(key, candidate.row_number)
        annotated.append(candidate.model_copy(update={"duplicate": annotation}))

    return annotated


def _name_match_reason(domain_hit: bool) -> DuplicateReason:
    if domain_hit:
        return DuplicateReason.EXACT_NAME_AND_DOMAIN
    return DuplicateReason.EXACT_NAME


def flag_lead_duplicates(
    candidates: list[CandidateEntity],
    existing: list[dict],
) -> list[CandidateEntity]:
    """
    Annotate lead candidates by normalized name or website domain.

    A name hit is checked first; if that record also shares the domain the
    reason is exact_name_and_domain. First record in fetch order wins.
    """
    by_name: dict[str, str] = {}
    by_domain: dict[str, str] = {}
    domain_of: dict[str, Optional[str]] = {}

    for row in existing:
        record_id = row.get("id")
        name_key = normalize_name(row.get("name"))
        domain = extract_domain(row.get("website"))
        domain_of[record_id] = domain
        if name_key:
            by_name.setdefault(name_key, record_id)
        if domain:
            by_domain.setdefault(domain, record_id)

    seen_names: dict[str, int] = {}
    seen_domains: dict[str, int] = {}
    annotated = []

    for candidate in candidates:
        if not candidate.is_valid:
            annotated.append(candidate)
            continue

        name_key = normalize_name(candidate.name)
        domain = candidate.website_domain

        annotation = NOT_DUPLICATE
        if name_key in by_name:
            record_id = by_name[name_key]
            domain_hit = domain is not None and domain_of.get(record_id) == domain
            annotation = DuplicateAnnotation(
                is_duplicate=True,
                matched_existing_id=record_id,
                match_reason=_name_match_reason(domain_hit),
            )
        elif domain and domain in by_domain:
            annotation = DuplicateAnnotation(
                is_duplicate=True,
                matched_existing_id=by_domain[domain],
                match_reason=DuplicateReason.SAME_DOMAIN,
            )
        elif name_key in seen_names:
            earlier_row = seen_names[name_key]
            domain_hit = domain is not None and seen_domains.get(domain) == earlier_row
            annotation = DuplicateAnnotation(
                is_duplicate=True,
                matched_row_number=earlier_row,
                match_reason=_name_match_reason(domain_hit),
            )
        elif domain and domain in seen_domains:
            annotation = DuplicateAnnotation(
                is_duplicate=True,
                matched_row_number=seen_domains[domain],
                match_reason=DuplicateReason.SAME_DOMAIN,
            )

        seen_names.setdefault(name_key, candidate.row_number)
        if domain:
            seen_domains.setdefault(domain, candidate.row_number)

        annotated.append(candidate.model_copy(update={"duplicate": annotation}))

    return annotated


# ===================
# SERVICE
# ===================

class DuplicateService:
    """Fetches existing records once and annotates candidates."""

    def __init__(self, repository: Optional[ImportRepository] = None):
        self.repository = repository or get_import_repository()

    def annotate(
        self,
        entity_type: EntityType,
        candidates: list[CandidateEntity],
        context: ImportContext,
    ) -> list[CandidateEntity]:
        """
        Attach duplicate annotations for duplicate-detectable types.

        Other entity types are returned unchanged.

        Raises:
            DatabaseError / StorageUnavailableError: Existing-record fetch failed
        """
        if entity_type == EntityType.TRANSACTIONS:
            annotated = self._annotate_transactions(candidates, context)
        elif entity_type == EntityType.LEADS:
            annotated = self._annotate_leads(candidates, context)
        else:
            return list(candidates)

        logger.info(
            "duplicate_check_complete",
            entity_type=entity_type.value,
            candidates=len(candidates),
            duplicates=sum(1 for c in annotated if c.is_duplicate),
        )
        return annotated

    def _annotate_transactions(
        self,
        candidates: list[CandidateEntity],
        context: ImportContext,
    ) -> list[CandidateEntity]:
        dates = [c.date for c in candidates if c.is_valid and c.date is not None]

        existing: list[dict] = []
        if dates and context.account_id:
            existing = self.repository.fetch_existing_transactions(
                workspace_id=context.workspace_id,
                account_id=context.account_id,
                date_min=min(dates),
                date_max=max(dates),
            )

        return flag_transaction_duplicates(candidates, existing, context.account_id)

    def _annotate_leads(
        self,
        candidates: list[CandidateEntity],
        context: ImportContext,
    ) -> list[CandidateEntity]:
        existing: list[dict] = []
        if any(c.is_valid for c in candidates):
            existing = self.repository.fetch_existing_leads(context.workspace_id)

        return flag_lead_duplicates(candidates, existing)


# Singleton instance
_duplicate_service: Optional[DuplicateService] = None


def get_duplicate_service() -> DuplicateService:
    """Get or create DuplicateService instance."""
    global _duplicate_service
    if _duplicate_service is None:
        _duplicate_service = DuplicateService()
    return _duplicate_service
