"""
Fuzzy lead-name matching for contacts, opportunities and tasks.

Each distinct reference name (after normalization) is scored once against
every existing lead and the result is copied to all rows sharing it, so
identical names always get identical annotations.

Ties on the top score keep the first lead in fetch order (oldest first).
"""

from typing import Iterable, Optional
import structlog

from rapidfuzz import fuzz

from config import settings
from models.imports import (
    CandidateEntity,
    MatchAlternative,
    MatchAnnotation,
    MatchType,
)
from services.import_repository import ImportRepository, get_import_repository
from utils.text_utils import normalize_name

logger = structlog.get_logger(__name__)

MIN_ALTERNATIVE_SCORE = 50
MAX_ALTERNATIVES = 3


# ===================
# SCORING
# ===================

def similarity(a: str, b: str) -> int:
    """0-100 similarity of two normalized names."""
    if not a or not b:
        return 0
    if a == b:
        return 100
    return int(fuzz.ratio(a, b))


def prepare_existing(existing: list[dict]) -> list[tuple[str, str, str]]:
    """(id, display name, normalized name) for leads that have a name."""
    prepared = []
    for row in existing:
        normalized = normalize_name(row.get("name"))
        if normalized:
            prepared.append((row["id"], row.get("name") or "", normalized))
    return prepared


def resolve_name(
    name_key: str,
    existing: list[tuple[str, str, str]],
    threshold: int,
) -> MatchAnnotation:
    """
    Match one normalized name against prepared existing leads.

    Args:
        name_key: Normalized reference name
        existing: Output of prepare_existing(), fetch order
        threshold: Minimum score to accept a match

    Returns:
        MatchAnnotation; matched_record_id is None below threshold
    """
    scored = []
    best_index = None
    best_score = 0

    for index, (record_id, name, normalized) in enumerate(existing):
        score = similarity(name_key, normalized)
        if score < MIN_ALTERNATIVE_SCORE:
            continue
        scored.append((score, index))
        # Strictly greater: first record in fetch order keeps a tie
        if score > best_score:
            best_score = score
            best_index = index

    # Stable sort keeps fetch order within equal scores
    scored.sort(key=lambda s: -s[0])

    if best_index is None or best_score < threshold:
        return MatchAnnotation(
            reference_name=name_key,
            match_confidence=best_score,
            match_type=MatchType.NONE,
            candidate_alternatives=tuple(
                MatchAlternative(
                    record_id=existing[index][0],
                    name=existing[index][1],
                    confidence=score,
                )
                for score, index in scored[:MAX_ALTERNATIVES]
            ),
        )

    record_id, name, normalized = existing[best_index]
    alternatives = [(score, index) for score, index in scored if index != best_index]

    return MatchAnnotation(
        reference_name=name_key,
        matched_record_id=record_id,
        matched_record_name=name,
        match_confidence=best_score,
        match_type=MatchType.EXACT if normalized == name_key else MatchType.FUZZY,
        candidate_alternatives=tuple(
            MatchAlternative(
                record_id=existing[index][0],
                name=existing[index][1],
                confidence=score,
            )
            for score, index in alternatives[:MAX_ALTERNATIVES]
        ),
    )


def match_names(
    names: Iterable[str],
    existing: list[dict],
    threshold: int,
) -> dict[str, MatchAnnotation]:
    """
    Resolve distinct reference names.

    Returns:
        normalized name -> MatchAnnotation
    """
    prepared = prepare_existing(existing)
    results: dict[str, MatchAnnotation] = {}

    for name in names:
        key = normalize_name(name)
        if key in results:
            continue
        results[key] = resolve_name(key, prepared, threshold)

    return results


def annotate_matches(
    candidates: list[CandidateEntity],
    existing: list[dict],
    threshold: int,
) -> list[CandidateEntity]:
    """
    Attach match annotations to valid candidates that reference a lead.

    Invalid candidates and candidates without a reference name are
    returned unchanged.
    """
    names = [
        c.reference_name for c in candidates
        if c.is_valid and c.reference_name
    ]
    results = match_names(names, existing, threshold)

    annotated = []
    for candidate in candidates:
        if not candidate.is_valid or not candidate.reference_name:
            annotated.append(candidate)
            continue
        match = results[normalize_name(candidate.reference_name)]
        annotated.append(candidate.model_copy(update={"match": match}))

    return annotated


# ===================
# SERVICE
# ===================

class LeadMatcherService:
    """Fetches the workspace's leads once per preview and matches names."""

    def __init__(self, repository: Optional[ImportRepository] = None):
        self.repository = repository or get_import_repository()

    def annotate(
        self,
        candidates: list[CandidateEntity],
        workspace_id: str,
        threshold: Optional[int] = None,
    ) -> list[CandidateEntity]:
        """
        Match candidates' lead names against existing leads.

        Raises:
            DatabaseError / StorageUnavailableError: Lead fetch failed
        """
        threshold = threshold if threshold is not None else settings.import_match_threshold

        if not any(c.is_valid and c.reference_name for c in candidates):
            return list(candidates)

        existing = self.repository.fetch_existing_leads(workspace_id)
        annotated = annotate_matches(candidates, existing, threshold)

        distinct = {c.match.reference_name for c in annotated if c.match is not None}
        matched = sum(1 for c in annotated if c.is_matched)

        logger.info(
            "lead_matching_complete",
            candidates=len(candidates),
            distinct_names=len(distinct),
            existing_leads=len(existing),
            matched=matched,
            threshold=threshold,
        )
        return annotated


# Singleton instance
_lead_matcher_service: Optional[LeadMatcherService] = None


def get_lead_matcher_service() -> LeadMatcherService:
    """Get or create LeadMatcherService instance."""
    global _lead_matcher_service
    if _lead_matcher_service is None:
        _lead_matcher_service = LeadMatcherService()
    return _lead_matcher_service
