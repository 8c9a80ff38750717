"""
Column mapping detector.

Scores each source header against per-field synonym lists and proposes a
1:1 mapping (one header per field, one field per header). Lead imports
additionally detect repeated contact groups ("Contact 2 Email", "Email 2").

Detection never raises: the worst case is an all-unmapped proposal,
which the mapping validation then blocks.
"""

import re
from typing import Optional
import structlog

from models.imports import ContactSlotMapping, DetectedMapping, EntityType, FieldMapping
from utils.text_utils import normalize_header

logger = structlog.get_logger(__name__)


EXACT_SCORE = 100
MIN_PARTIAL_SCORE = 50
MAX_PARTIAL_SCORE = 90

# Tokens that mark a header as belonging to a contact group
CONTACT_TOKENS = {"contact", "primary"}

_LETTER_DIGIT_BOUNDARY = re.compile(r"(?<=[a-z])(?=\d)|(?<=\d)(?=[a-z])")


def _tokens(text: str) -> list[str]:
    """Normalized header tokens, with digits split from letters ("contact2" → "contact 2")."""
    return _LETTER_DIGIT_BOUNDARY.sub(" ", normalize_header(text)).split()


def _contains_sequence(tokens: list[str], sub: list[str]) -> bool:
    n = len(sub)
    return any(tokens[i:i + n] == sub for i in range(len(tokens) - n + 1))


def score_tokens(tokens: list[str], synonyms: list[str]) -> int:
    """
    Best score of a token list against a field's synonyms.

    - Equal to a synonym → 100
    - Contains a synonym's token sequence → 50-90 by coverage
    - Otherwise → 0
    """
    if not tokens:
        return 0

    best = 0
    for synonym in synonyms:
        syn_tokens = _tokens(synonym)
        if not syn_tokens:
            continue
        if tokens == syn_tokens:
            return EXACT_SCORE
        if len(syn_tokens) < len(tokens) and _contains_sequence(tokens, syn_tokens):
            coverage = len(syn_tokens) / len(tokens)
            score = MIN_PARTIAL_SCORE + int((MAX_PARTIAL_SCORE - MIN_PARTIAL_SCORE) * coverage)
            best = max(best, min(score, MAX_PARTIAL_SCORE))
    return best


def score_header(header: str, synonyms: list[str]) -> int:
    """Score a raw header against a field's synonyms (0-100)."""
    return score_tokens(_tokens(header), synonyms)


def _assign(candidates: list[tuple[int, int, int, str]]) -> dict[str, tuple[int, int]]:
    """
    Greedy 1:1 assignment.

    Args:
        candidates: (score, field_priority, header_index, target) tuples

    Returns:
        target -> (header_index, score)
    """
    assigned: dict[str, tuple[int, int]] = {}
    used_headers: set[int] = set()

    # Highest score first; ties go to the earlier field, then the earlier header
    for score, _, header_index, target in sorted(candidates, key=lambda c: (-c[0], c[1], c[2])):
        if target in assigned or header_index in used_headers:
            continue
        assigned[target] = (header_index, score)
        used_headers.add(header_index)

    return assigned


def detect_fields(
    entity_type: EntityType,
    headers: list[str],
    synonyms: dict[str, list[str]],
) -> DetectedMapping:
    """
    Propose a flat field mapping.

    Args:
        entity_type: Entity being imported
        headers: Source headers in file order
        synonyms: Canonical field -> synonyms, in field priority order

    Returns:
        DetectedMapping with every field present (None when unmapped)
    """
    candidates = []
    for priority, (field, field_synonyms) in enumerate(synonyms.items()):
        for index, header in enumerate(headers):
            score = score_header(header, field_synonyms)
            if score > 0:
                candidates.append((score, priority, index, field))

    assigned = _assign(candidates)

    fields = {field: assigned[field][0] if field in assigned else None for field in synonyms}
    scores = {field: assigned[field][1] for field in assigned}
    used = {index for index, _ in assigned.values()}

    logger.debug(
        "columns_detected",
        entity_type=entity_type.value,
        mapped=len(assigned),
        total_fields=len(synonyms),
    )

    return DetectedMapping(
        mapping=FieldMapping(entity_type=entity_type, fields=fields),
        scores=scores,
        unmapped_headers=tuple(i for i in range(len(headers)) if i not in used),
    )


# ===================
# CONTACT SLOTS
# ===================

def slot_label(slot_index: int) -> str:
    """Display label for a contact slot."""
    if slot_index == 0:
        return "Primary Contact"
    return f"Contact {slot_index + 1}"


def parse_slot_header(header: str) -> tuple[Optional[int], bool, list[str]]:
    """
    Split a header into (repetition number, has contact marker, remaining tokens).

    - "Contact 2 Email" → (2, True, ["email"])
    - "contact2_first_name" → (2, True, ["first", "name"])
    - "Email 2" → (2, False, ["email"])
    - "Contact Phone" → (None, True, ["phone"])
    """
    tokens = _tokens(header)
    number = None
    rest = []
    has_marker = False

    for token in tokens:
        if token in CONTACT_TOKENS:
            has_marker = True
        elif token.isdigit() and number is None:
            number = int(token)
        else:
            rest.append(token)

    return number, has_marker, rest


def detect_lead_fields(
    headers: list[str],
    lead_synonyms: dict[str, list[str]],
    slot_synonyms: dict[str, list[str]],
    max_slots: int,
) -> DetectedMapping:
    """
    Propose a lead mapping with repeated contact slots.

    Numbered headers go to repetition n, un-numbered contact headers to
    repetition 1 (the primary contact). Lead fields and slot fields compete
    in one greedy pass, lead fields first on equal scores. Headers carrying
    a "contact" marker are only eligible for slot fields.

    Slots are renumbered 0..k-1 in repetition order and capped at max_slots.
    """
    candidates = []
    priority = 0

    for field, field_synonyms in lead_synonyms.items():
        for index, header in enumerate(headers):
            _, has_marker, _ = parse_slot_header(header)
            if has_marker:
                continue
            score = score_header(header, field_synonyms)
            if score > 0:
                candidates.append((score, priority, index, field))
        priority += 1

    for field_order, (field, field_synonyms) in enumerate(slot_synonyms.items()):
        for index, header in enumerate(headers):
            number, _, rest = parse_slot_header(header)
            repetition = number if number and number > 0 else 1
            score = score_tokens(rest, field_synonyms)
            if score > 0:
                # Repetition first so Contact 1 fields outrank Contact 2 on ties
                slot_priority = priority + repetition * len(slot_synonyms) + field_order
                candidates.append((score, slot_priority, index, f"{repetition}:{field}"))

    assigned = _assign(candidates)

    fields = {
        field: assigned[field][0] if field in assigned else None
        for field in lead_synonyms
    }
    scores = {field: assigned[field][1] for field in lead_synonyms if field in assigned}

    by_repetition: dict[int, dict[str, int]] = {}
    slot_scores: dict[int, dict[str, int]] = {}
    for target, (index, score) in assigned.items():
        if ":" not in target:
            continue
        repetition_str, field = target.split(":", 1)
        repetition = int(repetition_str)
        by_repetition.setdefault(repetition, {})[field] = index
        slot_scores.setdefault(repetition, {})[field] = score

    repetitions = sorted(by_repetition)
    if len(repetitions) > max_slots:
        logger.info(
            "contact_slots_capped",
            detected=len(repetitions),
            max_slots=max_slots,
        )
        repetitions = repetitions[:max_slots]

    slots = []
    used = {index for target, (index, _) in assigned.items() if ":" not in target}
    for slot_index, repetition in enumerate(repetitions):
        slot_fields = {
            field: by_repetition[repetition].get(field)
            for field in slot_synonyms
        }
        slots.append(ContactSlotMapping(
            slot_index=slot_index,
            label=slot_label(slot_index),
            fields=slot_fields,
        ))
        used.update(by_repetition[repetition].values())
        for field, score in slot_scores[repetition].items():
            scores[f"contact_{slot_index}.{field}"] = score

    logger.debug(
        "lead_columns_detected",
        mapped=len(fields) - list(fields.values()).count(None),
        contact_slots=len(slots),
    )

    return DetectedMapping(
        mapping=FieldMapping(
            entity_type=EntityType.LEADS,
            fields=fields,
            contact_slots=tuple(slots),
        ),
        scores=scores,
        unmapped_headers=tuple(i for i in range(len(headers)) if i not in used),
    )
