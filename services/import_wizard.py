"""
Import wizard state machine.

Steps, in order:
    select-entity-type → upload → map-columns → preview → importing → complete

ImportSession is immutable. Every transition is a pure function
(session, event data) → new session and raises when the event is not
allowed in the current step. Network calls (duplicate check, lead
matching, commit) are made by ImportService around these transitions.
"""

from dataclasses import dataclass, field, replace
from typing import Optional

from models.imports import (
    CandidateEntity,
    DetectedMapping,
    EntityType,
    FieldMapping,
    ImportResult,
    ImportStep,
    ParsedTable,
    PreviewSummary,
)
from parsers.entities import EntityImporter, get_entity_importer
from exceptions import (
    CommitInProgressError,
    InvalidImportStepError,
    MappingIncompleteError,
    NoImportableRowsError,
    ValidationError,
)


@dataclass(frozen=True)
class ImportSession:
    """One user's import in progress. Never persisted."""
    session_id: str
    workspace_id: str
    user_id: str
    step: ImportStep = ImportStep.SELECT_ENTITY_TYPE
    entity_type: Optional[EntityType] = None
    account_id: Optional[str] = None
    filename: Optional[str] = None
    table: Optional[ParsedTable] = None
    detected: Optional[DetectedMapping] = None
    mapping: Optional[FieldMapping] = None
    mapping_errors: tuple[str, ...] = ()
    candidates: tuple[CandidateEntity, ...] = ()
    annotated: bool = False
    include_duplicates: bool = False
    # Unmatched rows are always excluded; kept for the result contract
    include_unmatched: bool = False
    commit_in_progress: bool = False
    result: Optional[ImportResult] = None

    @property
    def importer(self) -> EntityImporter:
        return get_entity_importer(self.entity_type)


@dataclass
class CommitSelection:
    """Valid candidates split by what commit does with them."""
    accepted: list[CandidateEntity] = field(default_factory=list)
    skipped_duplicates: list[CandidateEntity] = field(default_factory=list)
    skipped_unmatched: list[CandidateEntity] = field(default_factory=list)
    invalid: list[CandidateEntity] = field(default_factory=list)

    @property
    def valid_count(self) -> int:
        return len(self.accepted) + len(self.skipped_duplicates) + len(self.skipped_unmatched)


def require_step(session: ImportSession, action: str, *allowed: ImportStep) -> None:
    if session.step not in allowed:
        raise InvalidImportStepError(
            current_step=session.step.value,
            action=action,
            allowed_steps=[s.value for s in allowed],
        )


def _clear_annotations(candidates: tuple[CandidateEntity, ...]) -> tuple[CandidateEntity, ...]:
    return tuple(
        c.model_copy(update={"match": None, "duplicate": None})
        for c in candidates
    )


# ===================
# TRANSITIONS
# ===================

def new_session(session_id: str, workspace_id: str, user_id: str) -> ImportSession:
    return ImportSession(session_id=session_id, workspace_id=workspace_id, user_id=user_id)


def select_entity_type(
    session: ImportSession,
    entity_type: EntityType,
    account_id: Optional[str] = None,
) -> ImportSession:
    """select-entity-type/upload → upload. Transactions need an account."""
    require_step(session, "select entity type", ImportStep.SELECT_ENTITY_TYPE, ImportStep.UPLOAD)

    if entity_type == EntityType.TRANSACTIONS and not account_id:
        raise ValidationError(
            message="An account is required to import transactions",
            code="IMPORT_ACCOUNT_REQUIRED",
            details={"entity_type": entity_type.value},
        )

    return replace(
        new_session(session.session_id, session.workspace_id, session.user_id),
        step=ImportStep.UPLOAD,
        entity_type=entity_type,
        account_id=account_id if entity_type == EntityType.TRANSACTIONS else None,
    )


def upload(session: ImportSession, filename: Optional[str], table: ParsedTable) -> ImportSession:
    """
    upload/map-columns → map-columns.

    Runs detection and a first live preview with the proposed mapping.
    """
    require_step(session, "upload a file", ImportStep.UPLOAD, ImportStep.MAP_COLUMNS)

    importer = session.importer
    detected = importer.detect(list(table.headers))

    session = replace(
        session,
        step=ImportStep.MAP_COLUMNS,
        filename=filename,
        table=table,
        detected=detected,
        annotated=False,
        result=None,
    )
    return _apply_mapping(session, detected.mapping)


def _apply_mapping(session: ImportSession, mapping: FieldMapping) -> ImportSession:
    """Validate the mapping and re-transform when it is usable."""
    importer = session.importer
    errors = importer.validate_mapping(mapping, list(session.table.headers))
    candidates = () if errors else tuple(importer.transform(session.table, mapping))

    return replace(
        session,
        mapping=mapping,
        mapping_errors=tuple(errors),
        candidates=candidates,
        annotated=False,
    )


def update_mapping(session: ImportSession, mapping: FieldMapping) -> ImportSession:
    """map-columns → map-columns with a live re-preview. No network."""
    require_step(session, "change the column mapping", ImportStep.MAP_COLUMNS)
    return _apply_mapping(session, mapping)


def confirm_mapping(session: ImportSession) -> ImportSession:
    """
    map-columns → preview.

    Candidates come back unannotated; attach_annotations() completes
    the preview once matching/duplicate checks have run.

    Raises:
        MappingIncompleteError: Required fields are not mapped
    """
    require_step(session, "preview", ImportStep.MAP_COLUMNS)

    session = _apply_mapping(session, session.mapping)
    if session.mapping_errors:
        raise MappingIncompleteError(session.entity_type.value, list(session.mapping_errors))

    return replace(
        session,
        step=ImportStep.PREVIEW,
        include_duplicates=False,
        result=None,
    )


def attach_annotations(session: ImportSession, candidates: list[CandidateEntity]) -> ImportSession:
    """preview → preview with match/duplicate annotations."""
    require_step(session, "attach match results", ImportStep.PREVIEW)
    return replace(session, candidates=tuple(candidates), annotated=True)


def set_include_duplicates(session: ImportSession, include: bool) -> ImportSession:
    require_step(session, "change import options", ImportStep.PREVIEW)
    return replace(session, include_duplicates=include)


def back(session: ImportSession) -> ImportSession:
    """
    One step back.

    preview → map-columns drops annotations (they depend on the mapping).
    """
    if session.step == ImportStep.PREVIEW:
        return replace(
            session,
            step=ImportStep.MAP_COLUMNS,
            candidates=_clear_annotations(session.candidates),
            annotated=False,
            include_duplicates=False,
            result=None,
        )
    if session.step == ImportStep.MAP_COLUMNS:
        return replace(
            session,
            step=ImportStep.UPLOAD,
            filename=None,
            table=None,
            detected=None,
            mapping=None,
            mapping_errors=(),
            candidates=(),
            annotated=False,
        )
    if session.step == ImportStep.UPLOAD:
        return replace(session, step=ImportStep.SELECT_ENTITY_TYPE)

    raise InvalidImportStepError(
        current_step=session.step.value,
        action="go back",
        allowed_steps=[
            ImportStep.UPLOAD.value,
            ImportStep.MAP_COLUMNS.value,
            ImportStep.PREVIEW.value,
        ],
    )


def begin_commit(session: ImportSession) -> ImportSession:
    """
    preview → importing, setting the busy flag.

    Raises:
        CommitInProgressError: A commit is already running
        NoImportableRowsError: Nothing would be inserted
    """
    if session.commit_in_progress or session.step == ImportStep.IMPORTING:
        raise CommitInProgressError(session.session_id)

    require_step(session, "import", ImportStep.PREVIEW)

    if not session.annotated:
        raise InvalidImportStepError(
            current_step=session.step.value,
            action="import before matching has finished",
            allowed_steps=[ImportStep.PREVIEW.value],
        )

    selection = select_for_commit(session)
    if not selection.accepted:
        raise NoImportableRowsError(
            total_rows=len(session.candidates),
            valid_rows=selection.valid_count,
        )

    return replace(
        session,
        step=ImportStep.IMPORTING,
        commit_in_progress=True,
        result=None,
    )


def finish_commit(session: ImportSession, result: ImportResult) -> ImportSession:
    """
    importing → complete, clearing the busy flag.

    A commit that imported nothing and failed returns to preview so the
    user can trigger it again.
    """
    require_step(session, "finish import", ImportStep.IMPORTING)

    next_step = ImportStep.COMPLETE
    if result.imported == 0 and not result.success:
        next_step = ImportStep.PREVIEW

    return replace(
        session,
        step=next_step,
        commit_in_progress=False,
        result=result,
    )


def reset(session: ImportSession) -> ImportSession:
    """Any step but importing → a fresh session with the same id."""
    if session.step == ImportStep.IMPORTING:
        raise CommitInProgressError(session.session_id)
    return new_session(session.session_id, session.workspace_id, session.user_id)


# ===================
# SELECTION
# ===================

def select_for_commit(session: ImportSession) -> CommitSelection:
    """
    Split candidates for commit.

    Accepted = valid, matched when the type needs a parent, and not a
    duplicate unless the user opted in.
    """
    selection = CommitSelection()
    if session.entity_type is None:
        return selection

    needs_parent = session.importer.requires_parent_match

    for candidate in session.candidates:
        if not candidate.is_valid:
            selection.invalid.append(candidate)
        elif needs_parent and not candidate.is_matched:
            selection.skipped_unmatched.append(candidate)
        elif candidate.is_duplicate and not session.include_duplicates:
            selection.skipped_duplicates.append(candidate)
        else:
            selection.accepted.append(candidate)

    return selection


def summarize(session: ImportSession) -> PreviewSummary:
    """Counts for the preview header."""
    candidates = session.candidates
    needs_parent = session.entity_type is not None and session.importer.requires_parent_match
    valid = [c for c in candidates if c.is_valid]
    selection = select_for_commit(session)

    return PreviewSummary(
        total_rows=len(candidates),
        valid=len(valid),
        invalid=len(candidates) - len(valid),
        duplicates=sum(1 for c in valid if c.is_duplicate),
        matched=sum(1 for c in valid if c.is_matched),
        unmatched=sum(1 for c in valid if needs_parent and not c.is_matched) if session.annotated else 0,
        importable=len(selection.accepted) if session.annotated else 0,
    )
