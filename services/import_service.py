"""
Import orchestrator.

Drives an ImportSession through the wizard: runs the pure transitions
from import_wizard, and the side effects around them (file parsing,
duplicate check, lead matching, commit).

See services/import_wizard.py for the step rules.
"""

from typing import Any, Optional
import structlog

from config import settings
from models.imports import (
    CandidateEntity,
    ContactSlotMapping,
    EntityType,
    FieldMappingRequest,
    ImportContext,
    ImportResult,
    ImportSessionResponse,
    ImportStep,
)
from parsers.csv_parser import parse_upload
from parsers.column_detector import slot_label
from services import import_session_store as store
from services import import_wizard as wizard
from services.import_wizard import ImportSession, CommitSelection
from services.import_repository import (
    BatchInsertOutcome,
    ImportRepository,
    get_import_repository,
)
from services.duplicate_service import DuplicateService, get_duplicate_service
from services.lead_matcher_service import LeadMatcherService, get_lead_matcher_service
from utils.text_utils import normalize_name
from exceptions import (
    AppError,
    ConflictError,
    FileTooLargeError,
    StorageUnavailableError,
)

logger = structlog.get_logger(__name__)

SAMPLE_ROW_COUNT = 5
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred during import"


class ImportService:
    """
    Bulk import orchestration.

    One method per wizard event; each returns the updated session.
    """

    def __init__(
        self,
        repository: Optional[ImportRepository] = None,
        duplicates: Optional[DuplicateService] = None,
        matcher: Optional[LeadMatcherService] = None,
    ):
        self.repository = repository or get_import_repository()
        self.duplicates = duplicates or DuplicateService(self.repository)
        self.matcher = matcher or LeadMatcherService(self.repository)

    # ===================
    # SESSION EVENTS
    # ===================

    def create_session(
        self,
        workspace_id: str,
        user_id: str,
        entity_type: Optional[EntityType] = None,
        account_id: Optional[str] = None,
    ) -> ImportSession:
        """Open a wizard session, optionally choosing the entity type up front."""
        session = store.create_session(workspace_id, user_id)

        logger.info(
            "import_session_created",
            session_id=session.session_id,
            workspace_id=workspace_id,
            entity_type=entity_type.value if entity_type else None,
        )

        if entity_type is None:
            return session

        try:
            return store.update_session(
                session.session_id, workspace_id, user_id,
                lambda s: wizard.select_entity_type(s, entity_type, account_id),
            )
        except AppError:
            store.delete_session(session.session_id, workspace_id, user_id)
            raise

    def get_session(self, session_id: str, workspace_id: str, user_id: str) -> ImportSession:
        return store.get_session(session_id, workspace_id, user_id)

    def select_entity_type(
        self,
        session_id: str,
        workspace_id: str,
        user_id: str,
        entity_type: EntityType,
        account_id: Optional[str] = None,
    ) -> ImportSession:
        session = store.update_session(
            session_id, workspace_id, user_id,
            lambda s: wizard.select_entity_type(s, entity_type, account_id),
        )
        logger.info("import_entity_type_selected", session_id=session_id, entity_type=entity_type.value)
        return session

    def upload(
        self,
        session_id: str,
        workspace_id: str,
        user_id: str,
        content: bytes,
        filename: Optional[str],
        delimiter: Optional[str] = None,
    ) -> ImportSession:
        """
        Parse an uploaded file and propose a column mapping.

        Raises:
            FileTooLargeError: Upload exceeds the configured limit
            MalformedInputError: Unreadable file or no data rows
            InvalidImportStepError: Session is not waiting for a file
        """
        if len(content) > settings.import_max_file_bytes:
            raise FileTooLargeError(len(content), settings.import_max_file_bytes)

        # Step check before parsing
        current = store.get_session(session_id, workspace_id, user_id)
        wizard.require_step(current, "upload a file", ImportStep.UPLOAD, ImportStep.MAP_COLUMNS)

        table = parse_upload(content, filename, delimiter)

        session = store.update_session(
            session_id, workspace_id, user_id,
            lambda s: wizard.upload(s, filename, table),
        )

        logger.info(
            "import_file_uploaded",
            session_id=session_id,
            entity_type=session.entity_type.value,
            filename=filename,
            rows=table.row_count,
            columns=len(table.headers),
            mapping_errors=len(session.mapping_errors),
        )
        return session

    def update_mapping(
        self,
        session_id: str,
        workspace_id: str,
        user_id: str,
        request: FieldMappingRequest,
    ) -> ImportSession:
        """Apply a user-edited mapping and re-transform (live re-preview)."""
        def transition(session: ImportSession) -> ImportSession:
            wizard.require_step(session, "change the column mapping", ImportStep.MAP_COLUMNS)
            slots = [
                ContactSlotMapping(
                    slot_index=slot.slot_index,
                    label=slot.label or slot_label(slot.slot_index),
                    fields=slot.fields,
                )
                for slot in sorted(request.contact_slots, key=lambda s: s.slot_index)
            ]
            mapping = session.importer.build_mapping(request.fields, slots)
            return wizard.update_mapping(session, mapping)

        session = store.update_session(session_id, workspace_id, user_id, transition)

        logger.debug(
            "import_mapping_updated",
            session_id=session_id,
            mapping_errors=len(session.mapping_errors),
        )
        return session

    def preview(self, session_id: str, workspace_id: str, user_id: str) -> ImportSession:
        """
        Confirm the mapping and run duplicate detection / lead matching.

        Raises:
            MappingIncompleteError: Required fields not mapped
            DatabaseError / StorageUnavailableError: Existing-record fetch failed
        """
        current = store.get_session(session_id, workspace_id, user_id)
        confirmed = wizard.confirm_mapping(current)

        candidates = self._annotate(confirmed)

        def transition(session: ImportSession) -> ImportSession:
            if session is not current:
                raise ConflictError(
                    message="Import session changed while preview was running",
                    code="IMPORT_SESSION_CHANGED",
                    details={"session_id": session_id},
                )
            return wizard.attach_annotations(confirmed, candidates)

        session = store.update_session(session_id, workspace_id, user_id, transition)
        summary = wizard.summarize(session)

        logger.info(
            "import_preview_ready",
            session_id=session_id,
            entity_type=session.entity_type.value,
            total=summary.total_rows,
            valid=summary.valid,
            duplicates=summary.duplicates,
            unmatched=summary.unmatched,
            importable=summary.importable,
        )
        return session

    def set_include_duplicates(
        self,
        session_id: str,
        workspace_id: str,
        user_id: str,
        include: bool,
    ) -> ImportSession:
        return store.update_session(
            session_id, workspace_id, user_id,
            lambda s: wizard.set_include_duplicates(s, include),
        )

    def back(self, session_id: str, workspace_id: str, user_id: str) -> ImportSession:
        return store.update_session(session_id, workspace_id, user_id, wizard.back)

    def reset(self, session_id: str, workspace_id: str, user_id: str) -> ImportSession:
        session = store.update_session(session_id, workspace_id, user_id, wizard.reset)
        logger.info("import_session_reset", session_id=session_id)
        return session

    def close(self, session_id: str, workspace_id: str, user_id: str) -> None:
        store.delete_session(session_id, workspace_id, user_id)
        logger.info("import_session_closed", session_id=session_id)

    # ===================
    # COMMIT
    # ===================

    def commit(self, session_id: str, workspace_id: str, user_id: str) -> ImportSession:
        """
        Insert the accepted candidates.

        At most one commit per session runs at a time; a second call while
        one is in flight is rejected. Nothing is retried.

        Raises:
            CommitInProgressError: A commit is already running
            NoImportableRowsError: No candidate would be inserted
        """
        session = store.update_session(session_id, workspace_id, user_id, wizard.begin_commit)

        logger.info(
            "import_commit_started",
            session_id=session_id,
            entity_type=session.entity_type.value,
            rows=len(session.candidates),
        )

        # Filled in by the repository as chunks land
        outcome = BatchInsertOutcome()
        try:
            result = self._execute_commit(session, outcome)
        except Exception as e:
            logger.error(
                "import_commit_failed",
                session_id=session_id,
                inserted=outcome.inserted_count,
                error=str(e),
                error_type=type(e).__name__,
            )
            selection = wizard.select_for_commit(session)
            failed = ImportResult(
                success=False,
                imported=outcome.inserted_count,
                failed=len(selection.accepted) - outcome.inserted_count,
                sub_entities_created=outcome.children_created,
                skipped_duplicates=len(selection.skipped_duplicates),
                skipped_unmatched=len(selection.skipped_unmatched),
                errors=[UNEXPECTED_ERROR_MESSAGE],
                unmatched_names=_distinct_names(selection.skipped_unmatched),
            )
            store.save_session(wizard.finish_commit(session, failed))
            raise

        finished = wizard.finish_commit(session, result)
        if not store.save_session(finished):
            logger.info("import_session_closed_during_commit", session_id=session_id)

        logger.info(
            "import_commit_complete",
            session_id=session_id,
            entity_type=session.entity_type.value,
            success=result.success,
            imported=result.imported,
            failed=result.failed,
            skipped_duplicates=result.skipped_duplicates,
            skipped_unmatched=result.skipped_unmatched,
            sub_entities_created=result.sub_entities_created,
        )
        return finished

    def _execute_commit(self, session: ImportSession, outcome: BatchInsertOutcome) -> ImportResult:
        importer = session.importer
        selection = wizard.select_for_commit(session)
        context = self._context(session)
        accepted = selection.accepted

        records = [importer.to_record(c, context) for c in accepted]
        errors: list[str] = []

        try:
            if session.entity_type == EntityType.LEADS:
                contacts = [importer.contact_records(c, None, context) for c in accepted]
                self.repository.insert_leads_with_contacts(records, contacts, outcome=outcome)
            else:
                self.repository.insert_batch(importer.table, records, outcome=outcome)
        except StorageUnavailableError as e:
            not_attempted = [
                position for position in range(len(accepted))
                if position not in outcome.inserted and position not in outcome.failures
            ]
            for position in not_attempted:
                outcome.failures[position] = f"not imported ({e.message})"
            logger.error(
                "import_commit_aborted",
                session_id=session.session_id,
                inserted=outcome.inserted_count,
                not_attempted=len(not_attempted),
                error=e.message,
            )

        for position, message in sorted(outcome.failures.items()):
            errors.append(f"{accepted[position].describe()}: {message}")
        for position, message in sorted(outcome.child_failures.items()):
            errors.append(f"{accepted[position].describe()}: contacts not created ({message})")

        return self._build_result(selection, outcome, errors)

    def _build_result(
        self,
        selection: CommitSelection,
        outcome: BatchInsertOutcome,
        errors: list[str],
    ) -> ImportResult:
        return ImportResult(
            success=outcome.failed_count == 0,
            imported=outcome.inserted_count,
            failed=outcome.failed_count,
            skipped_duplicates=len(selection.skipped_duplicates),
            skipped_unmatched=len(selection.skipped_unmatched),
            sub_entities_created=outcome.children_created,
            errors=errors,
            unmatched_names=_distinct_names(selection.skipped_unmatched),
        )

    # ===================
    # HELPERS
    # ===================

    def _context(self, session: ImportSession) -> ImportContext:
        return ImportContext(
            workspace_id=session.workspace_id,
            user_id=session.user_id,
            account_id=session.account_id,
        )

    def _annotate(self, session: ImportSession) -> list[CandidateEntity]:
        """Duplicate and/or match annotations for the session's entity type."""
        importer = session.importer
        candidates = list(session.candidates)

        if importer.duplicate_detectable:
            candidates = self.duplicates.annotate(session.entity_type, candidates, self._context(session))
        if importer.requires_parent_match:
            candidates = self.matcher.annotate(candidates, session.workspace_id)

        return candidates

    def to_response(self, session: ImportSession) -> ImportSessionResponse:
        """API snapshot of a session."""
        table = session.table
        return ImportSessionResponse(
            session_id=session.session_id,
            step=session.step,
            entity_type=session.entity_type,
            account_id=session.account_id,
            filename=session.filename,
            headers=list(table.headers) if table else [],
            row_count=table.row_count if table else 0,
            sample_rows=[list(row) for row in table.rows[:SAMPLE_ROW_COUNT]] if table else [],
            detected_mapping=session.detected.model_dump(mode="json") if session.detected else None,
            mapping=session.mapping.model_dump(mode="json") if session.mapping else None,
            mapping_errors=list(session.mapping_errors),
            candidates=[_candidate_to_dict(c) for c in session.candidates],
            summary=wizard.summarize(session) if session.candidates else None,
            include_duplicates=session.include_duplicates,
            include_unmatched=session.include_unmatched,
            commit_in_progress=session.commit_in_progress,
            result=session.result,
        )


def _candidate_to_dict(candidate: CandidateEntity) -> dict[str, Any]:
    return {
        **candidate.model_dump(mode="json"),
        "label": candidate.describe(),
        "is_duplicate": candidate.is_duplicate,
        "is_matched": candidate.is_matched,
    }


def _distinct_names(candidates: list[CandidateEntity]) -> list[str]:
    """Reference names in file order, one spelling per normalized name."""
    seen = set()
    names = []
    for candidate in candidates:
        name = candidate.reference_name
        key = normalize_name(name)
        if not name or key in seen:
            continue
        seen.add(key)
        names.append(name)
    return names


# Singleton instance
_import_service: Optional[ImportService] = None


def get_import_service() -> ImportService:
    """Get or create ImportService instance."""
    global _import_service
    if _import_service is None:
        _import_service = ImportService(
            repository=get_import_repository(),
            duplicates=get_duplicate_service(),
            matcher=get_lead_matcher_service(),
        )
    return _import_service
