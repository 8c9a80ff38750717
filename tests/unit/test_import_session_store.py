"""
Unit tests for the in-memory import session store.

Run: pytest tests/unit/test_import_session_store.py -v
"""

from dataclasses import replace
from datetime import datetime, timedelta
import pytest

from models.imports import EntityType, ImportStep
from services import import_session_store as store
from services import import_wizard as wizard
from exceptions import ImportSessionNotFoundError, InvalidImportStepError
from tests.factories import USER_ID, WORKSPACE_ID


class TestImportSessionStore:
    """Tests for services.import_session_store"""

    def test_create_and_get(self):
        session = store.create_session(WORKSPACE_ID, USER_ID)

        fetched = store.get_session(session.session_id, WORKSPACE_ID, USER_ID)

        assert fetched == session
        assert fetched.step == ImportStep.SELECT_ENTITY_TYPE

    def test_session_ids_are_unique(self):
        first = store.create_session(WORKSPACE_ID, USER_ID)
        second = store.create_session(WORKSPACE_ID, USER_ID)

        assert first.session_id != second.session_id

    def test_unknown_id(self):
        with pytest.raises(ImportSessionNotFoundError) as exc_info:
            store.get_session("missing", WORKSPACE_ID, USER_ID)

        assert exc_info.value.status_code == 404
        assert exc_info.value.code == "IMPORT_SESSION_NOT_FOUND"

    @pytest.mark.parametrize("workspace_id,user_id", [
        ("ws-other", USER_ID),
        (WORKSPACE_ID, "user-other"),
    ])
    def test_other_scope_cannot_see_session(self, workspace_id, user_id):
        session = store.create_session(WORKSPACE_ID, USER_ID)

        with pytest.raises(ImportSessionNotFoundError):
            store.get_session(session.session_id, workspace_id, user_id)

    def test_expired_session_is_gone(self):
        session = store.create_session(WORKSPACE_ID, USER_ID)
        store._sessions[session.session_id] = (datetime.now() - timedelta(seconds=1), session)

        with pytest.raises(ImportSessionNotFoundError):
            store.get_session(session.session_id, WORKSPACE_ID, USER_ID)

        assert session.session_id not in store._sessions

    def test_update_applies_transition(self):
        session = store.create_session(WORKSPACE_ID, USER_ID)

        updated = store.update_session(
            session.session_id, WORKSPACE_ID, USER_ID,
            lambda s: wizard.select_entity_type(s, EntityType.LEADS),
        )

        assert updated.step == ImportStep.UPLOAD
        assert store.get_session(session.session_id, WORKSPACE_ID, USER_ID) == updated

    def test_failed_transition_leaves_session_unchanged(self):
        session = store.create_session(WORKSPACE_ID, USER_ID)

        with pytest.raises(InvalidImportStepError):
            store.update_session(session.session_id, WORKSPACE_ID, USER_ID, wizard.back)

        assert store.get_session(session.session_id, WORKSPACE_ID, USER_ID) == session

    def test_update_refreshes_ttl(self):
        session = store.create_session(WORKSPACE_ID, USER_ID)
        store._sessions[session.session_id] = (datetime.now() + timedelta(seconds=5), session)

        store.update_session(session.session_id, WORKSPACE_ID, USER_ID, lambda s: s, ttl_minutes=30)

        expires_at, _ = store._sessions[session.session_id]
        assert expires_at > datetime.now() + timedelta(minutes=29)

    def test_save_after_delete_is_dropped(self):
        session = store.create_session(WORKSPACE_ID, USER_ID)
        store.delete_session(session.session_id, WORKSPACE_ID, USER_ID)

        saved = store.save_session(replace(session, step=ImportStep.COMPLETE))

        assert not saved
        with pytest.raises(ImportSessionNotFoundError):
            store.get_session(session.session_id, WORKSPACE_ID, USER_ID)

    def test_save_existing(self):
        session = store.create_session(WORKSPACE_ID, USER_ID)

        assert store.save_session(replace(session, step=ImportStep.UPLOAD))
        assert store.get_session(session.session_id, WORKSPACE_ID, USER_ID).step == ImportStep.UPLOAD

    def test_delete_from_other_scope_rejected(self):
        session = store.create_session(WORKSPACE_ID, USER_ID)

        with pytest.raises(ImportSessionNotFoundError):
            store.delete_session(session.session_id, "ws-other", USER_ID)

        assert store.get_session(session.session_id, WORKSPACE_ID, USER_ID) == session

    def test_create_drops_expired_sessions(self):
        stale = store.create_session(WORKSPACE_ID, USER_ID)
        store._sessions[stale.session_id] = (datetime.now() - timedelta(minutes=1), stale)

        store.create_session(WORKSPACE_ID, USER_ID)

        assert stale.session_id not in store._sessions
