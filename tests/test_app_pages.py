"""
Tests for Streamlit pages that write to the ledger.

Pages run under Streamlit's AppTest harness against the in-memory backend.
Each script builds its components once and keeps them in session state,
the same way the app does.
"""

import pytest
from streamlit.testing.v1 import AppTest

from family_tracker.models import AuditEventType


def members_page():
    from app.main import render_members_page, run_async
    import streamlit as st

    from family_tracker.audit import AuditLogger
    from family_tracker.config import InMemoryKeyValueStore, PreferencesStore
    from family_tracker.orchestrator import AppComponents, create_backend

    if "components" not in st.session_state:
        store, provider = create_backend(use_firestore=False)
        components = AppComponents(
            store=store,
            identity_provider=provider,
            preferences=PreferencesStore(InMemoryKeyValueStore()),
            audit_logger=AuditLogger().keep_events(),
        )
        components.synchronizers.bind("u1")
        run_async(components.ledger.add_member("Asha"))
        st.session_state["components"] = components

    render_members_page(st.session_state["components"])


def backup_page():
    from app.main import render_backup_page, run_async
    import streamlit as st

    from family_tracker.audit import AuditLogger
    from family_tracker.config import InMemoryKeyValueStore, PreferencesStore
    from family_tracker.orchestrator import AppComponents, create_backend

    if "components" not in st.session_state:
        store, provider = create_backend(use_firestore=False)
        components = AppComponents(
            store=store,
            identity_provider=provider,
            preferences=PreferencesStore(InMemoryKeyValueStore()),
            audit_logger=AuditLogger().keep_events(),
        )
        components.synchronizers.bind("u1")
        run_async(components.ledger.add_category(name="Food"))
        st.session_state["components"] = components

    render_backup_page(st.session_state["components"])


def events_of(at: AppTest, event_type: AuditEventType):
    events = at.session_state["components"].audit_logger.events
    return [e for e in events if e.event_type == event_type]


class TestMembersPage:
    """Tests for renaming family members."""

    def setup_method(self):
        self.at = AppTest.from_function(members_page).run()

    def member_names(self):
        members = self.at.session_state["components"].synchronizers.members.items
        return [m.name for m in members]

    def test_edit_without_save_writes_nothing(self):
        self.at.text_input[1].input("Asha K").run()
        self.at.run()

        assert self.member_names() == ["Asha"]
        assert events_of(self.at, AuditEventType.RECORD_UPDATED) == []

    def test_save_renames_once(self):
        self.at.text_input[1].input("Asha K")
        save = next(b for b in self.at.button if b.label == "💾 Save")
        save.click().run()
        self.at.run()

        assert self.member_names() == ["Asha K"]
        assert len(events_of(self.at, AuditEventType.RECORD_UPDATED)) == 1


class TestBackupPage:
    """Tests for the export section."""

    def test_rendering_does_not_audit_exports(self):
        at = AppTest.from_function(backup_page).run()
        at.run()

        assert not at.exception
        assert events_of(at, AuditEventType.BACKUP_EXPORTED) == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
