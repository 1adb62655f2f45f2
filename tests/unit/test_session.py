"""Tests for the edit session: dirty tracking, undo/redo and high-level edits."""

import pytest

from claudefig.models import ClaudeSettings, PermissionType
from claudefig.session import EditableSettings, EditSession

ALLOW = PermissionType.ALLOW
DENY = PermissionType.DENY


def _session(data=None):
    return EditSession.from_settings(ClaudeSettings.model_validate(data or {}))


class TestEditableSettings:
    def test_load_order(self):
        editable = EditableSettings.from_settings(
            ClaudeSettings.model_validate(
                {
                    "permissions": {"deny": ["Write"], "allow": ["Read", "Grep"]},
                    "env": {"Z": "1", "A": "2"},
                    "attribution": {"commits": False},
                    "disallowedTools": ["WebFetch"],
                }
            )
        )
        assert editable.permission_rules == (("Read", ALLOW), ("Grep", ALLOW), ("Write", DENY))
        assert editable.environment == (("A", "2"), ("Z", "1"))
        assert editable.attribution == (False, None)
        assert editable.disallowed_tools == ("WebFetch",)

    def test_env_order_insignificant_rule_order_significant(self):
        a = EditableSettings(environment=(("A", "1"), ("B", "2")))
        b = EditableSettings(environment=(("B", "2"), ("A", "1")))
        assert a.effective() == b.effective()

        c = EditableSettings(permission_rules=(("X", ALLOW), ("Y", ALLOW)))
        d = EditableSettings(permission_rules=(("Y", ALLOW), ("X", ALLOW)))
        assert c.effective() != d.effective()

    def test_apply_keeps_unknown_and_drops_empty(self):
        base = ClaudeSettings.model_validate(
            {
                "model": "opus",
                "hooks": {"Stop": []},
                "permissions": {"allow": ["Old"], "ask": ["Bash"]},
                "attribution": {"commits": True, "footer": "hi"},
                "env": {"OLD": "1"},
            }
        )
        editable = EditableSettings(
            permission_rules=(("Read", DENY),),
            attribution=(False, True),
        )
        assert editable.apply_to(base).to_dict() == {
            "model": "opus",
            "hooks": {"Stop": []},
            "permissions": {"deny": ["Read"], "ask": ["Bash"]},
            "attribution": {"commits": False, "pullRequests": True, "footer": "hi"},
        }

    def test_apply_removes_attribution(self):
        base = ClaudeSettings.model_validate({"attribution": {"commits": True}})
        assert EditableSettings().apply_to(base).to_dict() == {}


class TestMutateUndoRedo:
    def test_mutate_marks_dirty_and_records(self):
        session = _session()
        assert session.mutate("disallowed_tools", ("Bash",), "Add Tool")
        assert session.is_dirty
        assert session.can_undo and not session.can_redo
        assert session.undo_action_name == "Add Tool"

    def test_noop_mutation(self):
        session = _session({"disallowedTools": ["Bash"]})
        assert session.mutate("disallowed_tools", ("Bash",)) is False
        assert not session.can_undo

    def test_unknown_field(self):
        with pytest.raises(ValueError):
            _session().mutate("hooks", {})

    def test_undo_redo_round(self):
        session = _session()
        session.add_disallowed_tool("Bash")
        session.add_disallowed_tool("Write")

        assert session.undo()
        assert session.working.disallowed_tools == ("Bash",)
        assert session.redo_action_name == "Add Disallowed Tool"
        assert session.undo()
        assert not session.is_dirty
        assert session.undo() is False

        assert session.redo()
        assert session.redo()
        assert session.working.disallowed_tools == ("Bash", "Write")
        assert session.redo() is False

    def test_new_edit_clears_redo(self):
        session = _session()
        session.add_disallowed_tool("Bash")
        session.undo()
        assert session.can_redo
        session.add_disallowed_tool("Write")
        assert not session.can_redo

    def test_edit_back_to_baseline_is_clean(self):
        session = _session({"env": {"A": "1"}})
        session.update_environment_variable("A", "A", "2")
        assert session.is_dirty
        session.update_environment_variable("A", "A", "1")
        assert not session.is_dirty
        assert session.can_undo

    def test_mark_saved_with_snapshot(self):
        session = _session()
        session.add_disallowed_tool("Bash")
        snapshot = session.working
        session.add_disallowed_tool("Write")  # lands while the save is in flight
        session.mark_saved(snapshot)
        assert session.is_dirty
        assert not session.can_undo and not session.can_redo

    def test_mark_saved_keeps_later_history(self):
        session = _session()
        session.add_disallowed_tool("Bash")
        snapshot, mark = session.working, session.history_mark
        session.add_environment_variable("A", "1")
        session.mark_saved(snapshot, mark)

        assert session.is_dirty
        assert session.undo_action_name == "Add Variable"
        assert session.undo() is True
        assert not session.is_dirty
        assert not session.can_undo
        assert session.redo() is True
        assert session.working.environment == (("A", "1"),)

    def test_mark_saved_clean(self):
        session = _session()
        session.add_disallowed_tool("Bash")
        session.mark_saved(session.working)
        assert not session.is_dirty

    def test_discard_to_external(self):
        session = _session()
        session.add_disallowed_tool("Bash")
        session.discard_to_external(ClaudeSettings(env={"X": "1"}))
        assert not session.is_dirty
        assert session.working.environment == (("X", "1"),)
        assert session.working.disallowed_tools == ()
        assert not session.can_undo


class TestPermissionEdits:
    def test_add_remove_update(self):
        session = _session()
        session.add_permission_rule("Read", ALLOW)
        session.add_permission_rule("Write", DENY)
        session.update_permission_rule(0, "Read(src/**)", ALLOW)
        assert session.working.permission_rules == (("Read(src/**)", ALLOW), ("Write", DENY))
        session.remove_permission_rule(1)
        assert session.working.permission_rules == (("Read(src/**)", ALLOW),)
        assert session.undo_action_name == "Remove Rule"

    def test_remove_out_of_range(self):
        with pytest.raises(IndexError):
            _session().remove_permission_rule(0)

    def test_move_within_type(self):
        session = _session({"permissions": {"allow": ["A", "B", "C"], "deny": ["D"]}})
        assert session.move_permission_rule(ALLOW, 0, 2)
        assert session.working.rules_of(ALLOW) == ["B", "C", "A"]
        assert session.working.permission_rules[0] == ("D", DENY)
        session.undo()
        assert session.working.rules_of(ALLOW) == ["A", "B", "C"]

    def test_apply_preset_skips_duplicates(self):
        session = _session({"permissions": {"deny": ["Read(.env)"]}})
        assert session.apply_preset("protect-env")
        assert session.working.rules_of(DENY) == ["Read(.env)", "Read(.env.*)"]
        assert session.undo_action_name == "Apply Preset"
        assert session.apply_preset("protect-env") is False

    def test_unknown_preset(self):
        with pytest.raises(ValueError):
            _session().apply_preset("nope")


class TestEnvironmentEdits:
    def test_duplicate_key_rejected(self):
        session = _session({"env": {"A": "1"}})
        assert session.add_environment_variable("A", "2") is False
        assert not session.is_dirty

    def test_rename_onto_existing_rejected(self):
        session = _session({"env": {"A": "1", "B": "2"}})
        assert session.update_environment_variable("A", "B", "x") is False

    def test_rename(self):
        session = _session({"env": {"A": "1"}})
        assert session.update_environment_variable("A", "C", "1")
        assert session.working.environment == (("C", "1"),)

    def test_remove(self):
        session = _session({"env": {"A": "1"}})
        assert session.remove_environment_variable("A")
        assert session.remove_environment_variable("A") is False


class TestAttributionAndTools:
    def test_both_none_removes_attribution(self):
        session = _session({"attribution": {"commits": True}})
        assert session.update_attribution(None, None)
        assert session.working.attribution is None

    def test_update_attribution(self):
        session = _session()
        assert session.update_attribution(True, False)
        assert session.working.attribution == (True, False)
        assert session.update_attribution(True, False) is False

    def test_disallowed_tool_empty_or_duplicate_ignored(self):
        session = _session({"disallowedTools": ["Bash"]})
        assert session.add_disallowed_tool("") is False
        assert session.add_disallowed_tool("Bash") is False
        assert session.remove_disallowed_tool("Bash")
        assert session.working.disallowed_tools == ()
