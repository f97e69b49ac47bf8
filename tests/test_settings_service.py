"""Workspace settings merge and persistence."""
from app.models import Configuration
from app.services.settings_service import (
    WORKSPACE_NESTED_SECTIONS,
    get_settings,
    merge_settings,
    upsert_configuration,
)


class TestMergeSettings:

    def test_nested_sections_merge_one_level(self):
        existing = {"general": {"accountName": "Acme", "primaryColor": "#000000"}}
        updates = {"general": {"primaryColor": "#ffffff"}}

        merged = merge_settings(existing, updates, WORKSPACE_NESTED_SECTIONS)

        assert merged["general"] == {"accountName": "Acme", "primaryColor": "#ffffff"}

    def test_unlisted_keys_are_replaced(self):
        existing = {"billing": {"plan": {"name": "Pro"}, "updatedAt": "x"}}
        updates = {"billing": {"plan": {"name": "Team"}}}

        merged = merge_settings(existing, updates, WORKSPACE_NESTED_SECTIONS)

        assert merged["billing"] == {"plan": {"name": "Team"}}

    def test_merge_is_only_one_level_deep(self):
        existing = {"availability": {"timesheet": {"Mon": {"enabled": True}, "Tue": {"enabled": True}}}}
        updates = {"availability": {"timesheet": {"Mon": {"enabled": False}}}}

        merged = merge_settings(existing, updates, WORKSPACE_NESTED_SECTIONS)

        assert merged["availability"]["timesheet"] == {"Mon": {"enabled": False}}

    def test_all_dict_values_merge_without_key_list(self):
        merged = merge_settings({"a": {"x": 1}, "b": 1}, {"a": {"y": 2}, "c": 3})
        assert merged == {"a": {"x": 1, "y": 2}, "b": 1, "c": 3}

    def test_untouched_keys_are_preserved(self):
        merged = merge_settings({"general": {"a": 1}, "notifications": {"b": 2}}, {"general": {"a": 3}})
        assert merged["notifications"] == {"b": 2}

    def test_inputs_are_not_mutated(self):
        existing = {"general": {"a": 1}}
        updates = {"general": {"b": 2}}

        merge_settings(existing, updates)

        assert existing == {"general": {"a": 1}}
        assert updates == {"general": {"b": 2}}

    def test_non_dict_inputs_are_treated_as_empty(self):
        assert merge_settings(None, {"a": 1}) == {"a": 1}
        assert merge_settings({"a": 1}, None) == {"a": 1}


class TestUpsertConfiguration:

    def test_creates_configuration_when_missing(self, db, workspace):
        db.query(Configuration).delete()
        db.commit()

        settings = upsert_configuration(db, workspace.id, {"general": {"accountName": "New"}})

        assert settings == {"general": {"accountName": "New"}}
        assert get_settings(db, workspace.id) == settings

    def test_merges_into_existing_configuration(self, db, workspace):
        upsert_configuration(db, workspace.id, {"general": {"primaryColor": "#123456"}}, WORKSPACE_NESTED_SECTIONS)

        settings = get_settings(db, workspace.id)
        assert settings["general"]["primaryColor"] == "#123456"
        assert settings["general"]["accountName"] == "Acme Clinic"
        assert settings["availability"]["timesheet"]["Mon"]["enabled"] is True

    def test_missing_configuration_reads_as_empty(self, db):
        assert get_settings(db, 9999) == {}
