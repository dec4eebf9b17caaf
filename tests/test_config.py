"""Tests for engine configuration loading."""

import json

from narrative_engine.config import (
    DEFAULT_CONFIG,
    cooldown_days,
    default_config,
    load_config,
    merge_config,
    save_config,
)


class TestConfig:
    def test_defaults_are_copies(self):
        config = default_config()
        config["category_cooldowns"]["igl_crisis"] = 1
        assert DEFAULT_CONFIG["category_cooldowns"]["igl_crisis"] == 14

    def test_merge_nested_one_level(self):
        """Overriding one cooldown keeps the others."""
        config = merge_config({"category_cooldowns": {"igl_crisis": 3}, "max_active_events": 5})

        assert config["category_cooldowns"]["igl_crisis"] == 3
        assert config["category_cooldowns"]["visa_arc"] == 14
        assert config["max_active_events"] == 5
        assert config["press_chances"] == DEFAULT_CONFIG["press_chances"]

    def test_cooldown_fallback(self, config):
        assert cooldown_days(config, "igl_crisis") == 14
        assert cooldown_days(config, "unlisted") == config["default_cooldown_days"]

    def test_load_missing_path(self, tmp_path):
        assert load_config(None) == DEFAULT_CONFIG
        assert load_config(tmp_path / "absent.json") == DEFAULT_CONFIG

    def test_save_then_load(self, tmp_path):
        path = tmp_path / "nested" / "engine.json"
        config = merge_config({"escalation_grace_days": None})

        assert save_config(config, path)
        assert load_config(path)["escalation_grace_days"] is None

    def test_partial_file_overlays_defaults(self, tmp_path):
        path = tmp_path / "engine.json"
        path.write_text(json.dumps({"press_chances": {"post_match_base": 50}}), encoding="utf-8")

        loaded = load_config(path)
        assert loaded["press_chances"]["post_match_base"] == 50
        assert loaded["press_chances"]["playoff_bonus"] == 20

    def test_bad_file_falls_back(self, tmp_path, caplog):
        path = tmp_path / "engine.json"
        path.write_text("not json", encoding="utf-8")

        assert load_config(path) == DEFAULT_CONFIG
        assert "Could not read engine config" in caplog.text
