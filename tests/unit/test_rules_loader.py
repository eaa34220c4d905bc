from pathlib import Path

import pytest

from newsdesk.rules.loader import load_rules
from newsdesk.rules.models import Rules

PROJECT_ROOT = Path(__file__).resolve().parents[2]


class TestLoadRules:
    def test_project_rules_file_valid(self) -> None:
        rules = load_rules(PROJECT_ROOT / "rules.yaml")
        assert rules.site.timezone == "Europe/London"
        assert rules.moderation.delete_with_replies == "forbid"
        assert rules.realtime.subscribe_backoff_seconds == [1, 5, 15]

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_rules(tmp_path / "nope.yaml")

    def test_empty_file_uses_defaults(self, tmp_path) -> None:
        path = tmp_path / "rules.yaml"
        path.write_text("")
        assert load_rules(path) == Rules()

    def test_partial_override(self, tmp_path) -> None:
        path = tmp_path / "rules.yaml"
        path.write_text("analytics:\n  top_n: 5\n")
        rules = load_rules(path)
        assert rules.analytics.top_n == 5
        assert rules.analytics.trend_days == 30

    def test_markdown_yaml_block(self, tmp_path) -> None:
        path = tmp_path / "rules.md"
        path.write_text(
            "# Site rules\n\n```yaml\nmoderation:\n  delete_with_replies: cascade\n```\n"
        )
        assert load_rules(path).moderation.delete_with_replies == "cascade"

    def test_invalid_yaml(self, tmp_path) -> None:
        path = tmp_path / "rules.yaml"
        path.write_text("site: [unclosed\n")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_rules(path)

    def test_schema_violation(self, tmp_path) -> None:
        path = tmp_path / "rules.yaml"
        path.write_text("moderation:\n  delete_with_replies: sometimes\n")
        with pytest.raises(ValueError, match="validation failed"):
            load_rules(path)

    def test_negative_backoff_rejected(self, tmp_path) -> None:
        path = tmp_path / "rules.yaml"
        path.write_text("realtime:\n  subscribe_backoff_seconds: [1, -5]\n")
        with pytest.raises(ValueError):
            load_rules(path)

    def test_unknown_timezone_rejected(self, tmp_path) -> None:
        path = tmp_path / "rules.yaml"
        path.write_text("site:\n  timezone: Mars/Olympus_Mons\n")
        with pytest.raises(ValueError, match="validation failed"):
            load_rules(path)

    def test_top_level_list_rejected(self, tmp_path) -> None:
        path = tmp_path / "rules.yaml"
        path.write_text("- site\n- analytics\n")
        with pytest.raises(ValueError, match="mapping"):
            load_rules(path)

    def test_trend_window_is_fixed(self, tmp_path) -> None:
        path = tmp_path / "rules.yaml"
        path.write_text("analytics:\n  trend_days: 14\n")
        with pytest.raises(ValueError, match="validation failed"):
            load_rules(path)
