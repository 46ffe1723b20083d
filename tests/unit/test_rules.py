"""
Rules file loading and schema validation tests.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from src.rules.loader import load_rules
from src.rules.models import Rules


@pytest.fixture
def project_root() -> Path:
    return Path(__file__).parent.parent.parent


def write_rules(tmp_path: Path, data: Any) -> Path:
    path = tmp_path / "rules.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


def minimal_rules(**analytics: Any) -> dict[str, Any]:
    return {
        "project": {"slug": "test", "rules_version": "1.0"},
        "analytics": analytics,
    }


class TestRulesLoading:
    def test_load_actual_rules_file(self, project_root: Path) -> None:
        rules = load_rules(project_root / "rules.yaml")
        assert isinstance(rules, Rules)
        assert rules.project.slug == "view-analytics"
        assert rules.analytics.rate_limit.max_requests == 600
        assert rules.analytics.export.default_metrics == ["views", "clicks", "engagement"]

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_rules(tmp_path / "nope.yaml")

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.yaml"
        path.write_text("")
        with pytest.raises(ValueError, match="empty"):
            load_rules(path)

    def test_bad_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.yaml"
        path.write_text("project: [unclosed")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_rules(path)

    def test_markdown_fenced_yaml(self, tmp_path: Path) -> None:
        """A rules document with prose keeps only its first yaml block."""
        body = yaml.safe_dump(minimal_rules(enabled=False))
        path = tmp_path / "rules.md"
        path.write_text(f"# Analytics rules\n\n```yaml\n{body}```\n\nNotes.\n")
        assert load_rules(path).analytics.enabled is False


class TestRulesDefaults:
    def test_sections_default(self, tmp_path: Path) -> None:
        rules = load_rules(write_rules(tmp_path, minimal_rules()))
        analytics = rules.analytics
        assert analytics.enabled is True
        assert analytics.limits.location_max == 100
        assert analytics.real_time.default_minutes == 30
        assert analytics.export.raw_data_cap == 10000
        assert analytics.orchestration.branch_timeout_seconds == 10.0


class TestRulesValidation:
    """Schema errors surface as ValueError."""

    def test_unknown_top_level_key(self, tmp_path: Path) -> None:
        data = minimal_rules()
        data["billing"] = {}
        with pytest.raises(ValueError, match="validation failed"):
            load_rules(write_rules(tmp_path, data))

    def test_missing_project(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            load_rules(write_rules(tmp_path, {"analytics": {}}))

    def test_non_positive_limit(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            load_rules(write_rules(tmp_path, minimal_rules(limits={"links_max": 0})))

    def test_default_above_max(self, tmp_path: Path) -> None:
        data = minimal_rules(limits={"location_default": 200, "location_max": 100})
        with pytest.raises(ValueError, match="location_default"):
            load_rules(write_rules(tmp_path, data))

    def test_real_time_default_out_of_bounds(self, tmp_path: Path) -> None:
        data = minimal_rules(real_time={"min_minutes": 5, "max_minutes": 60, "default_minutes": 90})
        with pytest.raises(ValueError, match="default_minutes"):
            load_rules(write_rules(tmp_path, data))
