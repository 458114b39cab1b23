"""Tests for config file loading, ignore files and settings resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from sitemirror.config import (
    Settings,
    load_config_file,
    load_ignore_file,
    load_settings,
    resolve_settings,
)
from sitemirror.errors import ConfigError


@pytest.fixture
def in_tmp(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestLoadConfigFile:
    def test_camel_case_keys_mapped(self, tmp_path) -> None:
        path = tmp_path / "crawl.yml"
        path.write_text(
            "force: true\n"
            "depth: 2\n"
            "maxRetries: 5\n"
            "userAgent: bot/2\n"
            "headers:\n  X-Token: abc\n"
            "ignorePatterns:\n  - /tag/\n"
        )
        values = load_config_file(path)
        assert values == {
            "force": True,
            "depth": 2,
            "max_retries": 5,
            "user_agent": "bot/2",
            "headers": {"X-Token": "abc"},
            "ignore_patterns": ["/tag/"],
        }

    def test_snake_case_keys_accepted(self, tmp_path) -> None:
        path = tmp_path / "crawl.yml"
        path.write_text("max_retries: 1\n")
        assert load_config_file(path) == {"max_retries": 1}

    def test_unknown_keys_ignored(self, tmp_path) -> None:
        path = tmp_path / "crawl.yml"
        path.write_text("delay: 2\nsomethingElse: 1\n")
        assert load_config_file(path) == {"delay": 2}

    def test_empty_file(self, tmp_path) -> None:
        path = tmp_path / "crawl.yml"
        path.write_text("")
        assert load_config_file(path) == {}

    def test_missing_optional_file(self, tmp_path) -> None:
        assert load_config_file(tmp_path / "nope.yml") == {}

    def test_missing_required_file(self, tmp_path) -> None:
        with pytest.raises(ConfigError):
            load_config_file(tmp_path / "nope.yml", required=True)

    def test_invalid_yaml(self, tmp_path) -> None:
        path = tmp_path / "crawl.yml"
        path.write_text("depth: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config_file(path)

    def test_non_mapping(self, tmp_path) -> None:
        path = tmp_path / "crawl.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            load_config_file(path)


class TestLoadIgnoreFile:
    def test_skips_blanks_and_comments(self, tmp_path) -> None:
        path = tmp_path / ".crawlerignore"
        path.write_text("# comment\n/tag/\n\n   \n  /drafts  \n#/kept-out\n")
        assert load_ignore_file(path) == ["/tag/", "/drafts"]

    def test_missing_file(self, tmp_path) -> None:
        assert load_ignore_file(tmp_path / ".crawlerignore") == []


class TestResolveSettings:
    def test_defaults(self) -> None:
        settings = resolve_settings({}, {})
        assert settings == Settings()
        assert settings.depth is None
        assert settings.delay == 1.0
        assert settings.max_retries == 3
        assert settings.cache_path == Path("tmp/crawl_cache.txt")

    def test_overrides_beat_file(self) -> None:
        settings = resolve_settings({"depth": 2, "delay": 3}, {"depth": 5, "delay": None})
        assert settings.depth == 5
        assert settings.delay == 3.0

    def test_infinite_depth_is_unbounded(self) -> None:
        assert resolve_settings({"depth": float("inf")}, {}).depth is None

    @pytest.mark.parametrize("values", [
        {"depth": -1},
        {"depth": "deep"},
        {"depth": True},
        {"delay": "soon"},
        {"max_retries": -2},
        {"max_retries": True},
        {"max_retries": 3.7},
        {"delay": float("nan")},
        {"delay": float("inf")},
        {"timeout": float("nan")},
        {"delay": True},
        {"force": "yes"},
        {"headers": ["a"]},
        {"ignore_patterns": 3},
    ])
    def test_invalid_values(self, values) -> None:
        with pytest.raises(ConfigError):
            resolve_settings(values, {})

    def test_unknown_override(self) -> None:
        with pytest.raises(ConfigError):
            resolve_settings({}, {"colour": "blue"})

    def test_settings_frozen(self) -> None:
        settings = resolve_settings({}, {})
        with pytest.raises(AttributeError):
            settings.depth = 3  # type: ignore[misc]


class TestLoadSettings:
    def test_default_file_optional(self, in_tmp) -> None:
        assert load_settings(None, {}) == Settings()

    def test_explicit_file_required(self, in_tmp) -> None:
        with pytest.raises(ConfigError):
            load_settings("missing.yml", {})

    def test_reads_default_file_and_ignore_patterns(self, in_tmp) -> None:
        (in_tmp / "crawl.yml").write_text("delay: 0.5\nignorePatterns: [/from-config]\n")
        (in_tmp / ".crawlerignore").write_text("/from-ignore-file\n")

        settings = load_settings(None, {"max_retries": 1})

        assert settings.delay == 0.5
        assert settings.max_retries == 1
        assert settings.ignore_patterns == ("/from-ignore-file", "/from-config")

    def test_custom_ignore_file(self, in_tmp) -> None:
        (in_tmp / "custom.ignore").write_text("/x\n")
        settings = load_settings(None, {"ignore_file": "custom.ignore"})
        assert settings.ignore_patterns == ("/x",)


class TestNumericSettings:
    def test_whole_float_retries_accepted(self) -> None:
        assert resolve_settings({"max_retries": 2.0}, {}).max_retries == 2

    def test_nan_delay_from_yaml_rejected(self, tmp_path) -> None:
        path = tmp_path / "crawl.yml"
        path.write_text("delay: .nan\n")
        with pytest.raises(ConfigError):
            resolve_settings(load_config_file(path), {})
