import json
from unittest.mock import patch

import pytest

from cliptrail.config import DEFAULT_MAX_ENTRIES, DEFAULT_MONITOR_INTERVAL, Settings, load_settings


@pytest.fixture
def settings_file(tmp_path):
    path = tmp_path / "settings.json"

    def _write(data):
        path.write_text(data if isinstance(data, str) else json.dumps(data))
        return path

    return _write


@pytest.fixture(autouse=True)
def clean_env():
    with patch.dict("os.environ", {}, clear=False) as env:
        for key in ("CLIPTRAIL_MONITOR_INTERVAL", "CLIPTRAIL_MAX_ENTRIES", "CLIPTRAIL_EXCLUDED_APPS"):
            env.pop(key, None)
        yield env


class TestDefaults:
    def test_missing_file(self, tmp_path):
        settings = load_settings(tmp_path / "missing.json")
        assert settings == Settings()
        assert settings.monitoring_interval_seconds == DEFAULT_MONITOR_INTERVAL
        assert settings.max_history_size == DEFAULT_MAX_ENTRIES

    def test_marker_defaults(self):
        settings = Settings()
        assert settings.ignore_concealed and settings.ignore_transient
        assert not settings.ignore_auto_generated
        assert not settings.ignore_remote

    def test_size_limit_bytes(self):
        assert Settings(ignore_size_limit_mb=2).ignore_size_limit_bytes == 2 * 1024 * 1024


class TestSettingsFile:
    def test_reads_values(self, settings_file):
        path = settings_file(
            {
                "monitoring_interval_seconds": 1.5,
                "max_history_size": 50,
                "excluded_application_identifiers": ["com.agilebits.onepassword", " com.apple.keychainaccess "],
                "ignore_size_limit_mb": 5,
                "ignore_remote": True,
            }
        )
        settings = load_settings(path)
        assert settings.monitoring_interval_seconds == 1.5
        assert settings.max_history_size == 50
        assert settings.excluded_application_identifiers == {
            "com.agilebits.onepassword",
            "com.apple.keychainaccess",
        }
        assert settings.ignore_size_limit_mb == 5
        assert settings.ignore_remote is True

    def test_invalid_json(self, settings_file, caplog):
        assert load_settings(settings_file("{not json")) == Settings()
        assert "unreadable settings file" in caplog.text

    def test_not_an_object(self, settings_file):
        assert load_settings(settings_file([1, 2, 3])) == Settings()

    def test_bad_values_fall_back(self, settings_file):
        path = settings_file({"monitoring_interval_seconds": "fast", "max_history_size": None})
        settings = load_settings(path)
        assert settings.monitoring_interval_seconds == DEFAULT_MONITOR_INTERVAL
        assert settings.max_history_size == DEFAULT_MAX_ENTRIES

    def test_values_are_clamped(self, settings_file):
        path = settings_file({"monitoring_interval_seconds": 0.001, "max_history_size": 0})
        settings = load_settings(path)
        assert settings.monitoring_interval_seconds == 0.1
        assert settings.max_history_size == 1

    def test_upper_bounds(self, settings_file):
        path = settings_file({"monitoring_interval_seconds": 600, "max_history_size": 10**9})
        settings = load_settings(path)
        assert settings.monitoring_interval_seconds == 10.0
        assert settings.max_history_size == 100_000


class TestEnvironment:
    def test_env_overrides_file(self, settings_file, clean_env):
        path = settings_file({"monitoring_interval_seconds": 2, "max_history_size": 50})
        clean_env["CLIPTRAIL_MONITOR_INTERVAL"] = "0.75"
        clean_env["CLIPTRAIL_MAX_ENTRIES"] = "20"
        settings = load_settings(path)
        assert settings.monitoring_interval_seconds == 0.75
        assert settings.max_history_size == 20

    def test_excluded_apps_comma_list(self, tmp_path, clean_env):
        clean_env["CLIPTRAIL_EXCLUDED_APPS"] = "com.a, com.b,,"
        settings = load_settings(tmp_path / "missing.json")
        assert settings.excluded_application_identifiers == {"com.a", "com.b"}

    def test_invalid_env_value(self, tmp_path, clean_env):
        clean_env["CLIPTRAIL_MAX_ENTRIES"] = "lots"
        assert load_settings(tmp_path / "missing.json").max_history_size == DEFAULT_MAX_ENTRIES
