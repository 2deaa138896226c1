import os
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from config.config import (
    SyncConfig,
    _deep_merge,
    _expand_env_vars,
    get_config,
    load_config,
    load_yaml,
    reset_config,
    set_config,
)
from core.errors.exceptions import ConfigurationError


def _write_config(tmp_path, section):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"feedsync": section}))
    return path


# =========================================================================
# load_yaml
# =========================================================================


class TestLoadYaml:
    def test_returns_empty_dict_for_nonexistent_file(self):
        assert load_yaml(Path("/nonexistent/path/config.yaml")) == {}

    def test_loads_yaml_file(self, tmp_path):
        config_file = tmp_path / "test.yaml"
        config_file.write_text("key: value\nnested:\n  a: 1\n")
        assert load_yaml(config_file) == {"key": "value", "nested": {"a": 1}}

    def test_returns_empty_dict_for_empty_file(self, tmp_path):
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        assert load_yaml(config_file) == {}


# =========================================================================
# _expand_env_vars
# =========================================================================


class TestExpandEnvVars:
    def test_expands_variable(self):
        with patch.dict(os.environ, {"TOKEN": "abc"}):
            assert _expand_env_vars("Bearer ${TOKEN}") == "Bearer abc"

    def test_default_value(self):
        with patch.dict(os.environ, {}, clear=True):
            assert _expand_env_vars("${MISSING:-fallback}") == "fallback"

    def test_unset_without_default_left_as_is(self):
        with patch.dict(os.environ, {}, clear=True):
            assert _expand_env_vars("${MISSING}") == "${MISSING}"

    def test_nested_structures(self):
        with patch.dict(os.environ, {"DIR": "/data"}):
            result = _expand_env_vars({"a": ["${DIR}/x"], "b": 3})
        assert result == {"a": ["/data/x"], "b": 3}


# =========================================================================
# _deep_merge
# =========================================================================


class TestDeepMerge:
    def test_merges_nested(self):
        base = {"request_headers": {"Referer": "a"}, "concurrency": 4}
        overlay = {"request_headers": {"User-Agent": "b"}, "concurrency": 8}

        assert _deep_merge(base, overlay) == {
            "request_headers": {"Referer": "a", "User-Agent": "b"},
            "concurrency": 8,
        }

    def test_does_not_mutate_base(self):
        base = {"a": 1}
        _deep_merge(base, {"a": 2})
        assert base == {"a": 1}


# =========================================================================
# SyncConfig
# =========================================================================


class TestSyncConfig:
    def test_defaults(self):
        config = SyncConfig()
        assert config.concurrency == 8
        assert config.interval_seconds == 3600.0
        assert config.max_passes is None
        assert config.initial_watermark is None
        assert config.state_path == Path.home() / ".feedsync"

    def test_type_coercion(self):
        config = SyncConfig(
            concurrency="4", interval_seconds="60", max_passes="3", initial_watermark="100", json_logs="no"
        )
        assert config.concurrency == 4
        assert config.interval_seconds == 60.0
        assert config.max_passes == 3
        assert config.initial_watermark == 100
        assert config.json_logs is False

    def test_state_path_expands_user(self):
        assert SyncConfig(state_dir="~/state").state_path == Path.home() / "state"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"concurrency": 0},
            {"interval_seconds": 0},
            {"max_passes": 0},
            {"retry_base_delay": -1},
            {"retry_max_delay": -1},
            {"http_timeout_seconds": 0},
            {"initial_watermark": -5},
        ],
    )
    def test_validate_rejects(self, kwargs):
        with pytest.raises(ConfigurationError):
            SyncConfig(**kwargs).validate()

    def test_to_log_dict_redacts_token(self):
        data = SyncConfig(api_token="secret").to_log_dict()
        assert data["api_token"] == "[REDACTED]"
        assert data["concurrency"] == 8


# =========================================================================
# load_config
# =========================================================================


class TestLoadConfig:
    def test_loads_feedsync_section(self, tmp_path):
        path = _write_config(
            tmp_path,
            {
                "feed_url": "https://api.example.com/v1/follow/latest",
                "api_token": "t",
                "destination": str(tmp_path / "mirror"),
                "concurrency": 4,
                "request_headers": {"Referer": "https://www.example.com/"},
            },
        )

        config = load_config(path)

        assert config.feed_url == "https://api.example.com/v1/follow/latest"
        assert config.concurrency == 4
        assert config.request_headers == {"Referer": "https://www.example.com/"}

    def test_missing_section_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("other: {}\n")

        with pytest.raises(ConfigurationError, match="feedsync"):
            load_config(path)

    def test_explicit_missing_file_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_missing_default_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        config = load_config()

        assert config.concurrency == 8

    def test_env_expansion_in_yaml(self, tmp_path):
        path = _write_config(tmp_path, {"api_token": "${FEED_TOKEN_FOR_TEST}"})

        with patch.dict(os.environ, {"FEED_TOKEN_FOR_TEST": "from-env"}):
            assert load_config(path).api_token == "from-env"

    def test_env_overrides_yaml(self, tmp_path):
        path = _write_config(tmp_path, {"concurrency": 4})

        with patch.dict(os.environ, {"FEEDSYNC_CONCURRENCY": "16"}):
            assert load_config(path).concurrency == 16

    def test_overrides_beat_env(self, tmp_path):
        path = _write_config(tmp_path, {"concurrency": 4})

        with patch.dict(os.environ, {"FEEDSYNC_CONCURRENCY": "16"}):
            config = load_config(path, overrides={"concurrency": 2, "max_passes": None})

        assert config.concurrency == 2
        assert config.max_passes is None

    def test_unknown_keys_ignored(self, tmp_path, caplog):
        path = _write_config(tmp_path, {"concurrency": 4, "colour": "blue"})

        config = load_config(path)

        assert config.concurrency == 4
        assert "colour" in caplog.text

    def test_invalid_value_rejected(self, tmp_path):
        path = _write_config(tmp_path, {"concurrency": "many"})

        with pytest.raises(ConfigurationError, match="Invalid configuration value"):
            load_config(path)

    def test_out_of_range_rejected(self, tmp_path):
        path = _write_config(tmp_path, {"interval_seconds": -1})

        with pytest.raises(ConfigurationError, match="interval_seconds"):
            load_config(path)

    def test_empty_section_uses_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("feedsync:\n")

        assert load_config(path).concurrency == 8


# =========================================================================
# singleton
# =========================================================================


class TestSingleton:
    def setup_method(self):
        reset_config()

    def teardown_method(self):
        reset_config()

    def test_set_and_get(self):
        config = SyncConfig(concurrency=3)
        set_config(config)
        assert get_config() is config

    def test_get_loads_once(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert get_config() is get_config()
