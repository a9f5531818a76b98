import os
from pathlib import Path
from unittest.mock import patch

import pytest

from backup_harness.config import (
    HarnessConfig,
    _deep_merge,
    _expand_env_vars,
    load_config,
    load_yaml,
)
from core.errors.exceptions import ConfigurationError

REPO_CONFIG = Path(__file__).resolve().parents[2] / "config" / "harness.yaml"

# =========================================================================
# load_yaml / helpers
# =========================================================================


class TestLoadYaml:
    def test_returns_empty_dict_for_nonexistent_file(self):
        assert load_yaml(Path("/nonexistent/path/harness.yaml")) == {}

    def test_loads_yaml_file(self, tmp_path):
        config_file = tmp_path / "test.yaml"
        config_file.write_text("harness:\n  region: eu-west-1\n")
        assert load_yaml(config_file) == {"harness": {"region": "eu-west-1"}}

    def test_returns_empty_dict_for_empty_file(self, tmp_path):
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        assert load_yaml(config_file) == {}


class TestExpandEnvVars:
    def test_expands_set_variable(self):
        with patch.dict(os.environ, {"HARNESS_TEST_VAR": "value"}):
            assert _expand_env_vars("${HARNESS_TEST_VAR}") == "value"

    def test_uses_default_when_unset(self):
        with patch.dict(os.environ, {}, clear=True):
            assert _expand_env_vars("${HARNESS_TEST_VAR:-fallback}") == "fallback"

    def test_empty_default(self):
        with patch.dict(os.environ, {}, clear=True):
            assert _expand_env_vars("${HARNESS_TEST_VAR:-}") == ""

    def test_leaves_unset_variable_without_default(self):
        with patch.dict(os.environ, {}, clear=True):
            assert _expand_env_vars("${HARNESS_TEST_VAR}") == "${HARNESS_TEST_VAR}"

    def test_recurses_into_containers(self):
        with patch.dict(os.environ, {"HARNESS_TEST_VAR": "x"}):
            result = _expand_env_vars({"a": ["${HARNESS_TEST_VAR}", 1], "b": True})
        assert result == {"a": ["x", 1], "b": True}


class TestDeepMerge:
    def test_nested_dicts_merge(self):
        base = {"kafka_producer": {"acks": "all", "linger_ms": 5}, "region": "a"}
        result = _deep_merge(base, {"kafka_producer": {"linger_ms": 0}})
        assert result == {"kafka_producer": {"acks": "all", "linger_ms": 0}, "region": "a"}

    def test_does_not_mutate_base(self):
        base = {"region": "a"}
        _deep_merge(base, {"region": "b"})
        assert base == {"region": "a"}


# =========================================================================
# HarnessConfig
# =========================================================================


class TestHarnessConfigDefaults:
    def test_defaults(self):
        config = HarnessConfig()
        assert config.endpoint_url is None
        assert config.region == "us-east-1"
        assert config.cleanup_initial_delay is None
        assert config.max_cleanup_timeout == 600.0
        assert config.poll_attempts == 10
        assert config.poll_delay == 1.0

    def test_cleanup_disabled_without_initial_delay(self):
        assert HarnessConfig().cleanup_enabled is False
        assert HarnessConfig(cleanup_initial_delay=0).cleanup_enabled is True

    def test_addressing_style(self):
        assert HarnessConfig().addressing_style == "path"
        assert HarnessConfig(use_virtual_dot_host=True).addressing_style == "virtual"


class TestHarnessConfigValidate:
    def test_default_config_is_valid(self):
        HarnessConfig().validate()

    @pytest.mark.parametrize(
        "kwargs,match",
        [
            ({"region": ""}, "region"),
            ({"cleanup_initial_delay": -1}, "cleanup_initial_delay"),
            ({"max_cleanup_timeout": 0}, "max_cleanup_timeout"),
            ({"cleanup_initial_delay": 10, "max_cleanup_timeout": 10}, "must be <"),
            ({"poll_attempts": 0}, "poll_attempts"),
            ({"poll_delay": -0.5}, "poll_delay"),
            ({"bucket_prefix": "Guardian_"}, "bucket_prefix"),
            ({"kafka_bootstrap_servers": ""}, "kafka_bootstrap_servers"),
        ],
    )
    def test_rejects_invalid_values(self, kwargs, match):
        with pytest.raises(ConfigurationError, match=match):
            HarnessConfig(**kwargs).validate()


class TestHarnessConfigFromDict:
    def test_parses_string_values(self):
        config = HarnessConfig.from_dict(
            {
                "use_virtual_dot_host": "true",
                "cleanup_initial_delay": "2.5",
                "max_cleanup_timeout": "30",
                "poll_attempts": "3",
            }
        )
        assert config.use_virtual_dot_host is True
        assert config.cleanup_initial_delay == 2.5
        assert config.max_cleanup_timeout == 30.0
        assert config.poll_attempts == 3

    @pytest.mark.parametrize("value", ["", "none", "off", "disabled", None])
    def test_cleanup_can_be_disabled(self, value):
        config = HarnessConfig.from_dict({"cleanup_initial_delay": value})
        assert config.cleanup_enabled is False

    def test_empty_strings_become_none(self):
        config = HarnessConfig.from_dict({"endpoint_url": "", "access_key_id": ""})
        assert config.endpoint_url is None
        assert config.access_key_id is None

    def test_unknown_keys_are_ignored(self, caplog):
        config = HarnessConfig.from_dict({"region": "eu-west-1", "colour": "blue"})
        assert config.region == "eu-west-1"
        assert "colour" in caplog.text

    def test_unparseable_value_raises_configuration_error(self):
        with pytest.raises(ConfigurationError, match="Invalid harness configuration"):
            HarnessConfig.from_dict({"poll_attempts": "many"})

    def test_validates_after_parsing(self):
        with pytest.raises(ConfigurationError):
            HarnessConfig.from_dict({"poll_attempts": 0})


class TestHarnessConfigFromEnv:
    def test_reads_prefixed_variables(self):
        environ = {
            "BACKUP_HARNESS_ENDPOINT_URL": "http://localhost:9000",
            "BACKUP_HARNESS_REGION": "eu-central-1",
            "BACKUP_HARNESS_CLEANUP_INITIAL_DELAY": "1",
            "BACKUP_HARNESS_KAFKA_TOPIC": "orders",
            "UNRELATED": "x",
        }
        config = HarnessConfig.from_env(environ)
        assert config.endpoint_url == "http://localhost:9000"
        assert config.region == "eu-central-1"
        assert config.cleanup_initial_delay == 1.0
        assert config.kafka_topic == "orders"

    def test_empty_environment_gives_defaults(self):
        assert HarnessConfig.from_env({}) == HarnessConfig()


# =========================================================================
# load_config
# =========================================================================


class TestLoadConfig:
    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "missing.yaml")

    def test_missing_harness_section_raises(self, tmp_path):
        config_file = tmp_path / "harness.yaml"
        config_file.write_text("other:\n  a: 1\n")
        with pytest.raises(ConfigurationError, match="harness"):
            load_config(config_file)

    def test_invalid_yaml_raises(self, tmp_path):
        config_file = tmp_path / "harness.yaml"
        config_file.write_text("harness: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(config_file)

    def test_loads_and_expands(self, tmp_path):
        config_file = tmp_path / "harness.yaml"
        config_file.write_text(
            "harness:\n"
            "  endpoint_url: ${HARNESS_TEST_ENDPOINT:-http://localhost:9000}\n"
            "  cleanup_initial_delay: 0\n"
            "  kafka_producer:\n"
            "    acks: all\n"
        )
        with patch.dict(os.environ, {}, clear=True):
            config = load_config(config_file)

        assert config.endpoint_url == "http://localhost:9000"
        assert config.cleanup_enabled is True
        assert config.kafka_producer == {"acks": "all"}

    def test_overrides_are_merged(self, tmp_path):
        config_file = tmp_path / "harness.yaml"
        config_file.write_text("harness:\n  region: eu-west-1\n  poll_attempts: 5\n")

        config = load_config(config_file, overrides={"poll_attempts": 2})

        assert config.region == "eu-west-1"
        assert config.poll_attempts == 2

    def test_repository_config_loads(self):
        with patch.dict(os.environ, {}, clear=True):
            config = load_config(REPO_CONFIG)

        assert config.bucket_prefix == "guardian-"
        assert config.cleanup_initial_delay == 5.0
        assert config.endpoint_url is None
        assert config.kafka_bootstrap_servers == "localhost:9092"
