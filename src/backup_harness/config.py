"""Backup harness configuration.

Loads from the `harness:` section of a YAML file, or from BACKUP_HARNESS_*
environment variables when running in CI without a config file.

Environment variables ARE supported using ${VAR_NAME} and
${VAR_NAME:-default} syntax in YAML files.
"""

import logging
import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.errors.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "BACKUP_HARNESS_"

# Resolved against the working directory (the repo root when running pytest)
DEFAULT_CONFIG_FILE = Path("config") / "harness.yaml"


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _parse_optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, str) and value.strip().lower() in ("", "none", "off", "disabled"):
        return None
    return float(value)


@dataclass
class HarnessConfig:
    """Settings for one backup harness test suite.

    Object storage:
        endpoint_url: S3-compatible endpoint (None uses the AWS default)
        region: Signing region, also the bucket location constraint
        access_key_id / secret_access_key: Static credentials (optional)
        use_virtual_dot_host: Allow dotted bucket names with virtual-host
            addressing. Off by default since dotted names need a matching
            TLS certificate.
        bucket_prefix: Prepended to every generated bucket name

    Cleanup:
        cleanup_initial_delay: Seconds to wait before deleting buckets at
            shutdown. None disables cleanup entirely.
        max_cleanup_timeout: Upper bound in seconds for the whole shutdown,
            initial delay included

    Polling:
        poll_attempts / poll_delay: Defaults for wait_for_download

    Messaging:
        kafka_bootstrap_servers, kafka_topic: Where synthetic traffic goes
        kafka_producer: Extra AIOKafkaProducer keyword arguments
    """

    endpoint_url: Optional[str] = None
    region: str = "us-east-1"
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    use_virtual_dot_host: bool = False
    bucket_prefix: Optional[str] = None

    cleanup_initial_delay: Optional[float] = None
    max_cleanup_timeout: float = 600.0

    poll_attempts: int = 10
    poll_delay: float = 1.0

    kafka_bootstrap_servers: str = "localhost:9092"
    kafka_topic: str = "backup-harness"
    kafka_producer: Dict[str, Any] = field(default_factory=dict)

    @property
    def cleanup_enabled(self) -> bool:
        return self.cleanup_initial_delay is not None

    @property
    def addressing_style(self) -> str:
        return "virtual" if self.use_virtual_dot_host else "path"

    def validate(self) -> None:
        """Validate numeric ranges and required fields.

        Raises:
            ConfigurationError: If any value is out of range
        """
        if not self.region:
            raise ConfigurationError("region is required")

        if self.cleanup_initial_delay is not None and self.cleanup_initial_delay < 0:
            raise ConfigurationError(
                f"cleanup_initial_delay must be >= 0, got {self.cleanup_initial_delay}"
            )

        if self.max_cleanup_timeout <= 0:
            raise ConfigurationError(
                f"max_cleanup_timeout must be > 0, got {self.max_cleanup_timeout}"
            )

        if (
            self.cleanup_initial_delay is not None
            and self.cleanup_initial_delay >= self.max_cleanup_timeout
        ):
            raise ConfigurationError(
                f"cleanup_initial_delay ({self.cleanup_initial_delay}) must be < "
                f"max_cleanup_timeout ({self.max_cleanup_timeout})"
            )

        if self.poll_attempts < 1:
            raise ConfigurationError(
                f"poll_attempts must be >= 1, got {self.poll_attempts}"
            )

        if self.poll_delay < 0:
            raise ConfigurationError(f"poll_delay must be >= 0, got {self.poll_delay}")

        if self.bucket_prefix is not None and not re.fullmatch(
            r"[a-z0-9][a-z0-9.-]*", self.bucket_prefix
        ):
            raise ConfigurationError(
                f"bucket_prefix must be lowercase letters, digits, '-' or '.', "
                f"got '{self.bucket_prefix}'"
            )

        if not self.kafka_bootstrap_servers:
            raise ConfigurationError("kafka_bootstrap_servers is required")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HarnessConfig":
        """Build a config from a plain mapping, ignoring unknown keys with a warning."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown harness config keys: %s", unknown)

        try:
            config = cls(
                endpoint_url=data.get("endpoint_url") or None,
                region=data.get("region", "us-east-1"),
                access_key_id=data.get("access_key_id") or None,
                secret_access_key=data.get("secret_access_key") or None,
                use_virtual_dot_host=_parse_bool(data.get("use_virtual_dot_host", False)),
                bucket_prefix=data.get("bucket_prefix") or None,
                cleanup_initial_delay=_parse_optional_float(data.get("cleanup_initial_delay")),
                max_cleanup_timeout=float(data.get("max_cleanup_timeout", 600.0)),
                poll_attempts=int(data.get("poll_attempts", 10)),
                poll_delay=float(data.get("poll_delay", 1.0)),
                kafka_bootstrap_servers=data.get("kafka_bootstrap_servers", "localhost:9092"),
                kafka_topic=data.get("kafka_topic", "backup-harness"),
                kafka_producer=dict(data.get("kafka_producer") or {}),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid harness configuration: {e}", cause=e) from e

        config.validate()
        return config

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "HarnessConfig":
        """Load from BACKUP_HARNESS_* environment variables.

        BACKUP_HARNESS_ENDPOINT_URL maps to endpoint_url, and so on for every
        field except kafka_producer.
        """
        environ = os.environ if environ is None else environ
        data: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name == "kafka_producer":
                continue
            value = environ.get(f"{ENV_PREFIX}{f.name.upper()}")
            if value is not None:
                data[f.name] = value
        return cls.from_dict(data)


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> HarnessConfig:
    """Load harness configuration from a YAML file.

    Raises:
        ConfigurationError: If the file is missing, has no `harness:`
            section, or holds invalid values
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    logger.info("Loading harness configuration from file: %s", config_path)
    try:
        yaml_data = load_yaml(config_path)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}", cause=e) from e
    yaml_data = _expand_env_vars(yaml_data)

    if not isinstance(yaml_data.get("harness"), dict):
        raise ConfigurationError(
            f"Invalid config file {config_path}: missing 'harness:' section"
        )

    harness_config = yaml_data["harness"]

    if overrides:
        logger.debug("Applying overrides: %s", list(overrides.keys()))
        harness_config = _deep_merge(harness_config, overrides)

    config = HarnessConfig.from_dict(harness_config)
    logger.debug(
        "Harness configuration loaded: endpoint=%s region=%s cleanup=%s",
        config.endpoint_url,
        config.region,
        config.cleanup_enabled,
    )
    return config


__all__ = [
    "HarnessConfig",
    "load_config",
    "load_yaml",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
]
