"""Feed sync configuration from YAML file.

Loads the ``feedsync:`` section of config.yaml with all settings in one place:
- Remote feed listing and authentication
- Destination and state directories
- Download concurrency, pass limits and backoff
- Logging

Environment variables ARE supported using ${VAR_NAME} syntax in YAML files,
and FEEDSYNC_* variables override individual settings.
"""

import json
import logging
import os
import re
import sys
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.errors.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


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
        # Support both ${VAR} and ${VAR:-default} syntax
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


# Default config file: config.yaml in the working directory
DEFAULT_CONFIG_FILE = Path("config.yaml")

ENV_PREFIX = "FEEDSYNC_"


@dataclass
class SyncConfig:
    """Feed sync configuration.

    Configuration structure:
        feedsync:
          feed_url: https://api.example.com/v1/follow/latest
          api_token: ${FEEDSYNC_API_TOKEN}
          request_headers:
            Referer: https://www.example.com/
          destination: /data/mirror
          state_dir: ~/.feedsync
          concurrency: 8
          interval_seconds: 3600
          initial_watermark: null
          max_passes: null
          retry_base_delay: 0.0
          retry_max_delay: 60.0
          http_timeout_seconds: 300
          sock_read_timeout_seconds: 60
          log_dir: logs
          json_logs: true

    All durations in seconds.
    """

    # =========================================================================
    # REMOTE FEED
    # =========================================================================
    feed_url: str = ""
    api_token: str = ""
    request_headers: Dict[str, str] = field(default_factory=dict)

    # =========================================================================
    # STORAGE
    # =========================================================================
    destination: Optional[str] = None
    state_dir: str = field(default_factory=lambda: str(Path.home() / ".feedsync"))

    # =========================================================================
    # SYNC BEHAVIOUR
    # =========================================================================
    concurrency: int = 8
    interval_seconds: float = 3600.0
    initial_watermark: Optional[int] = None
    max_passes: Optional[int] = None  # None = retry until every item succeeds
    retry_base_delay: float = 0.0
    retry_max_delay: float = 60.0

    # =========================================================================
    # HTTP
    # =========================================================================
    http_timeout_seconds: int = 300
    sock_read_timeout_seconds: int = 60

    # =========================================================================
    # LOGGING
    # =========================================================================
    log_dir: str = "logs"
    json_logs: bool = True

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.concurrency = int(self.concurrency)
        self.interval_seconds = float(self.interval_seconds)
        self.retry_base_delay = float(self.retry_base_delay)
        self.retry_max_delay = float(self.retry_max_delay)
        self.http_timeout_seconds = int(self.http_timeout_seconds)
        self.sock_read_timeout_seconds = int(self.sock_read_timeout_seconds)
        if self.initial_watermark is not None:
            self.initial_watermark = int(self.initial_watermark)
        if self.max_passes is not None:
            self.max_passes = int(self.max_passes)
        if isinstance(self.json_logs, str):
            self.json_logs = self.json_logs.strip().lower() in ("1", "true", "yes", "on")

    @property
    def state_path(self) -> Path:
        return Path(self.state_dir).expanduser()

    def validate(self) -> None:
        """Validate numeric ranges. Raises ConfigurationError on the first violation."""
        if self.concurrency < 1:
            raise ConfigurationError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.interval_seconds <= 0:
            raise ConfigurationError(
                f"interval_seconds must be > 0, got {self.interval_seconds}"
            )
        if self.max_passes is not None and self.max_passes < 1:
            raise ConfigurationError(f"max_passes must be >= 1, got {self.max_passes}")
        if self.retry_base_delay < 0:
            raise ConfigurationError(
                f"retry_base_delay must be >= 0, got {self.retry_base_delay}"
            )
        if self.retry_max_delay < 0:
            raise ConfigurationError(
                f"retry_max_delay must be >= 0, got {self.retry_max_delay}"
            )
        if self.http_timeout_seconds <= 0 or self.sock_read_timeout_seconds <= 0:
            raise ConfigurationError("HTTP timeouts must be > 0")
        if self.initial_watermark is not None and self.initial_watermark < 0:
            raise ConfigurationError(
                f"initial_watermark must be >= 0, got {self.initial_watermark}"
            )

    def to_log_dict(self) -> Dict[str, Any]:
        """Settings safe to print at startup (token redacted)."""
        data = asdict(self)
        if data.get("api_token"):
            data["api_token"] = "[REDACTED]"
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


def _env_overrides() -> Dict[str, Any]:
    """Collect FEEDSYNC_<FIELD> environment variables for known fields."""
    overrides: Dict[str, Any] = {}
    for f in fields(SyncConfig):
        if f.name == "request_headers":
            continue
        value = os.getenv(f"{ENV_PREFIX}{f.name.upper()}")
        if value is not None and value != "":
            overrides[f.name] = value
    return overrides


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> SyncConfig:
    """Load sync configuration.

    Priority (highest to lowest):
    1. ``overrides`` (CLI flags)
    2. FEEDSYNC_* environment variables
    3. YAML ``feedsync:`` section
    4. Dataclass defaults

    A missing default config file is not an error; an explicitly given path
    that does not exist is.
    """
    explicit = config_path is not None
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    section: Dict[str, Any] = {}
    if config_path.exists():
        logger.info(f"Loading configuration from file: {config_path}")
        yaml_data = _expand_env_vars(load_yaml(config_path))
        if "feedsync" not in yaml_data:
            raise ConfigurationError(
                f"Invalid config file {config_path}: missing 'feedsync:' section\n"
                "See config.yaml.example for correct structure"
            )
        section = yaml_data["feedsync"] or {}
    elif explicit:
        raise ConfigurationError(f"Configuration file not found: {config_path}")
    else:
        logger.debug("No config file found, using defaults and environment")

    known = {f.name for f in fields(SyncConfig)}
    unknown = set(section) - known
    if unknown:
        logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")

    merged = {k: v for k, v in section.items() if k in known}
    merged = _deep_merge(merged, _env_overrides())
    if overrides:
        logger.debug(f"Applying overrides: {list(overrides.keys())}")
        merged = _deep_merge(merged, {k: v for k, v in overrides.items() if v is not None})

    try:
        config = SyncConfig(**merged)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration value: {e}", cause=e) from e

    if not config.api_token:
        logger.warning("Feed API token not configured")

    config.validate()
    logger.debug("Configuration validation passed")

    return config


_sync_config: Optional[SyncConfig] = None


def get_config() -> SyncConfig:
    """Get or load the singleton sync config instance."""
    global _sync_config
    if _sync_config is None:
        _sync_config = load_config()
    return _sync_config


def set_config(config: SyncConfig) -> None:
    """Set the singleton sync config instance (useful for testing)."""
    global _sync_config
    _sync_config = config


def reset_config() -> None:
    """Reset the singleton config instance (forces reload on next get_config() call)."""
    global _sync_config
    _sync_config = None


def _cli_main() -> int:
    """CLI entry point for config validation and debugging."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Feed Sync Configuration Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Validate configuration
  python -m config.config --validate

  # Show effective configuration as JSON
  python -m config.config --config config.yaml --json
        """,
    )
    parser.add_argument("--validate", action="store_true", help="Validate configuration")
    parser.add_argument("--config", type=Path, help="Path to config.yaml file")
    parser.add_argument("--json", action="store_true", help="Output effective config as JSON")

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    try:
        config = load_config(config_path=args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(config.to_log_dict(), indent=2))
    elif args.validate:
        print("Configuration validation passed")
    else:
        print(yaml.dump(config.to_log_dict(), default_flow_style=False, sort_keys=False))
    return 0


if __name__ == "__main__":
    sys.exit(_cli_main())
