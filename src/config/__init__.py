"""Configuration loading for feedsync.

Configuration is read from the ``feedsync:`` section of config.yaml
(see config.yaml.example at the repository root).

Main Functions
--------------

    - load_config(): Load SyncConfig from YAML, environment and overrides
    - get_config(): Get or load singleton config instance
    - set_config(): Install a config instance (tests)
    - reset_config(): Reset singleton config instance

Usage Examples
--------------

    >>> from config import load_config
    >>> config = load_config(overrides={"concurrency": 4})
    >>> config.interval_seconds
    3600.0

Configuration Priority
---------------------

1. Overrides passed by the caller (CLI flags)
2. Environment variables (FEEDSYNC_CONCURRENCY, FEEDSYNC_API_TOKEN, ...)
3. YAML configuration file, with ${VAR} / ${VAR:-default} expansion
4. Dataclass defaults
"""

from config.config import (
    DEFAULT_CONFIG_FILE,
    SyncConfig,
    get_config,
    load_config,
    reset_config,
    set_config,
)

__all__ = [
    "load_config",
    "get_config",
    "set_config",
    "reset_config",
    "SyncConfig",
    "DEFAULT_CONFIG_FILE",
]
