"""config.yaml loading — defaults, file, then environment overrides."""

import copy
import logging
import os
from pathlib import Path

import yaml

from indexnow.client import DEFAULT_TIMEOUT_MS, ENDPOINT
from indexnow.collector import DEFAULT_EXCLUDE_PATHS, DEFAULT_SITEMAP_PATH
from indexnow.submission_log import (
    DEFAULT_LOG_PATH,
    MAX_LOG_SIZE_BYTES,
    STATS_WINDOW,
    SUCCESS_RATE_THRESHOLD,
)

logger = logging.getLogger(__name__)

CONFIG_PATH = Path("config.yaml")

DEFAULTS = {
    "site": {"domain": "", "key_host": ""},
    "indexnow": {"key": "", "timeout_ms": DEFAULT_TIMEOUT_MS, "endpoint": ENDPOINT},
    "collector": {
        "sitemap": DEFAULT_SITEMAP_PATH,
        "exclude_paths": list(DEFAULT_EXCLUDE_PATHS),
        "public_dir": "public",
    },
    "log": {
        "path": str(DEFAULT_LOG_PATH),
        "max_bytes": MAX_LOG_SIZE_BYTES,
        "success_rate_threshold": SUCCESS_RATE_THRESHOLD,
        "window": STATS_WINDOW,
    },
}

# env var -> (section, key)
ENV_OVERRIDES = {
    "SITE_DOMAIN": ("site", "domain"),
    "CLOUDFRONT_DOMAIN": ("site", "key_host"),
    "INDEXNOW_API_KEY": ("indexnow", "key"),
}


class ConfigError(ValueError):
    pass


def _merge(base: dict, override: dict) -> dict:
    for name, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(name), dict):
            _merge(base[name], value)
        else:
            base[name] = value
    return base


def load_config(path: str | Path | None = None, required: bool = False) -> dict:
    """Build the effective config. {path} falls back to $INDEXNOW_CONFIG, then ./config.yaml.

    A file named by $INDEXNOW_CONFIG must exist.
    """
    env_path = os.environ.get("INDEXNOW_CONFIG")
    if not path and env_path:
        required = True
    path = Path(path or env_path or CONFIG_PATH)
    cfg = copy.deepcopy(DEFAULTS)

    if path.exists():
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a mapping at the top level")
        _merge(cfg, data)
        logger.debug("Loaded configuration from %s", path)
    elif required:
        raise ConfigError(f"{path} not found. Copy config.example.yaml to {path} and fill in the site details.")

    validate_config(cfg)

    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            cfg[section][key] = value

    if not cfg["site"]["key_host"]:
        cfg["site"]["key_host"] = cfg["site"]["domain"]
    return cfg


def validate_config(cfg: dict):
    """Raise ConfigError on the first malformed setting. Missing domain/key are left to the caller."""
    for section in DEFAULTS:
        if not isinstance(cfg.get(section), dict):
            raise ConfigError(f"'{section}' must be a mapping")

    for section, key in (("site", "domain"), ("site", "key_host"), ("indexnow", "key")):
        if not isinstance(cfg[section].get(key, ""), str):
            raise ConfigError(f"'{section}.{key}' must be a string")

    timeout = cfg["indexnow"].get("timeout_ms")
    if not isinstance(timeout, int) or isinstance(timeout, bool) or timeout <= 0:
        raise ConfigError("'indexnow.timeout_ms' must be a positive integer")

    exclude = cfg["collector"].get("exclude_paths")
    if not isinstance(exclude, list) or not all(isinstance(p, str) for p in exclude):
        raise ConfigError("'collector.exclude_paths' must be a list of strings")

    log = cfg["log"]
    if not isinstance(log.get("max_bytes"), int) or log["max_bytes"] <= 0:
        raise ConfigError("'log.max_bytes' must be a positive integer")
    threshold = log.get("success_rate_threshold")
    if not isinstance(threshold, (int, float)) or not 0 <= threshold <= 1:
        raise ConfigError("'log.success_rate_threshold' must be between 0 and 1")
    if not isinstance(log.get("window"), int) or log["window"] < 1:
        raise ConfigError("'log.window' must be an integer >= 1")
