"""Configuration loading utilities for the share server.

This module handles layered configuration:
1. Explicit path argument (highest precedence)
2. Environment variable SHARECHAT_CONFIG
3. Fallback to "config/default.yaml"

Whatever the file provides is laid over :data:`DEFAULTS`. Environment
variables with prefix ``SHARECHAT__`` override individual keys
(e.g., SHARECHAT__RATE_LIMIT__LIMIT=20).
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "SHARECHAT__"

DEFAULTS: Dict[str, Any] = {
    "server": {
        "max_content_chars": 1024 * 1024,
        "client_ip_header": "CF-Connecting-IP",
        "cache_max_age": 3600,
    },
    "storage": {
        "backend": "disk",
        "data_dir": "data",
        "cloudflare": {"account_id": "", "namespace_id": "", "api_token": "", "timeout": 10.0},
    },
    "rate_limit": {"limit": 10, "window_seconds": 3600},
    "ids": {"length": 8, "max_attempts": 10},
    "parser": {"multi_turn": False},
    "logging": {"level": "INFO"},
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides with prefix SHARECHAT__."""
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        # e.g., SHARECHAT__STORAGE__DATA_DIR -> cfg["storage"]["data_dir"]
        parts = key[len(ENV_PREFIX):].lower().split("__")
        sub = cfg
        for p in parts[:-1]:
            if p not in sub or not isinstance(sub[p], dict):
                sub[p] = {}
            sub = sub[p]
        leaf = parts[-1]
        # Attempt to parse simple types (bool, int, float)
        if value.lower() in {"true", "false"}:
            sub[leaf] = value.lower() == "true"
        else:
            try:
                if "." in value:
                    sub[leaf] = float(value)
                else:
                    sub[leaf] = int(value)
            except ValueError:
                sub[leaf] = value
    return cfg


def load_config(path: str | None = None) -> Dict[str, Any]:
    """Load YAML configuration for the share server.

    Parameters
    ----------
    path : str | None
        Optional path to a configuration file. If not provided, the
        environment variable ``SHARECHAT_CONFIG`` is consulted. As a
        last resort ``config/default.yaml`` is used.

    Returns
    -------
    Dict[str, Any]
        Defaults, overlaid with the file, with environment overrides applied.
    """
    # Resolve path precedence
    if path is None:
        path = os.environ.get("SHARECHAT_CONFIG", "config/default.yaml")

    path_obj = Path(path)
    if not path_obj.exists():
        logger.warning("Config file not found at %s. Using defaults.", path_obj)
        return _apply_env_overrides(copy.deepcopy(DEFAULTS))

    with path_obj.open("r", encoding="utf-8") as f:
        try:
            file_cfg = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RuntimeError(f"Failed to parse config file {path_obj}: {e}") from e

    if not isinstance(file_cfg, dict):
        raise RuntimeError(f"Invalid config format in {path_obj}, expected dict.")

    return _apply_env_overrides(_merge(DEFAULTS, file_cfg))
