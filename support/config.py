"""
Pipeline Worker — Environment Config Loader

Worker settings are layered over built-in DEFAULTS:
  1. Base file (worker.yaml)
  2. Profile overlay (config/{PW_ENV}.yaml)
  3. PW_ prefixed environment variables

The merged result is validated once; a bad value fails at load time
instead of halfway through init().

Usage:
    from support.config import load_config, get_config_value

    cfg = load_config(base_path="worker.yaml", env="prod")
    keytab = get_config_value("security.kerberos.keytab", cfg)

Environment variables:
    PW_ENV          — active profile (dev, staging, prod)
    PW_CONFIG_DIR   — directory for overlay files (default: config/)
    PW_*            — flat overrides (e.g., PW_LOGGING_LEVEL=DEBUG)
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("pipeline_worker.config")

ENV_PREFIX = "PW_"
META_VARS = frozenset({"PW_ENV", "PW_CONFIG_DIR", "PW_VERSION"})
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULTS: dict[str, Any] = {
    "runtime": {"config_dir": "etc"},
    "security": {
        "kerberos": {"enabled": False, "principal": None, "keytab": None},
    },
    "logging": {"level": "INFO"},
    "web": {"host": "127.0.0.1", "port": 0},
    "hooks": {"install": True, "install_signals": True},
}


class ConfigError(ValueError):
    """A config file is unreadable or a merged value is invalid."""


# ═══════════════════════════════════════════════════════════════════
# Merging
# ═══════════════════════════════════════════════════════════════════

def deep_merge(base: dict, overlay: dict) -> dict:
    """
    Return a new dict with overlay merged into base.
    Nested dicts merge key by key; any other overlay value replaces.
    """
    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _set_nested(d: dict, keys: list[str], value: str):
    """Store value at d[k1][k2]..., typed the way YAML would read it."""
    *parents, leaf = keys
    for key in parents:
        d = d.setdefault(key, {})
    try:
        d[leaf] = yaml.safe_load(value)
    except yaml.YAMLError:
        d[leaf] = value


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping, got {type(data).__name__}")
    return data


# ═══════════════════════════════════════════════════════════════════
# Profile Overlay
# ═══════════════════════════════════════════════════════════════════

def _load_overlay_file(
    base_path: str,
    env: str = "",
    config_dir: str = "",
) -> dict[str, Any]:
    """
    Profile overlay for env, or {} when there is no profile or no file.

    Searched in order: {config_dir}/{env}.yaml, {config_dir}/{env}.yml,
    then a config/ directory next to the base file.
    """
    env = env or os.environ.get("PW_ENV", "")
    if not env:
        return {}

    overlay_dir = Path(config_dir or os.environ.get("PW_CONFIG_DIR", "config"))
    search = (
        overlay_dir / f"{env}.yaml",
        overlay_dir / f"{env}.yml",
        Path(base_path).parent / "config" / f"{env}.yaml",
    )
    found = next((p for p in search if p.is_file()), None)
    if found is None:
        logger.debug("No overlay for profile '%s'", env)
        return {}

    overlay = _read_yaml(found)
    logger.info("Loaded config overlay: %s (%d keys)", found, len(overlay))
    return overlay


# ═══════════════════════════════════════════════════════════════════
# Environment Overrides
# ═══════════════════════════════════════════════════════════════════

def _load_env_overrides(prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """
    Collect PW_SECTION_KEY=value variables into a nested dict.

    A single underscore separates levels, a double underscore is a
    literal underscore inside a key:
      PW_LOGGING_LEVEL=DEBUG            → {"logging": {"level": "DEBUG"}}
      PW_HOOKS_INSTALL__SIGNALS=false   → {"hooks": {"install_signals": False}}

    PW_ENV, PW_CONFIG_DIR and PW_VERSION select the profile and are
    never treated as overrides.
    """
    overrides: dict[str, Any] = {}
    for name, value in os.environ.items():
        if not name.startswith(prefix) or name in META_VARS:
            continue
        segments = name[len(prefix):].lower().split("__")
        keys: list[str] = []
        for i, segment in enumerate(segments):
            parts = segment.split("_")
            if i and keys:
                keys[-1] += "_" + parts.pop(0)
            keys.extend(parts)
        _set_nested(overrides, keys, value)

    if overrides:
        logger.debug("Applied env overrides for sections: %s", sorted(overrides))
    return overrides


# ═══════════════════════════════════════════════════════════════════
# Validation
# ═══════════════════════════════════════════════════════════════════

def validate_config(config: dict[str, Any]) -> None:
    """Raise ConfigError on values init() could not work with."""
    level = get_config_value("logging.level", config, "INFO")
    if str(level).upper() not in LOG_LEVELS:
        raise ConfigError(f"logging.level must be one of {', '.join(LOG_LEVELS)}, got '{level}'")

    port = get_config_value("web.port", config, 0)
    if isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 65535:
        raise ConfigError(f"web.port must be an integer in 0..65535, got {port!r}")

    for key in ("hooks.install", "hooks.install_signals", "security.kerberos.enabled"):
        value = get_config_value(key, config)
        if not isinstance(value, bool):
            raise ConfigError(f"{key} must be true or false, got {value!r}")

    if not get_config_value("runtime.config_dir", config):
        raise ConfigError("runtime.config_dir must not be empty")


# ═══════════════════════════════════════════════════════════════════
# Main Loader
# ═══════════════════════════════════════════════════════════════════

def load_config(
    base_path: str = "worker.yaml",
    env: str = "",
    config_dir: str = "",
    include_env_vars: bool = True,
) -> dict[str, Any]:
    """
    Load, merge and validate the worker configuration.

    Later layers win: DEFAULTS < base file < profile overlay < PW_* vars.
    A missing base file is not an error; the defaults apply.
    """
    layers = [DEFAULTS]
    base = Path(base_path)
    if base.is_file():
        layers.append(_read_yaml(base))
        logger.debug("Loaded base config: %s", base)
    layers.append(_load_overlay_file(base_path, env=env, config_dir=config_dir))
    if include_env_vars:
        layers.append(_load_env_overrides())

    config: dict[str, Any] = {}
    for layer in layers:
        config = deep_merge(config, layer)
    validate_config(config)

    config["_active_env"] = env or os.environ.get("PW_ENV", "default")
    config["_config_source"] = base_path
    return config


def get_config_value(
    path: str,
    config: dict[str, Any] | None = None,
    default: Any = None,
) -> Any:
    """
    Look up a dotted path such as "security.kerberos.enabled".
    Loads the default config when none is given.
    """
    node: Any = load_config() if config is None else config
    for key in path.split("."):
        if not isinstance(node, dict) or key not in node:
            return default
        node = node[key]
    return node
