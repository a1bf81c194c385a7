"""
foliotree.config.loader - Find, parse and merge configuration

Configuration comes from three layers, later ones winning:
built-in defaults, a ``.foliotree.toml`` file, and ``FOLIOTREE_*``
environment variables.
"""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any

import tomlkit
from tomlkit.exceptions import TOMLKitError

from foliotree.config.defaults import CONFIG_FILENAME, DEFAULT_CONFIG, ENV_PREFIX


def find_config_file(start_path: Path) -> Path | None:
    """Find ``.foliotree.toml`` in ``start_path`` or any parent directory.

    Args:
        start_path: Directory to start searching from.

    Returns:
        Path to the config file, or None if not found.
    """
    current = Path(start_path).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        if current == current.parent:
            return None
        current = current.parent


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge ``override`` into a copy of ``base``.

    Nested dicts merge key by key; any other value in ``override``
    replaces the one in ``base``.
    """
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def load_config(config_path: Path) -> dict[str, Any]:
    """Load a TOML config file merged over the defaults.

    Args:
        config_path: Path to the ``.foliotree.toml`` file.

    Returns:
        Complete configuration dict.

    Raises:
        ValueError: If the file is not valid TOML.
    """
    text = Path(config_path).read_text(encoding="utf-8")
    try:
        data = tomlkit.parse(text).unwrap()
    except TOMLKitError as e:
        raise ValueError(f"Invalid TOML in {config_path}: {e}") from e
    return merge_configs(DEFAULT_CONFIG, data)


def _try_parse_env_value(value: str) -> Any:
    """Parse an environment variable value into a typed Python value.

    JSON arrays and objects are decoded, ``true``/``false`` (any case)
    become booleans, integer and float literals become numbers. Anything
    else, including malformed JSON, is returned unchanged.
    """
    stripped = value.strip()
    if stripped.startswith(("[", "{")):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            return value
    lowered = stripped.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    try:
        return int(stripped)
    except ValueError:
        pass
    try:
        return float(stripped)
    except ValueError:
        return value


def _split_env_key(key: str, sections: list[str]) -> tuple[str, str] | None:
    """Split ``RATE_LIMIT_CAPACITY`` into ``("rate_limit", "capacity")``.

    Known section names are matched longest first so sections containing
    underscores resolve correctly; otherwise the first underscore splits.
    """
    lowered = key.lower()
    for section in sorted(sections, key=len, reverse=True):
        prefix = f"{section}_"
        if lowered.startswith(prefix) and len(lowered) > len(prefix):
            return section, lowered[len(prefix):]
    section, sep, name = lowered.partition("_")
    if not sep or not section or not name:
        return None
    return section, name


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply ``FOLIOTREE_<SECTION>_<KEY>`` environment variables to ``config``.

    Example: ``FOLIOTREE_SERVER_PORT=9000`` sets ``config["server"]["port"]``
    to 9000. Missing sections are created.

    Returns:
        The same dict, updated in place.
    """
    sections = list({*config.keys(), *DEFAULT_CONFIG.keys()})
    for env_key, raw in os.environ.items():
        if not env_key.startswith(ENV_PREFIX):
            continue
        split = _split_env_key(env_key[len(ENV_PREFIX):], sections)
        if split is None:
            continue
        section, name = split
        target = config.setdefault(section, {})
        if not isinstance(target, dict):
            continue
        target[name] = _try_parse_env_value(raw)
    return config


def get_config(
    config_path: Path | None = None,
    start_path: Path | None = None,
) -> dict[str, Any]:
    """Resolve the effective configuration.

    Args:
        config_path: Explicit config file. When None, the file is
            discovered from ``start_path`` (default: current directory).
        start_path: Directory to start discovery from.

    Returns:
        Defaults, merged with the config file if any, with environment
        overrides applied.

    Raises:
        FileNotFoundError: If ``config_path`` is given but does not exist.
    """
    if config_path is not None:
        if not Path(config_path).exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        config = load_config(config_path)
    else:
        found = find_config_file(start_path or Path.cwd())
        config = load_config(found) if found else copy.deepcopy(DEFAULT_CONFIG)
    return _apply_env_overrides(config)
