from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger("tyrant_bot.prompts")

DATA_DIR = Path(__file__).with_name("data")

# path -> (mtime_ns of the override file or None, merged result)
_loaded: dict[Path, tuple[int | None, dict[str, Any]]] = {}


def merge_overrides(defaults: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Recursive dict merge. Nested dicts merge key by key; anything else is replaced."""
    result = copy.deepcopy(defaults)
    for key, value in overrides.items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = merge_overrides(current, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _override_mtime(path: Path) -> int | None:
    try:
        return path.stat().st_mtime_ns
    except OSError:
        return None


def _read_overrides(path: Path) -> dict[str, Any]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8-sig"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable prompt overrides %s: %s", path, exc)
        return {}
    if not isinstance(payload, dict):
        logger.warning("Ignoring prompt overrides %s: top level must be an object", path)
        return {}
    return payload


def load_prompt_json(filename: str, defaults: dict[str, Any], data_dir: Path | None = None) -> dict[str, Any]:
    """Return ``defaults`` merged with ``<data_dir>/<filename>`` when that file exists.

    The merged result is reused until the file's mtime changes, so edits to the
    override file are picked up without a restart.
    """
    path = (data_dir or DATA_DIR) / filename
    mtime = _override_mtime(path)

    hit = _loaded.get(path)
    if hit is not None and hit[0] == mtime:
        return copy.deepcopy(hit[1])

    if mtime is None:
        merged = copy.deepcopy(defaults)
    else:
        merged = merge_overrides(defaults, _read_overrides(path))
        logger.info("Loaded prompt overrides from %s", path)

    _loaded[path] = (mtime, merged)
    return copy.deepcopy(merged)
