"""Loader for the coach's YAML thresholds and prompt templates."""
from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from app.config import get_settings


logger = logging.getLogger(__name__)


@lru_cache()
def _read_config(path: str) -> dict[str, Any]:
    config_path = Path(path)
    if not config_path.exists():
        logger.warning("Coach config %s not found - using built-in defaults", config_path)
        return {}

    with config_path.open("r", encoding="utf-8") as fh:
        loaded = yaml.safe_load(fh) or {}

    if not isinstance(loaded, dict):
        logger.warning("Coach config %s is not a mapping - ignoring it", config_path)
        return {}
    return loaded


def load_coach_config(path: str | Path | None = None) -> dict[str, Any]:
    """Return the parsed coach.yaml (empty dict when unavailable)."""

    if path is None:
        path = get_settings().coach_config_path
    return _read_config(str(path))


def get_prompt_template(name: str, path: str | Path | None = None) -> str:
    """Fetch a named prompt template, raising KeyError when missing."""

    prompts = load_coach_config(path).get("prompts", {})
    template = prompts.get(name)
    if not template:
        raise KeyError(f"Prompt template '{name}' missing from coach config")
    return template
