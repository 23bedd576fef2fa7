"""Non-secret defaults, prompts and display strings from config.yml.

Secrets (API token, Gemini key) live in the env file, never here.
"""

import os
from pathlib import Path

import yaml

_CONFIG_PATH = Path(os.environ.get("DNS_DASHBOARD_CONFIG_PATH", "config.yml"))

_cache: dict | None = None


def _load() -> dict:
    global _cache
    if _cache is None:
        if not _CONFIG_PATH.exists():
            _cache = {}
        else:
            with open(_CONFIG_PATH) as f:
                _cache = yaml.safe_load(f) or {}
    return _cache


def reload() -> None:
    """Drop the parsed file so the next read sees edits to config.yml."""
    global _cache
    _cache = None


def _section(name: str, default):
    value = _load().get(name)
    return default if value is None else value


def get_defaults() -> dict:
    return _section("defaults", {})


def get_prompts() -> dict[str, str]:
    prompts = _section("prompts", {})
    missing = {"classifier_system_prompt", "bulk_user_prompt"} - prompts.keys()
    if missing:
        raise KeyError(f"config.yml prompts missing: {', '.join(sorted(missing))}")
    return prompts


def get_messaging_keywords() -> list[str]:
    return [str(k) for k in _section("messaging_keywords", [])]


def get_output_strings() -> dict[str, str]:
    return _section("output", {})
