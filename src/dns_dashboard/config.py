from __future__ import annotations

from pathlib import Path

import structlog
from dotenv import set_key
from pydantic_settings import BaseSettings, SettingsConfigDict

from .yaml_config import get_defaults

log = structlog.get_logger()

_defaults = get_defaults()

ENV_PREFIX = "DNS_DASHBOARD_"


class Settings(BaseSettings):
    """Immutable runtime configuration.

    Never mutated in place: build a new one with `load_settings()` and hand it
    to `DashboardService.reconfigure()`.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    # Log source backend: technitium | pihole | opensearch
    log_source: str = _defaults.get("log_source", "technitium")

    # Technitium DNS Server
    technitium_api_url: str = _defaults.get("technitium_api_url", "http://localhost:5380")
    technitium_token: str = ""

    # Pi-hole FTL database
    pihole_db: str = _defaults.get("pihole_db", "/etc/pihole/pihole-FTL.db")

    # OpenSearch (SIEM mode)
    opensearch_host: str = _defaults.get("opensearch_host", "localhost")
    opensearch_port: int = _defaults.get("opensearch_port", 9200)
    opensearch_pihole_index_prefix: str = _defaults.get("opensearch_pihole_index_prefix", "pihole")

    # Analysis cache
    cache_db: str = _defaults.get("cache_db", "./cache.db")

    # Classifier backend: gemini | ollama
    classifier_provider: str = _defaults.get("classifier_provider", "gemini")
    gemini_api_key: str = ""
    gemini_model: str = _defaults.get("gemini_model", "gemini-2.5-flash")
    ollama_base_url: str = _defaults.get("ollama_base_url", "http://localhost:11434")
    ollama_model: str = _defaults.get("ollama_model", "qwen3:14b")

    # Dashboard behavior
    default_limit: int = _defaults.get("default_limit", 50)
    enrich_batch_size: int = _defaults.get("enrich_batch_size", 20)
    new_entry_highlight_ms: int = _defaults.get("new_entry_highlight_ms", 2000)
    refresh_interval_seconds: float = _defaults.get("refresh_interval_seconds", 10.0)
    request_timeout_seconds: float = _defaults.get("request_timeout_seconds", 15.0)

    @property
    def classifier_configured(self) -> bool:
        if self.classifier_provider == "gemini":
            return bool(self.gemini_api_key)
        return True


def load_settings(env_file: str | Path | None = ".env") -> Settings:
    return Settings(_env_file=env_file)


def store_credentials(
    env_file: str | Path,
    *,
    technitium_token: str | None = None,
    gemini_api_key: str | None = None,
) -> Settings:
    """Write the given keys to `env_file` and return freshly loaded settings."""
    updates = {
        f"{ENV_PREFIX}TECHNITIUM_TOKEN": technitium_token,
        f"{ENV_PREFIX}GEMINI_API_KEY": gemini_api_key,
    }
    updates = {k: v for k, v in updates.items() if v}
    if not updates:
        raise ValueError("No settings provided")

    path = Path(env_file)
    path.touch(exist_ok=True)
    for key, value in updates.items():
        set_key(str(path), key, value, quote_mode="never")
    log.info("credentials_stored", env_file=str(path), keys=sorted(updates))
    return load_settings(path)
