# querypilot/settings.py
"""
Runtime configuration, read from the environment once per process.

Env vars:
  LLM_PROVIDER=openai|anthropic   (default: anthropic if ANTHROPIC_API_KEY is set, else openai)
  OPENAI_API_KEY=...
  ANTHROPIC_API_KEY=...
  SQL_LLM_MODEL=...               (default: depends on provider)
  LLM_TIMEOUT (default: 30)
  LLM_MAX_TOKENS (default: 2048)
  GOOGLE_CLOUD_CREDENTIALS        service-account JSON; empty uses application default credentials
  BIGQUERY_LOCATION               optional job location (e.g. US, EU)
  MAX_RESULT_ROWS (default: 10000)
  DATABASE_URL                    optional SQLAlchemy URL; unset keeps history in memory
  PROMETHEUS_ENABLED (default: true)
  LOG_AS_JSON (default: true)
  LOG_LEVEL (default: INFO)
  SENTRY_DSN (optional)
  ENVIRONMENT (default: development)
"""

import os
from dataclasses import dataclass
from typing import Optional

_ANTHROPIC_DEFAULT = "claude-sonnet-4-20250514"
_OPENAI_DEFAULT = "gpt-4o"


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _resolve_provider(explicit: str, anthropic_key: str, openai_key: str) -> str:
    explicit = explicit.strip().lower()
    if explicit in ("anthropic", "claude"):
        return "anthropic"
    if explicit in ("openai", "gpt"):
        return "openai"
    if anthropic_key:
        return "anthropic"
    return "openai"


@dataclass
class Settings:
    llm_provider: str = "openai"
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    llm_model: str = _OPENAI_DEFAULT
    llm_timeout: int = 30
    llm_max_tokens: int = 2048
    google_credentials_json: str = ""
    bigquery_location: Optional[str] = None
    max_result_rows: int = 10000
    database_url: Optional[str] = None
    prometheus_enabled: bool = True
    log_as_json: bool = True
    log_level: str = "INFO"
    sentry_dsn: Optional[str] = None
    environment: str = "development"

    @classmethod
    def from_env(cls) -> "Settings":
        openai_key = os.getenv("OPENAI_API_KEY", "").strip()
        anthropic_key = os.getenv("ANTHROPIC_API_KEY", "").strip()
        provider = _resolve_provider(os.getenv("LLM_PROVIDER", ""), anthropic_key, openai_key)
        default_model = _ANTHROPIC_DEFAULT if provider == "anthropic" else _OPENAI_DEFAULT
        return cls(
            llm_provider=provider,
            openai_api_key=openai_key,
            anthropic_api_key=anthropic_key,
            llm_model=os.getenv("SQL_LLM_MODEL", default_model),
            llm_timeout=int(os.getenv("LLM_TIMEOUT", "30")),
            llm_max_tokens=int(os.getenv("LLM_MAX_TOKENS", "2048")),
            google_credentials_json=os.getenv("GOOGLE_CLOUD_CREDENTIALS", "").strip(),
            bigquery_location=os.getenv("BIGQUERY_LOCATION") or None,
            max_result_rows=int(os.getenv("MAX_RESULT_ROWS", "10000")),
            database_url=os.getenv("DATABASE_URL") or None,
            prometheus_enabled=_flag("PROMETHEUS_ENABLED", "true"),
            log_as_json=_flag("LOG_AS_JSON", "true"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            sentry_dsn=os.getenv("SENTRY_DSN") or None,
            environment=os.getenv("ENVIRONMENT", "development"),
        )

    @property
    def llm_api_key(self) -> str:
        return self.anthropic_api_key if self.llm_provider == "anthropic" else self.openai_api_key
