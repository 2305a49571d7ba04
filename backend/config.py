"""
Central Configuration Module
Environment variables are loaded lazily from .env files. The getters are read
once at startup by load_settings(), which returns an immutable Settings object
that is passed explicitly to the orchestration engine.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Track if we've loaded .env files
_env_loaded = False


def _ensure_env_loaded():
    """Load .env files if not already loaded."""
    global _env_loaded
    if not _env_loaded:
        base_dir = Path(__file__).parent.parent
        load_dotenv(base_dir / "config" / ".env")
        load_dotenv(base_dir / ".env")
        _env_loaded = True


def _is_placeholder(value: str) -> bool:
    return not value or value.startswith("your_")


# --- API Keys (lazy getters) ---

def get_anthropic_api_key() -> str:
    _ensure_env_loaded()
    return os.getenv("ANTHROPIC_API_KEY", "")


def get_groq_api_key() -> str:
    _ensure_env_loaded()
    return os.getenv("GROQ_API_KEY", "")


def get_tavily_api_key() -> str:
    _ensure_env_loaded()
    return os.getenv("TAVILY_API_KEY", "")


# --- Models ---

def get_anthropic_model() -> str:
    _ensure_env_loaded()
    return os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-6")


def get_groq_model() -> str:
    _ensure_env_loaded()
    return os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")


def get_anthropic_timeout() -> float:
    _ensure_env_loaded()
    return float(os.getenv("ANTHROPIC_TIMEOUT", "20"))


# --- Orchestration Budgets ---

def get_history_budget_chars() -> int:
    """Groq free tier allows ~12k TPM; 6k chars of history leaves room for the rest."""
    _ensure_env_loaded()
    return int(os.getenv("HISTORY_BUDGET_CHARS", "6000"))


def get_rich_history_budget_chars() -> int:
    _ensure_env_loaded()
    return int(os.getenv("RICH_HISTORY_BUDGET_CHARS", "60000"))


def get_max_tool_iterations() -> int:
    _ensure_env_loaded()
    return int(os.getenv("MAX_TOOL_ITERATIONS", "8"))


def get_search_max_results() -> int:
    _ensure_env_loaded()
    return int(os.getenv("SEARCH_MAX_RESULTS", "6"))


# --- Deal Filtering ---

def get_min_acres() -> float:
    _ensure_env_loaded()
    return float(os.getenv("MIN_ACRES", "2.0"))


def get_acreage_policy() -> str:
    """'annotate' replaces under-minimum deals with a note, 'drop' removes them."""
    _ensure_env_loaded()
    value = os.getenv("ACREAGE_POLICY", "annotate").strip().lower()
    return value if value in ("annotate", "drop") else "annotate"


def get_unknown_acreage_policy() -> str:
    _ensure_env_loaded()
    value = os.getenv("UNKNOWN_ACREAGE_POLICY", "keep").strip().lower()
    return value if value in ("keep", "drop") else "keep"


# --- Server Settings ---

def get_log_level() -> str:
    _ensure_env_loaded()
    return os.getenv("LOG_LEVEL", "INFO")


def get_fastapi_port() -> int:
    _ensure_env_loaded()
    return int(os.getenv("FASTAPI_PORT", "8000"))


def get_rate_limit_rpm() -> int:
    _ensure_env_loaded()
    return int(os.getenv("RATE_LIMIT_RPM", "30"))


def get_cors_origins() -> List[str]:
    _ensure_env_loaded()
    raw = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


# --- Immutable settings ---

@dataclass(frozen=True)
class Settings:
    """Process configuration, built once at startup and never mutated."""
    anthropic_api_key: str = ""
    groq_api_key: str = ""
    tavily_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-6"
    groq_model: str = "llama-3.3-70b-versatile"
    anthropic_timeout: float = 20.0
    history_budget_chars: int = 6000
    rich_history_budget_chars: int = 60000
    max_tool_iterations: int = 8
    search_max_results: int = 6
    min_acres: float = 2.0
    acreage_policy: str = "annotate"
    unknown_acreage_policy: str = "keep"

    @property
    def has_anthropic(self) -> bool:
        key = self.anthropic_api_key
        return not _is_placeholder(key) and key.startswith("sk-ant")

    @property
    def has_groq(self) -> bool:
        return not _is_placeholder(self.groq_api_key)

    @property
    def has_tavily(self) -> bool:
        return not _is_placeholder(self.tavily_api_key)

    @property
    def has_any_stage(self) -> bool:
        return self.has_anthropic or self.has_groq or self.has_tavily


def load_settings() -> Settings:
    """Read every getter once and freeze the result."""
    return Settings(
        anthropic_api_key=get_anthropic_api_key(),
        groq_api_key=get_groq_api_key(),
        tavily_api_key=get_tavily_api_key(),
        anthropic_model=get_anthropic_model(),
        groq_model=get_groq_model(),
        anthropic_timeout=get_anthropic_timeout(),
        history_budget_chars=get_history_budget_chars(),
        rich_history_budget_chars=get_rich_history_budget_chars(),
        max_tool_iterations=get_max_tool_iterations(),
        search_max_results=get_search_max_results(),
        min_acres=get_min_acres(),
        acreage_policy=get_acreage_policy(),
        unknown_acreage_policy=get_unknown_acreage_policy(),
    )
