"""Configuration management via environment variables and .env file."""

from __future__ import annotations

import os
import sys

from dotenv import load_dotenv
from pydantic import BaseModel


class Config(BaseModel):
    """Application configuration loaded from environment.

    Built once at process start and passed explicitly to every component.
    """

    # API keys (SerpAPI optional, falls back to DuckDuckGo)
    serpapi_key: str = ""
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    apollo_api_key: str = ""

    # Search settings
    search_rate_limit_rps: float = 1.0   # Sequential queries, never faster than this
    search_timeout: int = 20
    max_results_per_query: int = 5
    max_fetch_urls: int = 30
    prioritize_recent: bool = False

    # Content fetching
    fetch_timeout: int = 10
    fetch_max_redirects: int = 5
    content_max_chars: int = 5000

    # Relevancy thresholds (observed 0.05 - 0.3 depending on pipeline depth)
    relevancy_threshold: float = 0.2
    overview_relevancy_threshold: float = 0.05
    min_content_quality: float = 0.3
    max_critical_urls: int = 3

    # Language models
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    openai_model: str = "gpt-4o"
    llm_max_tokens: int = 4000
    llm_temperature: float = 0.1
    llm_timeout: int = 120

    # Cache
    cache_db_path: str = ".sales_intel_cache.db"
    cache_ttl_hours: int = 24
    search_cache_ttl_hours: int = 6
    overview_cache_ttl_hours: int = 168
    cache_compress_threshold: int = 1024  # bytes

    # Async requests
    request_ttl_hours: int = 24


def load_config() -> Config:
    """Load configuration from .env file and environment variables.

    Environment variables override .env values.
    Exits with an error message if required keys are missing.
    """
    load_dotenv()

    serpapi_key = os.getenv("SERPAPI_KEY", "")
    anthropic_key = os.getenv("ANTHROPIC_API_KEY", "")
    openai_key = os.getenv("OPENAI_API_KEY", "")

    # At least one LLM key required
    if not anthropic_key and not openai_key:
        print("Configuration error:", file=sys.stderr)
        print("  - At least one LLM key required: ANTHROPIC_API_KEY or OPENAI_API_KEY", file=sys.stderr)
        print("\nSet these in a .env file or as environment variables.", file=sys.stderr)
        sys.exit(1)

    if not serpapi_key:
        print("  Note: SERPAPI_KEY not set, using free DuckDuckGo search", file=sys.stderr)

    return Config(
        serpapi_key=serpapi_key,
        anthropic_api_key=anthropic_key,
        openai_api_key=openai_key,
        apollo_api_key=os.getenv("APOLLO_API_KEY", ""),
        search_rate_limit_rps=float(os.getenv("SEARCH_RATE_LIMIT_RPS", "1.0")),
        max_results_per_query=int(os.getenv("MAX_RESULTS_PER_QUERY", "5")),
        max_fetch_urls=int(os.getenv("MAX_FETCH_URLS", "30")),
        prioritize_recent=os.getenv("PRIORITIZE_RECENT", "").lower() in ("1", "true", "yes"),
        fetch_timeout=int(os.getenv("FETCH_TIMEOUT", "10")),
        content_max_chars=int(os.getenv("CONTENT_MAX_CHARS", "5000")),
        relevancy_threshold=float(os.getenv("RELEVANCY_THRESHOLD", "0.2")),
        overview_relevancy_threshold=float(os.getenv("OVERVIEW_RELEVANCY_THRESHOLD", "0.05")),
        min_content_quality=float(os.getenv("MIN_CONTENT_QUALITY", "0.3")),
        anthropic_model=os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-5-20250929"),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o"),
        llm_max_tokens=int(os.getenv("LLM_MAX_TOKENS", "4000")),
        llm_timeout=int(os.getenv("LLM_TIMEOUT", "120")),
        cache_db_path=os.getenv("CACHE_DB_PATH", ".sales_intel_cache.db"),
        cache_ttl_hours=int(os.getenv("CACHE_TTL_HOURS", "24")),
        search_cache_ttl_hours=int(os.getenv("SEARCH_CACHE_TTL_HOURS", "6")),
        overview_cache_ttl_hours=int(os.getenv("OVERVIEW_CACHE_TTL_HOURS", "168")),
        request_ttl_hours=int(os.getenv("REQUEST_TTL_HOURS", "24")),
    )
