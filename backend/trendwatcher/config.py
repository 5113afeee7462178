"""
Application configuration with environment variable support.
"""
from __future__ import annotations

import os


def _get_env_float(key: str, default: float) -> float:
    """Get float value from environment variable with fallback."""
    try:
        return float(os.getenv(key, default))
    except (ValueError, TypeError):
        return default


def _get_env_int(key: str, default: int) -> int:
    """Get integer value from environment variable with fallback."""
    try:
        return int(os.getenv(key, default))
    except (ValueError, TypeError):
        return default


def _get_env_list(key: str, default: list[str], separator: str = ",") -> list[str]:
    """Get list value from environment variable with fallback."""
    value = os.getenv(key)
    if not value:
        return default
    return split_list(value, separator)


def split_list(value: str | None, separator: str = ",") -> list[str]:
    """Split a separated string into trimmed, non-empty items."""
    if not value:
        return []
    return [item.strip() for item in value.split(separator) if item.strip()]


APP_NAME: str = "TrendWatcher"

# Source Collection Settings
DEFAULT_SOURCES: list[str] = _get_env_list(
    "DEFAULT_SOURCES", ["lonely", "depression", "socialskills"]
)
LOOKBACK_HOURS: int = _get_env_int("LOOKBACK_HOURS", 48)
MAX_POSTS_PER_SOURCE: int = _get_env_int("MAX_POSTS_PER_SOURCE", 100)
FEED_BODY_MAX_CHARS: int = _get_env_int("FEED_BODY_MAX_CHARS", 500)

# Reddit Endpoints
REDDIT_BASE_URL: str = "https://www.reddit.com"
REDDIT_OAUTH_BASE_URL: str = "https://oauth.reddit.com"
REDDIT_AUTH_URL: str = f"{REDDIT_BASE_URL}/api/v1/access_token"

# Token Cache Settings
# Seconds subtracted from the issuer's expires_in before the token is reused
TOKEN_EXPIRY_MARGIN_SECONDS: int = _get_env_int("TOKEN_EXPIRY_MARGIN_SECONDS", 60)

# Analysis Settings
OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
MAX_ANALYSIS_POSTS: int = _get_env_int("MAX_ANALYSIS_POSTS", 200)
ANALYSIS_BODY_CHARS: int = _get_env_int("ANALYSIS_BODY_CHARS", 200)
ANALYSIS_MAX_TOKENS: int = _get_env_int("ANALYSIS_MAX_TOKENS", 4000)
ANALYSIS_TEMPERATURE: float = _get_env_float("ANALYSIS_TEMPERATURE", 0.3)

# Notification Settings
BREVO_BASE_URL: str = "https://api.brevo.com/v3"
DEFAULT_EMAIL_SENDER: str = "trendwatcher@sdglab.dev"
TOP_POSTS_IN_EMAIL: int = _get_env_int("TOP_POSTS_IN_EMAIL", 15)

# Persistence Settings
REPORTS_TABLE: str = "reports"
SETTINGS_TABLE: str = "app_settings"
SETTINGS_ROW_ID: str = "global"

# HTTP Client Configuration
REQUEST_TIMEOUT: float = _get_env_float("REQUEST_TIMEOUT", 30.0)
USER_AGENT = "web:TrendWatcher:v1.0 (by /u/sdglab)"
HTTP_HEADERS = {"User-Agent": USER_AGENT, "Accept": "application/json"}
FEED_HEADERS = {
    "User-Agent": f"{USER_AGENT} RSS",
    "Accept": "application/atom+xml,application/xml",
}

# CORS Configuration
CORS_ALLOW_ORIGINS: list[str] = _get_env_list("CORS_ALLOW_ORIGINS", ["*"])

# Logging Configuration
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT: str = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
