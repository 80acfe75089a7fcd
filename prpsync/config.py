"""
PRP Sync - Configuration Management

Loads API keys, database location, retry settings and the privileged
allow-list from environment variables.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from prpsync.exceptions import ConfigError


# Configuration paths
CONFIG_DIR = Path.home() / ".config" / "prpsync"
DEFAULT_DB_PATH = CONFIG_DIR / "prpsync.db"

DEFAULT_MODEL = "google/gemini-2.0-flash-001"
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 1.0


def _parse_user_list(raw: str) -> frozenset[str]:
    """Split a comma-separated username list, dropping blanks."""
    return frozenset(name.strip() for name in raw.split(",") if name.strip())


@dataclass
class PRPConfig:
    """Main configuration container for prpsync."""

    youtube_api_key: str = ""
    openrouter_api_key: str = ""
    notion_token: str = ""
    model: str = DEFAULT_MODEL
    db_path: Path = DEFAULT_DB_PATH
    allowed_users: frozenset[str] = field(default_factory=frozenset)
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY

    def __post_init__(self) -> None:
        # Expand ~ in path
        self.db_path = Path(self.db_path).expanduser()

    def require(self, name: str) -> str:
        """
        Return a required secret by attribute name.

        Raises:
            ConfigError: If the value is empty
        """
        value = getattr(self, name, "")
        if not value:
            env_name = _ENV_NAMES.get(name, name.upper())
            raise ConfigError(
                f"{env_name} environment variable not set",
                {"hint": f"Export {env_name}=your-key-here"},
            )
        return value

    def to_dict(self) -> dict[str, Any]:
        """Non-secret settings, safe for display."""
        return {
            "model": self.model,
            "db_path": str(self.db_path),
            "allowed_users": sorted(self.allowed_users),
            "max_retries": self.max_retries,
            "retry_base_delay": self.retry_base_delay,
            "youtube_configured": bool(self.youtube_api_key),
            "openrouter_configured": bool(self.openrouter_api_key),
            "notion_configured": bool(self.notion_token),
        }


_ENV_NAMES = {
    "youtube_api_key": "YOUTUBE_API_KEY",
    "openrouter_api_key": "OPENROUTER_API_KEY",
    "notion_token": "NOTION_TOKEN",
}


def load_config() -> PRPConfig:
    """
    Load configuration from the environment.

    Returns:
        PRPConfig with all settings loaded

    Raises:
        ConfigError: If a numeric setting cannot be parsed
    """
    config = PRPConfig(
        youtube_api_key=os.environ.get("YOUTUBE_API_KEY", ""),
        openrouter_api_key=os.environ.get("OPENROUTER_API_KEY", ""),
        notion_token=os.environ.get("NOTION_TOKEN", ""),
        model=os.environ.get("PRPSYNC_MODEL", DEFAULT_MODEL),
        db_path=Path(os.environ.get("PRPSYNC_DB_PATH", str(DEFAULT_DB_PATH))),
        allowed_users=_parse_user_list(os.environ.get("PRPSYNC_ALLOWED_USERS", "")),
    )

    if max_retries := os.environ.get("PRPSYNC_MAX_RETRIES"):
        try:
            config.max_retries = int(max_retries)
        except ValueError:
            raise ConfigError(
                "PRPSYNC_MAX_RETRIES must be an integer",
                {"value": max_retries},
            )
        if config.max_retries < 1:
            raise ConfigError("PRPSYNC_MAX_RETRIES must be at least 1")

    if base_delay := os.environ.get("PRPSYNC_RETRY_BASE_DELAY"):
        try:
            config.retry_base_delay = float(base_delay)
        except ValueError:
            raise ConfigError(
                "PRPSYNC_RETRY_BASE_DELAY must be a number",
                {"value": base_delay},
            )

    return config


def get_youtube_key() -> str:
    """
    Get YouTube Data API key from environment.

    Raises:
        ConfigError: If key is not set
    """
    return load_config().require("youtube_api_key")


def get_openrouter_key() -> str:
    """
    Get OpenRouter API key from environment.

    Raises:
        ConfigError: If key is not set
    """
    return load_config().require("openrouter_api_key")


def get_notion_token() -> str:
    """
    Get Notion integration token from environment.

    Raises:
        ConfigError: If token is not set
    """
    return load_config().require("notion_token")
