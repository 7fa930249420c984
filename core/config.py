from pydantic_settings import BaseSettings
from typing import List, Optional
from pydantic import AliasChoices, Field, field_validator
from core import constants
from core.exceptions import ConfigError


def _strip_env_value(v: str, name: str) -> str:
    """Handle accidental copy-paste of "KEY=VALUE" and surrounding quotes."""
    v = v.strip()
    if v.startswith(f"{name}="):
        v = v.split("=", 1)[1]
    return v.strip("'").strip('"').strip()


class Settings(BaseSettings):
    # --- Changelog Source ---
    CHANGELOG_URL: str = Field(
        constants.DEFAULT_CHANGELOG_URL, description="Raw URL of the CHANGELOG.md to watch"
    )
    PROJECT_NAME: str = Field(
        constants.DEFAULT_PROJECT_NAME, description="Project name shown in notifications"
    )
    FETCH_TIMEOUT: int = Field(constants.FETCH_TIMEOUT, description="Changelog fetch timeout in seconds")
    MAX_CHANGELOG_BYTES: int = Field(
        constants.MAX_CHANGELOG_BYTES, description="Maximum changelog size in bytes"
    )
    USER_AGENT: str = Field(constants.DEFAULT_USER_AGENT)

    # --- Telegram ---
    TELEGRAM_TOKEN: Optional[str] = Field(None, description="Telegram Bot Token")
    TELEGRAM_CHAT_ID: Optional[str] = Field(
        None,
        description="Target Chat ID",
        validation_alias=AliasChoices("TELEGRAM_CHAT_ID", "CHAT_ID"),
    )
    TELEGRAM_TOPIC_ID: Optional[int] = Field(
        None, description="Forum topic (message thread) ID"
    )
    NOTIFICATION_MAX_NOTES: int = Field(
        constants.DEFAULT_MAX_NOTES, description="Maximum release notes per message"
    )

    # --- State Persistence ---
    STATE_BACKEND: str = Field("supabase", description="State backend (supabase/memory)")
    SUPABASE_URL: Optional[str] = Field(None, description="Supabase Project URL")
    SUPABASE_KEY: Optional[str] = Field(None, description="Supabase Service Role Key")
    STATE_TABLE: str = Field(constants.STATE_TABLE, description="Key-value table name")
    STATE_KEY: str = Field(constants.STATE_KEY, description="Logical key of the state record")
    STATE_TTL_SECONDS: int = Field(constants.STATE_TTL_SECONDS, description="State record TTL")

    # --- Scheduling ---
    CHECK_INTERVAL: int = Field(
        constants.DEFAULT_CHECK_INTERVAL, description="Check interval in seconds (daemon mode)"
    )
    RUN_TIMEOUT: int = Field(
        constants.DEFAULT_RUN_TIMEOUT, description="Hard limit for a single run in seconds"
    )
    HEALTH_HOST: str = Field(constants.DEFAULT_HEALTH_HOST)
    HEALTH_PORT: int = Field(constants.DEFAULT_HEALTH_PORT)

    # --- Logging ---
    TIMEZONE: str = Field(constants.DEFAULT_TIMEZONE, description="Timezone for log timestamps")
    LOG_LEVEL: str = Field(constants.DEFAULT_LOG_LEVEL, description="Logging level")
    LOG_FILE: str = Field(constants.DEFAULT_LOG_FILE, description="Log file path")
    LOG_FORMAT: str = Field(constants.DEFAULT_LOG_FORMAT, description="Log format (text/json)")
    LOG_MAX_BYTES: int = Field(constants.DEFAULT_LOG_MAX_BYTES, description="Max log file size")
    LOG_BACKUP_COUNT: int = Field(constants.DEFAULT_LOG_BACKUP_COUNT, description="Log backup count")

    @field_validator("CHANGELOG_URL", mode="before")
    @classmethod
    def parse_changelog_url(cls, v):
        if isinstance(v, str):
            v = _strip_env_value(v, "CHANGELOG_URL")
            if not v:
                return constants.DEFAULT_CHANGELOG_URL
        return v

    @field_validator("TELEGRAM_TOPIC_ID", mode="before")
    @classmethod
    def parse_telegram_topic_id(cls, v):
        if isinstance(v, str):
            v = _strip_env_value(v, "TELEGRAM_TOPIC_ID")
            if not v:
                return None
            try:
                return int(v)
            except ValueError as e:
                raise ValueError(f"TELEGRAM_TOPIC_ID must be an integer: {e}")
        return v

    @field_validator("STATE_BACKEND", mode="before")
    @classmethod
    def parse_state_backend(cls, v):
        if isinstance(v, str):
            v = _strip_env_value(v, "STATE_BACKEND").lower()
            if v not in ("supabase", "memory"):
                raise ValueError("STATE_BACKEND must be 'supabase' or 'memory'")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"
        populate_by_name = True

    def validate_all(self) -> List[str]:
        """
        Validate all configuration settings.
        Returns a list of warning/error messages.
        """
        errors = []

        # Critical
        if not self.TELEGRAM_TOKEN:
            errors.append("❌ TELEGRAM_TOKEN is missing")
        if not self.TELEGRAM_CHAT_ID:
            errors.append("❌ TELEGRAM_CHAT_ID is missing")
        if not self.CHANGELOG_URL.startswith(("https://", "http://")):
            errors.append("❌ CHANGELOG_URL must be an http(s) URL")

        if self.STATE_BACKEND == "supabase":
            if not self.SUPABASE_URL:
                errors.append("❌ SUPABASE_URL is missing")
            elif not self.SUPABASE_URL.startswith("https://"):
                errors.append("❌ SUPABASE_URL must start with https://")
            if not self.SUPABASE_KEY:
                errors.append("❌ SUPABASE_KEY is missing")
        else:
            errors.append(
                "⚠️ STATE_BACKEND=memory - state is lost on restart (first run every start)"
            )

        # Warnings
        if self.CHECK_INTERVAL < 60:
            errors.append("⚠️ CHECK_INTERVAL below 60s may hit upstream rate limits")

        return errors

    def require_valid(self) -> None:
        """Raise ConfigError if any critical setting is missing."""
        fatal = [msg for msg in self.validate_all() if msg.startswith("❌")]
        if fatal:
            raise ConfigError(
                "Configuration validation failed", {"errors": "; ".join(fatal)}
            )


settings = Settings()
