from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum

from parsers.semver import is_valid


class PersistedState(BaseModel):
    """
    The single state record kept in the key-value store.

    Stored as JSON with camelCase keys (lastVersion, lastCheckTime,
    lastNotificationTime). last_version is always a version that was
    detected and, except on the first run, successfully notified.
    """

    model_config = ConfigDict(populate_by_name=True)

    last_version: str = Field(..., alias="lastVersion")
    last_check_time: datetime = Field(..., alias="lastCheckTime")
    last_notification_time: Optional[datetime] = Field(
        None, alias="lastNotificationTime"
    )

    @field_validator("last_version")
    @classmethod
    def validate_last_version(cls, v: str) -> str:
        if not is_valid(v):
            raise ValueError(f"lastVersion is not a valid semantic version: {v!r}")
        return v

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class RunOutcome(str, Enum):
    INITIALIZED = "initialized"
    NO_CHANGE = "no_change"
    NOTIFIED = "notified"


class RunResult(BaseModel):
    """Summary of one orchestrator run, returned to the host."""

    outcome: RunOutcome
    latest_version: str
    previous_version: Optional[str] = None
    duration_ms: float = 0.0
