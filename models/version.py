from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Tuple

from core import constants


class VersionComponents(BaseModel):
    """Parsed form of a semantic version string. Derived, never persisted."""

    model_config = ConfigDict(frozen=True)

    major: int = Field(..., ge=0)
    minor: int = Field(..., ge=0)
    patch: int = Field(..., ge=0)
    prerelease: Tuple[str, ...] = ()
    build: Optional[str] = None  # Ignored for ordering

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + self.build
        return text


class Version(BaseModel):
    """One release entry discovered in the changelog."""

    model_config = ConfigDict(frozen=True)

    number: str
    release_date: str = constants.UNKNOWN_DATE  # YYYY-MM-DD or "unknown"
    notes: Tuple[str, ...] = ()


class ChangelogData(BaseModel):
    versions: List[Version] = Field(default_factory=list)  # Document order
    latest: Optional[Version] = None
