"""
Changelog (Markdown) parser.

Turns a Keep-a-Changelog style document into an ordered list of Version
entries. The scan is an explicit two-state machine:

    SEEKING_HEADER --version heading--> COLLECTING_NOTES
    COLLECTING_NOTES --version heading--> COLLECTING_NOTES (close + open)
    COLLECTING_NOTES --other #/## heading--> SEEKING_HEADER (close)

Recognized version headings:

    ## 1.2.3
    ## v1.2.3
    ## [1.2.3] - 2024-01-15
    ## 1.2.3-beta.1+build.5 (2024-01-15)
"""
import re
from enum import Enum
from typing import List, Optional, Tuple

from core import constants
from core.exceptions import ParseError
from core.logger import get_logger
from models.version import ChangelogData, Version
from parsers.semver import is_valid

logger = get_logger(__name__)

VERSION_HEADING_PATTERN = re.compile(r"^##[ \t]+\[?v?(?P<version>[^\s\]]+)\]?(?P<rest>.*)$")
HEADING_DATE_PATTERN = re.compile(r"^\s*(?:-\s*|\(\s*)?(?P<date>\d{4}-\d{2}-\d{2})\)?")
BULLET_PATTERN = re.compile(r"^\s*[-*•]\s+\S")
SUBHEADING_PATTERN = re.compile(r"^\s*###(?!#)\s*\S")
HORIZONTAL_RULE_PATTERN = re.compile(r"^\s*([-*_])(?:\s*\1){2,}\s*$")
SECTION_HEADING_PATTERN = re.compile(r"^#{1,2}(?!#)\s")


class ParserState(Enum):
    SEEKING_HEADER = "seeking_header"
    COLLECTING_NOTES = "collecting_notes"


def match_version_heading(line: str) -> Optional[Tuple[str, str]]:
    """
    Returns (version, release_date) if the line is a level-2 version heading.
    release_date is "unknown" when the heading carries no date.
    """
    match = VERSION_HEADING_PATTERN.match(line.rstrip())
    if not match:
        return None

    version = match.group("version")
    if not is_valid(version):
        return None

    date_match = HEADING_DATE_PATTERN.match(match.group("rest"))
    release_date = date_match.group("date") if date_match else constants.UNKNOWN_DATE
    return version, release_date


def is_note_line(line: str) -> bool:
    """Bullet item (-, *, •; indentation allowed) or a level-3 sub-heading."""
    if HORIZONTAL_RULE_PATTERN.match(line):
        return False
    return bool(BULLET_PATTERN.match(line) or SUBHEADING_PATTERN.match(line))


def is_section_heading(line: str) -> bool:
    """Level-1/2 heading that is not a version heading (e.g. "## [Unreleased]")."""
    return bool(SECTION_HEADING_PATTERN.match(line)) and match_version_heading(line) is None


class ChangelogParser:
    """
    Line-oriented changelog parser.

    Args:
        keep_empty_versions: keep entries without any note lines. Off by
            default so placeholder headings with no bullets yet are skipped.
    """

    def __init__(self, keep_empty_versions: bool = False):
        self.keep_empty_versions = keep_empty_versions
        self._reset()

    def _reset(self):
        self.state = ParserState.SEEKING_HEADER
        self.versions: List[Version] = []
        self._heading: Optional[Tuple[str, str]] = None
        self._notes: List[str] = []

    def _open_record(self, heading: Tuple[str, str]):
        self._heading = heading
        self._notes = []
        self.state = ParserState.COLLECTING_NOTES

    def _close_record(self):
        number, release_date = self._heading
        if self._notes or self.keep_empty_versions:
            self.versions.append(
                Version(number=number, release_date=release_date, notes=tuple(self._notes))
            )
        else:
            logger.debug(f"[PARSER] Skipping version {number}: no notes")

        self._heading = None
        self._notes = []
        self.state = ParserState.SEEKING_HEADER

    def feed(self, line: str):
        heading = match_version_heading(line)
        if heading:
            if self.state is ParserState.COLLECTING_NOTES:
                self._close_record()
            self._open_record(heading)
            return

        if self.state is ParserState.COLLECTING_NOTES:
            if is_section_heading(line):
                self._close_record()
            elif is_note_line(line):
                self._notes.append(line.strip())

    def parse(self, markdown: str) -> ChangelogData:
        """
        Parse the whole document.

        Raises:
            ParseError: on empty or non-text input, or when no version
                entries are found
        """
        if not isinstance(markdown, str) or not markdown.strip():
            raise ParseError(
                "Invalid markdown content provided",
                {"type": type(markdown).__name__},
            )

        self._reset()
        for line in markdown.splitlines():
            self.feed(line)
        if self.state is ParserState.COLLECTING_NOTES:
            self._close_record()

        versions = self.versions
        self._reset()

        if not versions:
            raise ParseError(
                "No valid version entries found in changelog",
                {"length": len(markdown)},
            )

        return ChangelogData(versions=versions, latest=versions[0])


def parse_changelog(markdown: str, keep_empty_versions: bool = False) -> ChangelogData:
    """Parse changelog markdown into ChangelogData (see ChangelogParser)."""
    return ChangelogParser(keep_empty_versions=keep_empty_versions).parse(markdown)


def extract_latest(markdown: str) -> Optional[str]:
    """
    Returns the topmost version number, or None if it can't be determined yet.
    Parse errors are logged, not raised.
    """
    try:
        data = parse_changelog(markdown)
    except ParseError as e:
        logger.warning(f"[PARSER] Could not extract latest version: {e}")
        return None
    return data.latest.number if data.latest else None
