"""
Message formatting utilities for notifications.
Renders release notes into Telegram HTML (parse_mode=HTML).
"""

import html
import re
from datetime import datetime
from typing import List, Optional

from core import constants
from core.exceptions import ValidationError
from models.message import NotificationMessage
from models.version import Version

RELEASE_EMOJI = "🚀"
NOTE_BULLET = "•"

BULLET_PREFIX_PATTERN = re.compile(r"^\s*[-*•]\s*")
SUBHEADING_PREFIX_PATTERN = re.compile(r"^\s*###\s*")


def escape_html(text: str) -> str:
    """HTML escape for safe display (text and attribute values)."""
    return html.escape(text, quote=True)


def format_date(date_str: Optional[str]) -> str:
    """Format a YYYY-MM-DD release date as 'January 15, 2025'."""
    if not date_str or date_str == constants.UNKNOWN_DATE:
        return "Unknown"
    try:
        dt = datetime.strptime(date_str.strip(), "%Y-%m-%d")
    except ValueError:
        return "Unknown"
    return f"{dt.strftime('%B')} {dt.day}, {dt.year}"


def format_note(note: str) -> str:
    """Render one raw changelog line: bullets become '•', sub-headings bold."""
    if SUBHEADING_PREFIX_PATTERN.match(note):
        title = SUBHEADING_PREFIX_PATTERN.sub("", note).strip()
        return f"<b>{escape_html(title)}</b>"
    cleaned = BULLET_PREFIX_PATTERN.sub("", note).strip()
    return f"{NOTE_BULLET} {escape_html(cleaned)}"


def format_notes(notes: List[str], max_notes: int = constants.DEFAULT_MAX_NOTES) -> str:
    """
    Format release notes for display.

    Args:
        notes: Raw note lines as extracted from the changelog
        max_notes: Maximum number of lines shown

    Returns:
        Rendered HTML lines, with an '... and N more' marker when truncated
    """
    if not notes:
        return "No changes listed"

    shown = [format_note(note) for note in notes[:max_notes]]
    hidden = len(notes) - len(shown)
    if hidden > 0:
        shown.append(f"<i>... and {hidden} more</i>")
    return "\n".join(shown)


def create_notification_message(
    version: Version,
    changelog_url: str,
    project_name: str = constants.DEFAULT_PROJECT_NAME,
) -> NotificationMessage:
    """Build the channel-independent message for a detected release."""
    if version is None or not getattr(version, "number", None):
        raise ValidationError(
            "Invalid version data for message creation", {"version": repr(version)}
        )

    return NotificationMessage(
        version=version.number,
        release_date=version.release_date,
        notes=list(version.notes),
        changelog_url=changelog_url,
        project_name=project_name,
    )


def format_telegram_notification(
    message: NotificationMessage, max_notes: int = constants.DEFAULT_MAX_NOTES
) -> str:
    """
    Create Telegram message with consistent formatting.

    Returns:
        Telegram message HTML string, at most TELEGRAM_MAX_MESSAGE_LENGTH chars
    """
    if message is None or not message.version:
        raise ValidationError("Invalid message data", {"message": repr(message)})

    header = (
        f"{RELEASE_EMOJI} <b>New {escape_html(message.project_name)} Release!</b>\n\n"
        f"Version: <b>v{escape_html(message.version)}</b>\n"
        f"Released: {format_date(message.release_date)}\n\n"
        f"<b>What's New:</b>\n"
    )
    footer = ""
    if message.changelog_url:
        footer = f"\n\nFull changelog: <a href=\"{escape_html(message.changelog_url)}\">View on GitHub</a>"

    notes = format_notes(message.notes, max_notes)
    budget = constants.TELEGRAM_MAX_MESSAGE_LENGTH - len(header) - len(footer)

    # Drop whole lines rather than cut through a tag or entity
    if len(notes) > budget:
        lines = notes.split("\n")
        kept: List[str] = []
        marker = "<i>... and more</i>"
        used = len(marker)
        for line in lines:
            if used + len(line) + 1 > budget:
                break
            kept.append(line)
            used += len(line) + 1
        notes = "\n".join(kept + [marker])

    return header + notes + footer
