from pydantic import BaseModel, Field
from typing import List, Optional

from core import constants


class ChannelConfig(BaseModel):
    """Destination of a notification on the messaging channel."""

    bot_token: str = Field(..., repr=False)
    chat_id: str
    thread_id: Optional[int] = None  # Forum topic (message_thread_id)


class NotificationMessage(BaseModel):
    version: str
    release_date: str = constants.UNKNOWN_DATE
    notes: List[str] = Field(default_factory=list)
    changelog_url: str = ""
    project_name: str = constants.DEFAULT_PROJECT_NAME
