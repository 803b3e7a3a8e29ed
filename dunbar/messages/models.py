from datetime import datetime, timezone

from pydantic import BaseModel, Field


class Attachment(BaseModel):
    type: str = "unknown"  # "img" | "video" | "audio" | "unknown"
    src_url: str = ""
    file_name: str = ""
    file_size: float = 0
    mime_type: str = ""
    duration: float = 0  # seconds, audio/video
    width: int = 0
    height: int = 0
    is_gif: bool = False
    is_sticker: bool = False
    is_voice_note: bool = False


class Conversation(BaseModel):
    id: str
    account_id: str = ""
    platform: str = ""  # network name, e.g. "whatsapp"
    title: str = ""
    type: str = "single"  # "single" | "group"
    participant_uids: list[str] = []
    participant_count: int = 0
    unread_count: int = 0
    last_activity: datetime = Field(
        default_factory=lambda: datetime.fromtimestamp(0, timezone.utc)
    )
    is_archived: bool = False
    is_muted: bool = False
    is_pinned: bool = False


class Message(BaseModel):
    id: str
    contact_uid: str = ""  # the contact this message is with (sender id)
    conversation_uid: str = ""
    chat_title: str = ""
    timestamp: datetime
    sender_uid: str = ""
    sender_name: str = ""
    content: str = ""
    platform: str = ""
    platform_id: str = ""
    is_sent: bool = False
    attachments: list[Attachment] = []
    sort_key: str = ""  # tie-breaker for equal timestamps
