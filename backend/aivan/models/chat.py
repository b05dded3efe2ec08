"""
Chat Models - Chat sessions, messages, attachments and place cards.

Persisted documents use the camelCase field names the web client reads
(``isPinned``, ``deletedAt``, ``mimeType``); Python code uses snake_case.
"""

from datetime import datetime, timezone
from typing import Optional, List, Literal
from pydantic import BaseModel, Field


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class ChatMessage(BaseModel):
    """A single chat turn. Roles are not required to alternate."""
    role: Literal["user", "model"]
    text: str
    timestamp: str = Field(default_factory=utc_now_iso)


class ChatSession(BaseModel):
    """A chat session owned by one user."""
    id: str
    title: str
    date: str  # ISO creation timestamp, sorts chronologically as a string
    messages: List[ChatMessage] = Field(default_factory=list)
    is_pinned: bool = Field(default=False, alias="isPinned")
    deleted_at: Optional[str] = Field(default=None, alias="deletedAt")

    class Config:
        populate_by_name = True

    @property
    def is_trashed(self) -> bool:
        return bool(self.deleted_at)

    def to_document(self) -> dict:
        """Serialize with the persisted (camelCase) field names."""
        return self.model_dump(by_alias=True, mode="json")


class Attachment(BaseModel):
    """An inline file sent along with a user message."""
    type: Literal["image", "file"]
    mime_type: str = Field(alias="mimeType")
    data: str  # base64, optionally as a data URI
    name: Optional[str] = None

    class Config:
        populate_by_name = True

    @property
    def base64_data(self) -> str:
        """Payload with any ``data:<mime>;base64,`` prefix removed."""
        if self.data.startswith("data:") and "," in self.data:
            return self.data.split(",", 1)[1]
        return self.data


PlaceType = Literal[
    "flight", "hotel", "restaurant", "nature", "attraction", "shopping", "transport", "other"
]


class PlaceCard(BaseModel):
    """Structured place data embedded in a model message."""
    type: PlaceType = "other"
    title: str
    uri: str = ""
    description: str = ""
    details: List[str] = Field(default_factory=list)
