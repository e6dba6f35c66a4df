"""
Data models for Marketplace listings and Messenger conversations.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .utils import now_utc


class Record(BaseModel):
    """Immutable snapshot; serializes with camelCase keys."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class Seller(Record):
    id: str = ""
    name: str = "Unknown"


class Listing(Record):
    """Represents a Marketplace listing as seen at capture time."""

    id: str
    # None means the title could not be extracted
    title: Optional[str] = None
    price: int = Field(default=0, ge=0)
    currency: str = "EUR"
    location: str = "Unknown Location"
    description: Optional[str] = None
    images: List[str] = Field(default_factory=list, max_length=5)
    seller: Seller = Field(default_factory=Seller)
    url: str
    # Capture time: the site rarely exposes the real post date
    posted_at: datetime = Field(default_factory=now_utc)
    category: Optional[str] = None
    condition: Optional[str] = None


class Participant(Record):
    id: str = ""
    name: str = "Unknown"


class LastMessage(Record):
    text: str
    timestamp: datetime = Field(default_factory=now_utc)
    sender_id: str = ""


class Conversation(Record):
    id: str
    participants: List[Participant] = Field(default_factory=list)
    last_message: Optional[LastMessage] = None
    unread_count: int = 0


class Attachment(Record):
    type: Literal["image", "file"]
    url: str


class Message(Record):
    id: str
    conversation_id: str = ""
    # "me" / "them" when the real sender id is not exposed
    sender_id: str
    sender_name: str
    text: str
    timestamp: datetime = Field(default_factory=now_utc)
    attachments: Optional[List[Attachment]] = None


class SearchOptions(BaseModel):
    """Parameters for a Marketplace search."""
    query: str
    location: Optional[str] = None
    radius: Optional[int] = None
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    category: Optional[str] = None
    limit: int = 20


class MessageOptions(BaseModel):
    limit: int = 20
