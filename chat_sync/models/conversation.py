"""
Conversation Models
Message rows, conversation summaries and conversation status records
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class ConversationStatus(str, Enum):
    """Agent-facing conversation state"""
    UNREAD = "unread"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class SenderKind(str, Enum):
    CONTACT = "contact"
    AGENT = "agent"


class ChatMessage(BaseModel):
    """A message row projected for the API"""
    id: Optional[Any] = None
    session_id: str
    content: str = Field(..., description="Parsed message text")
    sender: SenderKind
    sender_name: str
    timestamp: Optional[str] = Field(None, description="read_at of the row")
    is_read: Optional[bool] = None
    message_type: Optional[str] = None
    media_url: Optional[str] = None


class MessageGroup(BaseModel):
    """Consecutive messages sent by the same sender"""
    id: str
    sender: SenderKind
    sender_name: str
    messages: List[ChatMessage] = Field(default_factory=list)
    last_timestamp: str = ""


class ConversationSummary(BaseModel):
    """One conversation (session id) of a channel"""
    id: str = Field(..., description="Session id of the conversation")
    contact_name: str
    contact_phone: str
    last_message: str
    last_message_time: Optional[str] = None
    status: ConversationStatus = ConversationStatus.UNREAD
    updated_at: str
    unread_count: int = 0
    message_count: int = 0

    class Config:
        json_schema_extra = {
            "example": {
                "id": "5577999990000-Maria",
                "contact_name": "Maria",
                "contact_phone": "5577999990000",
                "last_message": "Bom dia, meus óculos ficaram prontos?",
                "last_message_time": "2025-03-10T12:30:00+00:00",
                "status": "unread",
                "updated_at": "2025-03-10T12:30:00+00:00",
                "unread_count": 2,
                "message_count": 5
            }
        }


class StatusRecord(BaseModel):
    """Persisted status of one conversation"""
    status: ConversationStatus = ConversationStatus.UNREAD
    last_activity: Optional[datetime] = None
    last_viewed: Optional[datetime] = None
    last_message_time: Optional[datetime] = None
    auto_resolved_at: Optional[datetime] = None


class StatusUpdateRequest(BaseModel):
    status: ConversationStatus = Field(..., description="New conversation status")


class StatusResponse(BaseModel):
    channel_id: str
    conversation_id: str
    record: StatusRecord


class StatusCounts(BaseModel):
    unread: int = 0
    in_progress: int = 0
    resolved: int = 0

    @property
    def total(self) -> int:
        return self.unread + self.in_progress + self.resolved

    def as_dict(self) -> Dict[str, int]:
        return {"unread": self.unread, "in_progress": self.in_progress, "resolved": self.resolved, "total": self.total}
