"""Channel models"""
from typing import Optional
from pydantic import BaseModel, Field


class ChannelInfo(BaseModel):
    """A support queue and the table that stores its messages"""
    id: str = Field(..., description="Legacy channel id, e.g. 'canarana'")
    display_name: str = Field(..., description="Name shown to agents")
    table_name: str = Field(..., description="Per-channel message table")
    has_read_flag: bool = Field(True, description="Whether the table tracks is_read")

    class Config:
        json_schema_extra = {
            "example": {
                "id": "souto-soares",
                "display_name": "Souto Soares",
                "table_name": "souto_soares_conversas",
                "has_read_flag": True
            }
        }


class ChannelCounts(BaseModel):
    """Conversation counters for a channel"""
    channel_id: str
    total_conversations: int = Field(0, description="Distinct session ids in the channel table")
    unread_messages: int = Field(0, description="Rows with is_read = false")
    total_messages: Optional[int] = Field(None, description="Rows fetched while counting")
