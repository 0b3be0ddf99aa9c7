"""
Webhook Models
Payloads posted by the Evolution API (WhatsApp gateway)
"""
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class EvolutionWebhookPayload(BaseModel):
    """
    Evolution API webhook envelope.

    Only messages.upsert events are stored; every other event is acknowledged.
    """
    event: Optional[str] = Field(None, description="Event name, e.g. 'messages.upsert'")
    instance: Optional[str] = Field(None, description="Evolution instance name")
    data: Dict[str, Any] = Field(default_factory=dict, description="Event data")

    class Config:
        extra = "allow"
        json_schema_extra = {
            "example": {
                "event": "messages.upsert",
                "instance": "canarana",
                "data": {
                    "key": {"remoteJid": "5577999990000@s.whatsapp.net", "fromMe": False, "id": "3EB0C7"},
                    "pushName": "Maria",
                    "message": {"conversation": "Olá, bom dia!"},
                    "messageType": "conversation"
                }
            }
        }


class WebhookResponse(BaseModel):
    success: bool
    message: str
    table: Optional[str] = None
    processed: bool = False
    record_id: Optional[Any] = None
