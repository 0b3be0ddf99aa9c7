"""
Message parsing helpers

The "message" column of the channel tables holds either plain text or a JSON
object written by the AI agent ({"type": "ai", "content": "..."}).
"""
import json
from typing import Any, Dict, Optional

from chat_sync.models.conversation import SenderKind
from chat_sync.utils.session_id import DEFAULT_CONTACT_NAME

CONTACT_SENDER_TYPE = "CONTATO_EXTERNO"
AGENT_SENDER_TYPE = "USUARIO_INTERNO"
AGENT_DISPLAY_NAME = "Agente"

# Channels whose outgoing messages are signed with a fixed name
CHANNEL_SENDER_OVERRIDES = {
    "gerente-externo": "andressa",
    "d2892900-ca8f-4b08-a73f-6b7aa5866ff7": "andressa",
    "chat": "Óticas Villa Glamour",
    "yelena-ai": "Óticas Villa Glamour",
    "af1e5797-edc6-4ba3-a57a-25cf7297c4d6": "Óticas Villa Glamour",
}


def parse_message_data(value: Any) -> Optional[Dict[str, Any]]:
    """
    Normalise a message column value.

    Returns a dict with "content" and, for JSON payloads, "timestamp",
    "type" ("ai" or "human") and "sender". Returns None when there is no
    usable content.
    """
    if value is None:
        return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.startswith("{") and text.endswith("}"):
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError:
                decoded = None
            if isinstance(decoded, dict):
                return parse_message_data(decoded)
        return {"content": text}

    if isinstance(value, dict):
        content = value.get("content") or value.get("message") or value.get("text")
        if not isinstance(content, str) or not content.strip():
            content = json.dumps(value, ensure_ascii=False)
        message_type = "ai" if value.get("type") == "ai" else "human"
        return {
            "content": content.strip(),
            "timestamp": value.get("timestamp"),
            "type": message_type,
            "sender": value.get("sender"),
        }

    return None


def message_content(value: Any) -> Optional[str]:
    parsed = parse_message_data(value)
    return parsed["content"] if parsed else None


def sender_kind(row: Dict[str, Any]) -> SenderKind:
    if row.get("tipo_remetente") == CONTACT_SENDER_TYPE:
        return SenderKind.CONTACT
    return SenderKind.AGENT


def row_contact_name(row: Dict[str, Any]) -> Optional[str]:
    """Contact name stored on the row (both column spellings occur)."""
    for column in ("Nome_do_contato", "nome_do_contato"):
        name = row.get(column)
        if isinstance(name, str) and name.strip():
            return name.strip()
    return None


def sender_display_name(row: Dict[str, Any]) -> str:
    if sender_kind(row) == SenderKind.CONTACT:
        return row_contact_name(row) or DEFAULT_CONTACT_NAME
    return AGENT_DISPLAY_NAME


def channel_sender_name(
    channel_id: Optional[str],
    contact_name: Optional[str] = None,
    resolved_name: Optional[str] = None,
) -> str:
    """
    Name shown for a conversation participant in a given channel.

    A resolved contact name wins, then the channel's fixed signature, then
    the raw contact name.
    """
    if resolved_name:
        return resolved_name
    override = CHANNEL_SENDER_OVERRIDES.get((channel_id or "").lower())
    if override:
        return override
    return contact_name or DEFAULT_CONTACT_NAME
