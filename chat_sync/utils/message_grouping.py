"""Turn channel table rows into API messages and sender groups"""
from typing import Any, Dict, Iterable, List, Optional

from chat_sync.models.conversation import ChatMessage, MessageGroup
from chat_sync.utils.message_parser import parse_message_data, sender_display_name, sender_kind


def row_to_message(row: Dict[str, Any]) -> Optional[ChatMessage]:
    """Project a row, or None when it has no session id or content."""
    session_id = row.get("session_id")
    parsed = parse_message_data(row.get("message"))
    if not session_id or not parsed:
        return None

    media_url = row.get("media_base64") or row.get("media_url")
    if media_url and not str(media_url).startswith(("http://", "https://")):
        # Inline base64 is never shipped to clients; see media migration
        media_url = None

    return ChatMessage(
        id=row.get("id"),
        session_id=session_id,
        content=parsed["content"],
        sender=sender_kind(row),
        sender_name=sender_display_name(row),
        timestamp=row.get("read_at") or parsed.get("timestamp"),
        is_read=row.get("is_read"),
        message_type=row.get("mensagemtype"),
        media_url=media_url,
    )


def rows_to_messages(rows: Iterable[Dict[str, Any]]) -> List[ChatMessage]:
    messages = []
    for row in rows:
        message = row_to_message(row)
        if message is not None:
            messages.append(message)
    return messages


def group_consecutive_messages(messages: Iterable[ChatMessage]) -> List[MessageGroup]:
    """
    Group consecutive messages by sender.

    A new group starts whenever the sender kind or the sender name changes.
    """
    groups: List[MessageGroup] = []
    current: Optional[MessageGroup] = None

    for message in messages:
        if current is None or current.sender != message.sender or current.sender_name != message.sender_name:
            current = MessageGroup(
                id=f"group-{message.id}",
                sender=message.sender,
                sender_name=message.sender_name,
            )
            groups.append(current)

        current.messages.append(message)
        current.last_timestamp = message.timestamp or ""

    return groups
