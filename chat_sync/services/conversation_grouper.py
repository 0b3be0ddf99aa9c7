"""
Conversation Grouper
Reduces flat message rows into one summary per session id
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from chat_sync.models.conversation import ConversationStatus, ConversationSummary
from chat_sync.utils.message_parser import message_content, row_contact_name
from chat_sync.utils.session_id import (
    DEFAULT_CONTACT_NAME,
    extract_name_from_session_id,
    extract_phone_from_session_id,
    fallback_contact_name,
)
from chat_sync.utils.timestamps import now_iso, parse_timestamp

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

NameResolver = Callable[[str, Optional[str]], str]


def default_contact_name(phone: str, row_name: Optional[str], session_id: str) -> str:
    if row_name:
        return row_name
    embedded = extract_name_from_session_id(session_id)
    if embedded != DEFAULT_CONTACT_NAME and not embedded[:1].isdigit():
        return embedded
    return fallback_contact_name(phone)


def group_conversations(
    rows: Iterable[Dict[str, Any]],
    resolve_name: Optional[NameResolver] = None,
    statuses: Optional[Mapping[str, ConversationStatus]] = None,
) -> List[ConversationSummary]:
    """
    Group message rows by session id.

    Args:
        rows: Rows of one channel table, any order
        resolve_name: (phone, row contact name) -> display name
        statuses: Stored conversation status per session id

    Returns:
        Summaries ordered by last message time, newest first
    """
    statuses = statuses or {}
    groups: Dict[str, Dict[str, Any]] = {}

    for row in rows:
        session_id = row.get("session_id")
        if not session_id:
            continue

        content = message_content(row.get("message"))
        if content is None:
            continue

        message_time = parse_timestamp(row.get("read_at"))
        group = groups.get(session_id)

        if group is None:
            group = {
                "session_id": session_id,
                "last_time": message_time,
                "last_row": row,
                "last_content": content,
                "contact_name": row_contact_name(row),
                "unread": 0,
                "count": 0,
            }
            groups[session_id] = group
        elif (message_time or _EPOCH) >= (group["last_time"] or _EPOCH):
            group["last_time"] = message_time
            group["last_row"] = row
            group["last_content"] = content

        # Prefer the latest non-empty contact name
        row_name = row_contact_name(row)
        if row_name and group["last_row"] is row:
            group["contact_name"] = row_name
        elif row_name and not group["contact_name"]:
            group["contact_name"] = row_name

        if row.get("is_read") is False:
            group["unread"] += 1
        group["count"] += 1

    summaries = []
    for session_id, group in groups.items():
        phone = extract_phone_from_session_id(session_id)
        if resolve_name is not None:
            contact_name = resolve_name(phone, group["contact_name"])
        else:
            contact_name = default_contact_name(phone, group["contact_name"], session_id)

        last_time = group["last_time"]
        last_time_iso = last_time.isoformat() if last_time else None

        summaries.append(
            ConversationSummary(
                id=session_id,
                contact_name=contact_name,
                contact_phone=phone,
                last_message=group["last_content"],
                last_message_time=last_time_iso,
                status=statuses.get(session_id, ConversationStatus.UNREAD),
                updated_at=last_time_iso or now_iso(),
                unread_count=group["unread"],
                message_count=group["count"],
            )
        )

    summaries.sort(
        key=lambda s: parse_timestamp(s.last_message_time) or _EPOCH,
        reverse=True,
    )
    logger.debug(f"Grouped {len(summaries)} conversations")
    return summaries
