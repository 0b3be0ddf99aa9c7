"""
Message Repository
Data access for one per-channel message table
"""
import logging
from typing import Any, Dict, List, Optional

from chat_sync.utils.timestamps import now_iso

logger = logging.getLogger(__name__)

MESSAGE_COLUMNS = (
    "id, session_id, message, read_at, is_read, tipo_remetente, "
    "nome_do_contato, Nome_do_contato, mensagemtype, media_base64"
)
# yelena_ai_conversas has no is_read column
MESSAGE_COLUMNS_NO_READ_FLAG = (
    "id, session_id, message, read_at, tipo_remetente, "
    "nome_do_contato, Nome_do_contato, mensagemtype, media_base64"
)


class MessageRepository:
    """CRUD over a channel's message table"""

    def __init__(self, supabase, table_name: str, has_read_flag: bool = True):
        """
        Initialize Message Repository

        Args:
            supabase: Supabase client instance
            table_name: Channel message table, e.g. "canarana_conversas"
            has_read_flag: Whether the table has an is_read column
        """
        self.supabase = supabase
        self.table_name = table_name
        self.has_read_flag = has_read_flag
        self.columns = MESSAGE_COLUMNS if has_read_flag else MESSAGE_COLUMNS_NO_READ_FLAG

    def _table(self):
        return self.supabase.table(self.table_name)

    def find_all(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Most recent rows first (by id)"""
        try:
            response = self._table().select(self.columns).order("id", desc=True).limit(limit).execute()
            return response.data or []
        except Exception as e:
            logger.error(f"❌ Failed to list messages from {self.table_name}: {e}")
            raise

    def find_recent(self, limit: int = 40) -> List[Dict[str, Any]]:
        """Most recent rows first (by read_at)"""
        try:
            response = (
                self._table()
                .select(self.columns)
                .order("read_at", desc=True)
                .limit(limit)
                .execute()
            )
            return response.data or []
        except Exception as e:
            logger.error(f"❌ Failed to load recent messages from {self.table_name}: {e}")
            raise

    def find_by_id(self, message_id: Any) -> Optional[Dict[str, Any]]:
        try:
            response = self._table().select(self.columns).eq("id", message_id).limit(1).execute()
            rows = response.data or []
            return rows[0] if rows else None
        except Exception as e:
            logger.error(f"❌ Failed to fetch message {message_id} from {self.table_name}: {e}")
            raise

    def find_by_session(self, session_id: str, limit: int = 200) -> List[Dict[str, Any]]:
        """Conversation history in chronological order"""
        try:
            response = (
                self._table()
                .select(self.columns)
                .eq("session_id", session_id)
                .order("id", desc=False)
                .limit(limit)
                .execute()
            )
            return response.data or []
        except Exception as e:
            logger.error(f"❌ Failed to load session {session_id} from {self.table_name}: {e}")
            raise

    def find_by_phone(self, phone: str, limit: int = 200) -> List[Dict[str, Any]]:
        """Rows whose session id contains the phone number"""
        try:
            response = (
                self._table()
                .select(self.columns)
                .ilike("session_id", f"%{phone}%")
                .order("id", desc=False)
                .limit(limit)
                .execute()
            )
            return response.data or []
        except Exception as e:
            logger.error(f"❌ Failed to load phone {phone} from {self.table_name}: {e}")
            raise

    def find_after(self, timestamp: Optional[str], limit: int = 100, inclusive: bool = False) -> List[Dict[str, Any]]:
        """Rows with read_at after (or at, when inclusive) timestamp, oldest first"""
        try:
            query = self._table().select(self.columns)
            if timestamp:
                query = query.gte("read_at", timestamp) if inclusive else query.gt("read_at", timestamp)
            response = query.order("read_at", desc=False).limit(limit).execute()
            return response.data or []
        except Exception as e:
            logger.error(f"❌ Failed to poll {self.table_name}: {e}")
            raise

    def insert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a message row, returns the stored row"""
        if not self.has_read_flag:
            row = {k: v for k, v in row.items() if k != "is_read"}
        try:
            response = self._table().insert(row).execute()
            rows = response.data or []
            logger.info(f"✅ Message stored in {self.table_name} (session={row.get('session_id')})")
            return rows[0] if rows else row
        except Exception as e:
            logger.error(f"❌ Failed to insert message into {self.table_name}: {e}")
            raise Exception(f"Message insert failed: {str(e)}")

    def insert_message(self, session_id: str, message: str, contact_name: Optional[str] = None) -> Dict[str, Any]:
        row = {
            "session_id": session_id,
            "message": message,
            "nome_do_contato": contact_name,
            "read_at": now_iso(),
        }
        return self.insert(row)

    def update(self, message_id: Any, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            response = self._table().update(changes).eq("id", message_id).execute()
            rows = response.data or []
            return rows[0] if rows else None
        except Exception as e:
            logger.error(f"❌ Failed to update message {message_id} in {self.table_name}: {e}")
            raise

    def delete(self, message_id: Any) -> bool:
        try:
            response = self._table().delete().eq("id", message_id).execute()
            return bool(response.data)
        except Exception as e:
            logger.error(f"❌ Failed to delete message {message_id} from {self.table_name}: {e}")
            raise

    def mark_as_read(self, session_id: str) -> int:
        """
        Mark the unread rows of a session as read.

        read_at carries the message time, so only is_read changes.

        Returns:
            Number of rows updated (0 for tables without is_read)
        """
        if not self.has_read_flag:
            return 0

        try:
            response = (
                self._table()
                .update({"is_read": True})
                .eq("session_id", session_id)
                .eq("is_read", False)
                .execute()
            )
            updated = len(response.data or [])
            if updated:
                logger.info(f"📖 Marked {updated} messages read in {self.table_name} (session={session_id})")
            return updated
        except Exception as e:
            logger.error(f"❌ Failed to mark session {session_id} read in {self.table_name}: {e}")
            raise

    def session_ids(self, limit: int = 5000) -> List[str]:
        response = self._table().select("session_id").limit(limit).execute()
        return [row["session_id"] for row in response.data or [] if row.get("session_id")]

    def count_unread(self) -> int:
        if not self.has_read_flag:
            return 0
        response = self._table().select("id", count="exact").eq("is_read", False).execute()
        if response.count is not None:
            return response.count
        return len(response.data or [])
