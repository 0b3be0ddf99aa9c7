"""
Contact Service
Phone number -> display name resolution backed by the `contacts` table
"""
import logging
import re
from typing import Any, Dict, Optional

from chat_sync.utils.session_id import DEFAULT_CONTACT_NAME, fallback_contact_name
from chat_sync.utils.timestamps import now_iso

logger = logging.getLogger(__name__)

INVALID_NAMES = {"unknown", "contato anônimo", "contato anonimo"}
INVALID_NAME_FRAGMENTS = ("sistema", "bot")
# "Cliente" and "Cliente 1234" are generated fallbacks, never real names
GENERATED_NAME_PATTERN = re.compile(rf"^{DEFAULT_CONTACT_NAME.lower()}( \d+)?$")


def is_valid_contact_name(name: Optional[str]) -> bool:
    """Reject blank, placeholder and system/bot names"""
    if not name or not name.strip():
        return False
    lowered = name.strip().lower()
    if lowered in INVALID_NAMES or GENERATED_NAME_PATTERN.match(lowered):
        return False
    return not any(fragment in lowered for fragment in INVALID_NAME_FRAGMENTS)


class ContactService:
    """Reads and writes the `contacts` table"""

    TABLE = "contacts"

    def __init__(self, supabase):
        self.supabase = supabase

    async def get_by_phone(self, phone: str) -> Optional[Dict[str, Any]]:
        try:
            response = (
                self.supabase.table(self.TABLE)
                .select("phone, contact_name, updated_at")
                .eq("phone", phone)
                .limit(1)
                .execute()
            )
            rows = response.data or []
            return rows[0] if rows else None
        except Exception as e:
            logger.error(f"❌ Failed to fetch contact {phone}: {e}")
            return None

    async def save(self, phone: str, contact_name: str) -> bool:
        try:
            self.supabase.table(self.TABLE).upsert(
                {"phone": phone, "contact_name": contact_name, "updated_at": now_iso()},
                on_conflict="phone",
            ).execute()
            logger.info(f"💾 Contact saved: {phone} -> {contact_name}")
            return True
        except Exception as e:
            logger.error(f"❌ Failed to save contact {phone}: {e}")
            return False


class ContactNameResolver:
    """
    Resolve display names for phone numbers.

    Order: in-memory cache, saved contact, the name supplied by the message
    (saved when valid), then "Cliente <last 4 digits>".
    """

    def __init__(self, contact_service: ContactService):
        self.contact_service = contact_service
        self._cache: Dict[str, str] = {}
        self._pending: Dict[str, Optional[str]] = {}

    async def resolve(self, phone: str, provided_name: Optional[str] = None) -> str:
        if not phone:
            return fallback_contact_name(phone)

        cached = self._cache.get(phone)
        if cached:
            return cached

        contact = await self.contact_service.get_by_phone(phone)
        if contact and is_valid_contact_name(contact.get("contact_name")):
            name = contact["contact_name"].strip()
            self._cache[phone] = name
            self._pending.pop(phone, None)
            return name

        if is_valid_contact_name(provided_name):
            name = provided_name.strip()
            self._cache[phone] = name
            self._pending.pop(phone, None)
            await self.contact_service.save(phone, name)
            return name

        self._pending[phone] = provided_name
        return fallback_contact_name(phone)

    def resolve_cached(self, phone: str, provided_name: Optional[str] = None) -> str:
        """Resolution without database access (cache, provided name, fallback)"""
        cached = self._cache.get(phone)
        if cached:
            return cached
        if is_valid_contact_name(provided_name):
            return provided_name.strip()
        return fallback_contact_name(phone)

    async def force_resolve(self, phone: str, name: str) -> bool:
        """Set a name chosen by an agent, bypassing the validity rules"""
        if not phone or not name or not name.strip():
            return False
        self._cache[phone] = name.strip()
        self._pending.pop(phone, None)
        return await self.contact_service.save(phone, name.strip())

    def get_resolved_name(self, phone: str) -> Optional[str]:
        return self._cache.get(phone)

    async def process_pending(self) -> int:
        """Retry phones that fell back to "Cliente XXXX"; returns how many resolved"""
        resolved = 0
        for phone, provided_name in list(self._pending.items()):
            name = await self.resolve(phone, provided_name)
            if phone in self._cache:
                resolved += 1
                logger.debug(f"Resolved pending contact {phone} -> {name}")
        return resolved

    def stats(self) -> Dict[str, int]:
        return {"resolved": len(self._cache), "pending": len(self._pending)}

    def clear_cache(self) -> None:
        self._cache.clear()
        self._pending.clear()


# Singleton instance
_contact_name_resolver: Optional[ContactNameResolver] = None


def get_contact_name_resolver() -> ContactNameResolver:
    """Get or create the ContactNameResolver singleton"""
    global _contact_name_resolver

    if _contact_name_resolver is None:
        from chat_sync.services.supabase_client import get_supabase_client
        _contact_name_resolver = ContactNameResolver(ContactService(get_supabase_client()))

    return _contact_name_resolver
