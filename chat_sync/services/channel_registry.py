"""
Channel Registry
Maps support channels to their per-channel message tables.

Each support queue (store location, AI agent, manager) keeps its messages in
its own table. Channels are addressed three ways:

- legacy ids used by the dashboard ("canarana", "gerente-lojas", ...)
- channel UUIDs from the `channels` table
- Evolution API instance names, linked to channels through
  `api_instances` and `channel_api_mappings`
"""
import logging
import re
from typing import Dict, List, Optional

from chat_sync.config import settings
from chat_sync.models.channel import ChannelInfo

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_ID = "chat"
DEFAULT_TABLE = "yelena_ai_conversas"

CHANNEL_TABLES: Dict[str, str] = {
    "chat": "yelena_ai_conversas",
    "canarana": "canarana_conversas",
    "souto-soares": "souto_soares_conversas",
    "joao-dourado": "joao_dourado_conversas",
    "america-dourada": "america_dourada_conversas",
    "gerente-lojas": "gerente_lojas_conversas",
    "gerente-externo": "gerente_externo_conversas",
}

CHANNEL_DISPLAY_NAMES: Dict[str, str] = {
    "chat": "Yelena-AI",
    "canarana": "Canarana",
    "souto-soares": "Souto Soares",
    "joao-dourado": "João Dourado",
    "america-dourada": "América Dourada",
    "gerente-lojas": "Gustavo",
    "gerente-externo": "Andressa",
}

# Names of the channels as stored in the `channels` table
CHANNEL_CANONICAL_NAMES: Dict[str, str] = {
    "chat": "Yelena-AI",
    "canarana": "Canarana",
    "souto-soares": "Souto Soares",
    "joao-dourado": "João Dourado",
    "america-dourada": "América Dourada",
    "gerente-lojas": "Gerente das Lojas",
    "gerente-externo": "Andressa Gerente Externo",
}

# Production channel UUIDs, seeded so lookups work before `channels` is read
KNOWN_CHANNEL_UUIDS: Dict[str, str] = {
    "af1e5797-edc6-4ba3-a57a-25cf7297c4d6": "chat",
    "011b69ba-cf25-4f63-af2e-4ad0260d9516": "canarana",
    "b7996f75-41a7-4725-8229-564f31868027": "souto-soares",
    "621abb21-60b2-4ff2-a0a6-172a94b4b65c": "joao-dourado",
    "64d8acad-c645-4544-a1e6-2f0825fae00b": "america-dourada",
    "d8087e7b-5b06-4e26-aa05-6fc51fd4cdce": "gerente-lojas",
    "d2892900-ca8f-4b08-a73f-6b7aa5866ff7": "gerente-externo",
}

# Evolution instance names -> table (matched exactly, then partially)
INSTANCE_TABLES: Dict[str, str] = {
    "yelena": "yelena_ai_conversas",
    "yelena-ai": "yelena_ai_conversas",
    "chat": "yelena_ai_conversas",
    "canarana": "canarana_conversas",
    "souto-soares": "souto_soares_conversas",
    "joao-dourado": "joao_dourado_conversas",
    "america-dourada": "america_dourada_conversas",
    "gerente-lojas": "gerente_lojas_conversas",
    "gerente-externo": "gerente_externo_conversas",
}

# The AI agent table predates the is_read column
TABLES_WITHOUT_READ_FLAG = {"yelena_ai_conversas"}

UUID_PATTERN = re.compile(r"^[0-9a-fA-F-]{36}$")


class ChannelNotFoundError(Exception):
    """Raised when a channel id cannot be mapped to a table"""
    pass


def is_uuid(value: Optional[str]) -> bool:
    return bool(value) and bool(UUID_PATTERN.match(value))


class ChannelRegistry:
    """Static and database-backed channel lookups"""

    def __init__(
        self,
        supabase=None,
        channel_tables: Optional[Dict[str, str]] = None,
        display_names: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Channel Registry

        Args:
            supabase: Supabase client, only needed for dynamic lookups
            channel_tables: Override of the legacy id -> table map
            display_names: Override of the legacy id -> display name map
        """
        self._supabase = supabase
        self.channel_tables = dict(channel_tables or CHANNEL_TABLES)
        self.display_names = dict(display_names or CHANNEL_DISPLAY_NAMES)

        self._uuid_to_channel: Dict[str, str] = dict(KNOWN_CHANNEL_UUIDS)
        self._channel_to_uuid: Dict[str, str] = {v: k for k, v in KNOWN_CHANNEL_UUIDS.items()}
        self._channels_loaded = False
        self._instance_cache: Dict[str, Optional[str]] = {}

    @property
    def supabase(self):
        if self._supabase is None:
            from chat_sync.services.supabase_client import get_supabase_client
            self._supabase = get_supabase_client()
        return self._supabase

    # ============================================
    # STATIC LOOKUPS
    # ============================================

    def get_table_name(self, channel_id: str, strict: bool = False) -> str:
        """
        Resolve the message table of a channel.

        Accepts legacy ids and known channel UUIDs. Unknown ids fall back to
        the AI channel table unless strict is set.

        Raises:
            ChannelNotFoundError: If strict and the channel is unknown
        """
        channel_id = (channel_id or "").strip()
        legacy_id = self._uuid_to_channel.get(channel_id.lower(), channel_id)

        table = self.channel_tables.get(legacy_id)
        if table:
            return table

        if strict:
            raise ChannelNotFoundError(f"Unknown channel: {channel_id}")

        logger.warning(f"⚠️  Unknown channel '{channel_id}', falling back to {DEFAULT_TABLE}")
        return DEFAULT_TABLE

    def get_display_name(self, channel_id: str) -> str:
        legacy_id = self._uuid_to_channel.get((channel_id or "").lower(), channel_id)
        return self.display_names.get(legacy_id, channel_id)

    def is_valid_channel(self, channel_id: str) -> bool:
        legacy_id = self._uuid_to_channel.get((channel_id or "").lower(), channel_id)
        return legacy_id in self.channel_tables

    def get_all_tables(self) -> List[str]:
        tables: List[str] = []
        for table in self.channel_tables.values():
            if table not in tables:
                tables.append(table)
        return tables

    def channel_for_table(self, table_name: str) -> Optional[str]:
        for channel_id, table in self.channel_tables.items():
            if table == table_name:
                return channel_id
        return None

    def table_has_read_flag(self, table_name: str) -> bool:
        return table_name not in TABLES_WITHOUT_READ_FLAG

    def list_channels(self) -> List[ChannelInfo]:
        return [
            ChannelInfo(
                id=channel_id,
                display_name=self.display_names.get(channel_id, channel_id),
                table_name=table,
                has_read_flag=self.table_has_read_flag(table),
            )
            for channel_id, table in self.channel_tables.items()
        ]

    def table_for_instance(self, instance_name: str, default: Optional[str] = DEFAULT_TABLE) -> Optional[str]:
        """
        Map an Evolution instance name to a table without touching the database.

        Exact match first, then partial containment in either direction,
        then `default` (the AI channel table unless overridden).
        """
        normalized = (instance_name or "").lower().strip()
        if not normalized:
            return default

        if normalized in INSTANCE_TABLES:
            return INSTANCE_TABLES[normalized]

        for key, table in INSTANCE_TABLES.items():
            if key in normalized or normalized in key:
                logger.info(f"🔎 Instance '{instance_name}' partially matched '{key}' -> {table}")
                return table

        logger.warning(f"⚠️  No table mapped for instance '{instance_name}', using {default}")
        return default

    # ============================================
    # DYNAMIC LOOKUPS
    # ============================================

    async def load_channels(self, force: bool = False) -> Dict[str, str]:
        """
        Read the `channels` table and index UUIDs by legacy id.

        Returns:
            legacy id -> channel UUID
        """
        if self._channels_loaded and not force:
            return dict(self._channel_to_uuid)

        name_to_channel = {name.lower(): channel_id for channel_id, name in CHANNEL_CANONICAL_NAMES.items()}

        try:
            response = self.supabase.table("channels").select("id, name").execute()
        except Exception as e:
            logger.error(f"❌ Failed to load channels: {e}")
            return dict(self._channel_to_uuid)

        for row in response.data or []:
            channel_uuid = str(row.get("id", "")).lower()
            legacy_id = name_to_channel.get((row.get("name") or "").strip().lower())
            if channel_uuid and legacy_id:
                self._uuid_to_channel[channel_uuid] = legacy_id
                self._channel_to_uuid[legacy_id] = channel_uuid

        self._channels_loaded = True
        logger.info(f"✅ Loaded {len(self._channel_to_uuid)} channel UUIDs")
        return dict(self._channel_to_uuid)

    async def get_channel_uuid(self, channel_id: str) -> Optional[str]:
        """
        Resolve a legacy channel id to its UUID.

        UUID-shaped input is returned unchanged.
        """
        if is_uuid(channel_id):
            return channel_id

        cached = self._channel_to_uuid.get(channel_id)
        if cached:
            return cached

        await self.load_channels()
        resolved = self._channel_to_uuid.get(channel_id)
        if not resolved:
            logger.warning(f"⚠️  No channel UUID found for '{channel_id}'")
        return resolved

    async def channel_id_for_uuid(self, channel_uuid: str) -> Optional[str]:
        key = (channel_uuid or "").lower()
        if key not in self._uuid_to_channel:
            await self.load_channels()
        return self._uuid_to_channel.get(key)

    async def resolve_instance_table(self, instance_name: str) -> Optional[str]:
        """
        Resolve the table of an Evolution instance through the database.

        api_instances (instance_name, case-insensitive) -> channel_api_mappings
        -> channel UUID -> table. When the instance is not linked to a known
        channel the static instance map is used instead; None when neither
        knows the instance.
        """
        if not instance_name:
            return None

        key = instance_name.lower().strip()
        if key in self._instance_cache:
            return self._instance_cache[key]

        table = None
        try:
            instance_response = (
                self.supabase.table("api_instances")
                .select("id, instance_name")
                .ilike("instance_name", instance_name)
                .limit(1)
                .execute()
            )
            instances = instance_response.data or []

            if instances:
                mapping_response = (
                    self.supabase.table("channel_api_mappings")
                    .select("channel_id")
                    .eq("api_instance_id", instances[0]["id"])
                    .limit(1)
                    .execute()
                )
                mappings = mapping_response.data or []
                if mappings:
                    legacy_id = await self.channel_id_for_uuid(str(mappings[0]["channel_id"]))
                    if legacy_id:
                        table = self.channel_tables.get(legacy_id)
                    else:
                        logger.warning(f"⚠️  Channel {mappings[0]['channel_id']} has no known table")
                else:
                    logger.warning(f"⚠️  No channel mapping for instance '{instance_name}'")
            else:
                logger.warning(f"⚠️  No api_instance found for '{instance_name}'")

        except Exception as e:
            logger.error(f"❌ Dynamic table lookup failed for instance '{instance_name}': {e}")

        if not table:
            table = self.table_for_instance(instance_name, default=None)

        if table:
            self._instance_cache[key] = table
        return table

    def invalidate_cache(self) -> None:
        self._instance_cache.clear()
        self._channels_loaded = False


# Singleton instance
_channel_registry: Optional[ChannelRegistry] = None


def get_channel_registry() -> ChannelRegistry:
    """Get or create the ChannelRegistry singleton (with CHANNEL_TABLE_OVERRIDES applied)"""
    global _channel_registry

    if _channel_registry is None:
        tables = {**CHANNEL_TABLES, **settings.CHANNEL_TABLE_OVERRIDES}
        _channel_registry = ChannelRegistry(channel_tables=tables)

    return _channel_registry
