"""
Evolution Webhook Service
Stores WhatsApp messages delivered by Evolution API instances in their channel table
"""
import logging
from typing import Any, Dict, Optional, Tuple

from chat_sync.models.webhook import EvolutionWebhookPayload, WebhookResponse
from chat_sync.services.channel_registry import ChannelRegistry
from chat_sync.services.contact_service import ContactNameResolver, is_valid_contact_name
from chat_sync.services.conversation_grouper import default_contact_name
from chat_sync.services.message_repository import MessageRepository
from chat_sync.services.storage_service import MediaStorageService, MediaUploadError
from chat_sync.utils.media import (
    GENERIC_MEDIA_PLACEHOLDER,
    infer_mime_type,
    is_data_url,
    looks_like_raw_base64,
    placeholder_for_media_type,
    to_data_url,
)
from chat_sync.utils.message_parser import AGENT_SENDER_TYPE, CONTACT_SENDER_TYPE
from chat_sync.utils.session_id import extract_phone_from_session_id
from chat_sync.utils.timestamps import now_iso

logger = logging.getLogger(__name__)

MESSAGE_UPSERT_EVENTS = {"messages.upsert", "messages_upsert", "messagesupsert", "MESSAGES_UPSERT"}

# WhatsApp message node -> media type
MEDIA_MESSAGE_NODES = (
    ("imageMessage", "image"),
    ("audioMessage", "audio"),
    ("videoMessage", "video"),
    ("documentMessage", "document"),
    ("stickerMessage", "sticker"),
)

CAPTION_DEFAULTS = {
    "image": "[Imagem]",
    "audio": "[Áudio]",
    "video": "[Vídeo]",
    "document": "[Documento]",
    "sticker": "[Figurinha]",
}


def get_message_content(message: Dict[str, Any]) -> str:
    """Text of a WhatsApp message node, falling back to media captions"""
    if not message:
        return GENERIC_MEDIA_PLACEHOLDER
    text = message.get("conversation") or (message.get("extendedTextMessage") or {}).get("text")
    if text:
        return text
    for node, _ in MEDIA_MESSAGE_NODES:
        caption = (message.get(node) or {}).get("caption")
        if caption:
            return caption
    return GENERIC_MEDIA_PLACEHOLDER


def get_media_info(message: Dict[str, Any]) -> Tuple[str, Optional[str]]:
    """(message type, media url or inline payload) of a WhatsApp message node"""
    message = message or {}
    for node, media_type in MEDIA_MESSAGE_NODES:
        media = message.get(node)
        if media:
            # Evolution sends inline base64 in message.base64 when "webhook base64" is enabled
            return media_type, message.get("base64") or media.get("url")
    return "text", None


class EvolutionWebhookService:
    """Turns Evolution API events into channel table rows"""

    def __init__(
        self,
        supabase,
        registry: ChannelRegistry,
        storage: MediaStorageService,
        name_resolver: Optional[ContactNameResolver] = None,
        mirror_remote_media: bool = False,
    ):
        self.supabase = supabase
        self.registry = registry
        self.storage = storage
        self.name_resolver = name_resolver
        self.mirror_remote_media = mirror_remote_media

    async def store_media(self, media: str, media_type: str) -> Optional[str]:
        """
        Return a storage URL for a media reference.

        Data URLs and raw base64 are uploaded; http(s) URLs pass through
        unless mirroring is enabled. Upload failures fall back to None for
        inline payloads and to the original URL for remote ones.
        """
        if not media:
            return None

        try:
            if is_data_url(media):
                return self.storage.upload_base64(media).url
            if looks_like_raw_base64(media):
                return self.storage.upload_base64(to_data_url(media.strip(), infer_mime_type(media_type))).url
            if self.mirror_remote_media and media.startswith(("http://", "https://")):
                return (await self.storage.upload_from_url(media)).url
        except MediaUploadError as e:
            logger.error(f"❌ Media upload failed ({media_type}): {e}")
            return media if media.startswith(("http://", "https://")) else None

        return media

    async def process_event(self, payload: EvolutionWebhookPayload) -> WebhookResponse:
        """
        Handle one webhook delivery.

        Raises:
            ValueError: If event or instance is missing
        """
        if not payload.event or not payload.instance:
            raise ValueError("Both 'event' and 'instance' are required")

        table = await self.registry.resolve_instance_table(payload.instance)
        if not table:
            logger.warning(f"⚠️  No channel table for instance '{payload.instance}'")
            return WebhookResponse(success=False, message=f"No channel mapped for instance '{payload.instance}'")

        if payload.event not in MESSAGE_UPSERT_EVENTS:
            logger.info(f"📭 Event '{payload.event}' from {payload.instance} acknowledged, not processed")
            return WebhookResponse(success=True, message=f"Event '{payload.event}' acknowledged", table=table)

        row = await self.build_row(payload.data, table)
        if row is None:
            return WebhookResponse(success=True, message="Message without remoteJid ignored", table=table)

        repository = MessageRepository(self.supabase, table, self.registry.table_has_read_flag(table))
        stored = repository.insert(row)

        return WebhookResponse(
            success=True,
            message="Message stored",
            table=table,
            processed=True,
            record_id=stored.get("id"),
        )

    async def build_row(self, data: Dict[str, Any], table: str) -> Optional[Dict[str, Any]]:
        key = data.get("key") or {}
        session_id = key.get("remoteJid")
        if not session_id:
            return None

        message = data.get("message") or {}
        from_me = bool(key.get("fromMe"))
        phone = extract_phone_from_session_id(session_id)

        contact_name = data.get("pushName") if not from_me else None
        if not is_valid_contact_name(contact_name):
            contact_name = None
        if self.name_resolver is None:
            contact_name = contact_name or default_contact_name(phone, None, session_id)
        elif from_me:
            contact_name = self.name_resolver.resolve_cached(phone, None)
        else:
            contact_name = await self.name_resolver.resolve(phone, contact_name)

        content = get_message_content(message)
        message_type, media = get_media_info(message)

        row = {
            "session_id": session_id,
            "message": content,
            "read_at": now_iso(),
            "mensagemtype": message_type,
            "tipo_remetente": AGENT_SENDER_TYPE if from_me else CONTACT_SENDER_TYPE,
            "nome_do_contato": contact_name,
        }

        if media:
            media_url = await self.store_media(media, message_type)
            if media_url:
                row["media_base64"] = media_url
                if content == GENERIC_MEDIA_PLACEHOLDER or content == CAPTION_DEFAULTS.get(message_type):
                    row["message"] = CAPTION_DEFAULTS.get(message_type) or placeholder_for_media_type(message_type)

        if self.registry.table_has_read_flag(table):
            row["is_read"] = False

        return row


# Singleton instance
_webhook_service: Optional[EvolutionWebhookService] = None


def get_webhook_service() -> EvolutionWebhookService:
    """Get or create the EvolutionWebhookService singleton"""
    global _webhook_service

    if _webhook_service is None:
        from chat_sync.config import settings
        from chat_sync.services.channel_registry import get_channel_registry
        from chat_sync.services.contact_service import get_contact_name_resolver
        from chat_sync.services.storage_service import get_storage_service
        from chat_sync.services.supabase_client import get_supabase_client

        _webhook_service = EvolutionWebhookService(
            get_supabase_client(),
            get_channel_registry(),
            get_storage_service(),
            name_resolver=get_contact_name_resolver(),
            mirror_remote_media=settings.MIRROR_REMOTE_MEDIA,
        )

    return _webhook_service
