"""
Media Migration Service

Moves media stored inline as base64 data URLs in the channel tables into the
media bucket and rewrites each row to point at the stored object.

Database functions used:
    get_base64_messages(table_name, batch_size)   -> rows with media_base64
    update_media_url(table_name, record_id, media_url, placeholder_message)
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from chat_sync.config import settings
from chat_sync.models.media import MigrationReport, TableMigrationResult
from chat_sync.services.channel_registry import ChannelRegistry, get_channel_registry
from chat_sync.services.storage_service import MediaStorageService, MediaUploadError
from chat_sync.utils.media import is_data_url, placeholder_for_mime

logger = logging.getLogger(__name__)


class MediaMigrationService:
    """Batch base64 -> storage migration"""

    def __init__(
        self,
        supabase,
        storage: MediaStorageService,
        registry: Optional[ChannelRegistry] = None,
        batch_size: Optional[int] = None,
        upload_pause: Optional[float] = None,
        batch_pause: Optional[float] = None,
    ):
        self.supabase = supabase
        self.storage = storage
        self.registry = registry or get_channel_registry()
        self.batch_size = batch_size or settings.MIGRATION_BATCH_SIZE
        self.upload_pause = settings.MIGRATION_UPLOAD_PAUSE if upload_pause is None else upload_pause
        self.batch_pause = settings.MIGRATION_BATCH_PAUSE if batch_pause is None else batch_pause

    def _fetch_batch(self, table: str, batch_size: int) -> List[Dict[str, Any]]:
        response = self.supabase.rpc(
            "get_base64_messages",
            {"table_name": table, "batch_size": batch_size},
        ).execute()
        return response.data or []

    async def migrate_message(self, table: str, row: Dict[str, Any]) -> bool:
        """
        Upload one row's inline media and point the row at it.

        Returns:
            True if the row was migrated
        """
        media = row.get("media_base64") or ""
        upload = self.storage.upload_base64(media)

        self.supabase.rpc(
            "update_media_url",
            {
                "table_name": table,
                "record_id": row["id"],
                "media_url": upload.url,
                "placeholder_message": placeholder_for_mime(upload.mime_type),
            },
        ).execute()

        logger.info(f"✅ Migrated {table}#{row['id']} -> {upload.path}")
        return True

    async def migrate_table(self, table: str, batch_size: Optional[int] = None) -> TableMigrationResult:
        """
        Migrate every inline media row of a table.

        Stops when a batch is short or empty, when fetching fails, or when a
        batch only returns rows already attempted (rows that keep failing).
        """
        batch_size = batch_size or self.batch_size
        result = TableMigrationResult()
        attempted = set()

        logger.info(f"🚚 Migrating base64 media in {table}")

        while True:
            try:
                rows = self._fetch_batch(table, batch_size)
            except Exception as e:
                logger.error(f"❌ Failed to fetch base64 batch from {table}: {e}")
                break

            if not rows:
                break

            new_rows = [row for row in rows if row.get("id") not in attempted]
            if not new_rows:
                logger.warning(f"⚠️  {table}: only previously failed rows left, stopping")
                break

            for row in new_rows:
                attempted.add(row.get("id"))
                if not is_data_url(row.get("media_base64")):
                    continue

                try:
                    await self.migrate_message(table, row)
                    result.processed += 1
                except MediaUploadError as e:
                    logger.error(f"❌ {table}#{row.get('id')}: {e}")
                    result.errors += 1
                except Exception as e:
                    logger.error(f"❌ Failed to rewrite {table}#{row.get('id')}: {e}")
                    result.errors += 1

                if self.upload_pause:
                    await asyncio.sleep(self.upload_pause)

            if len(rows) < batch_size:
                break

            if self.batch_pause:
                await asyncio.sleep(self.batch_pause)

        logger.info(f"📊 {table}: processed={result.processed}, errors={result.errors}")
        return result

    async def migrate_all(self, tables: Optional[Iterable[str]] = None, batch_size: Optional[int] = None) -> MigrationReport:
        """Migrate every channel table (or the given ones) in sequence"""
        tables = list(tables) if tables else self.registry.get_all_tables()
        report = MigrationReport()

        for table in tables:
            table_result = await self.migrate_table(table, batch_size=batch_size)
            report.table_results[table] = table_result
            report.total_processed += table_result.processed
            report.total_errors += table_result.errors

        report.success = True
        report.message = (
            f"Migration finished: {report.total_processed} media processed, "
            f"{report.total_errors} errors"
        )
        logger.info(f"✅ {report.message}")
        return report


# Singleton instance
_media_migration_service: Optional[MediaMigrationService] = None


def get_media_migration_service() -> MediaMigrationService:
    """Get or create the MediaMigrationService singleton"""
    global _media_migration_service

    if _media_migration_service is None:
        from chat_sync.services.storage_service import get_storage_service
        from chat_sync.services.supabase_client import get_supabase_client

        _media_migration_service = MediaMigrationService(get_supabase_client(), get_storage_service())

    return _media_migration_service
