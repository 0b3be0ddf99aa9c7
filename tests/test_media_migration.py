import base64

import pytest

from chat_sync.services.media_migration_service import MediaMigrationService
from chat_sync.services.storage_service import MediaStorageService

PNG = "data:image/png;base64," + base64.b64encode(b"\x89PNG\r\n\x1a\n" + b"\x00" * 64).decode()
PDF = "data:application/pdf;base64," + base64.b64encode(b"%PDF-1.4\n" + b"0" * 64).decode()


@pytest.fixture
def migration(supabase, registry):
    def get_base64_messages(table_name, batch_size):
        rows = supabase.tables.get(table_name, [])
        return [dict(r) for r in rows if str(r.get("media_base64") or "").startswith("data:")][:batch_size]

    def update_media_url(table_name, record_id, media_url, placeholder_message):
        for row in supabase.tables[table_name]:
            if row["id"] == record_id:
                row["media_base64"] = media_url
                row["message"] = placeholder_message
        return None

    supabase.rpc_handlers["get_base64_messages"] = get_base64_messages
    supabase.rpc_handlers["update_media_url"] = update_media_url

    storage = MediaStorageService(client=supabase, bucket="media-files")
    return MediaMigrationService(
        supabase, storage, registry=registry, batch_size=2, upload_pause=0, batch_pause=0
    )


async def test_rows_are_rewritten_to_storage_urls(supabase, migration, make_row):
    supabase.tables["canarana_conversas"] = [
        make_row(1, "s-1", "imagem", "2025-03-10T12:00:00+00:00", media_base64=PNG),
        make_row(2, "s-1", "documento", "2025-03-10T12:01:00+00:00", media_base64=PDF),
        make_row(3, "s-2", "foto", "2025-03-10T12:02:00+00:00", media_base64=PNG),
    ]

    result = await migration.migrate_table("canarana_conversas")

    assert result.processed == 3
    assert result.errors == 0
    rows = supabase.tables["canarana_conversas"]
    assert all(r["media_base64"].startswith("https://test-project.supabase.co/storage/v1/object/public/media-files/media_") for r in rows)
    assert [r["message"] for r in rows] == ["[Imagem]", "[Documento PDF]", "[Imagem]"]
    assert len(supabase.storage.objects) == 3


async def test_rows_that_keep_failing_stop_the_loop(supabase, migration, make_row):
    supabase.tables["canarana_conversas"] = [
        make_row(1, "s-1", "ok", None, media_base64=PNG),
        make_row(2, "s-1", "quebrada", None, media_base64="data:image/png;base64,@@@@"),
    ]

    result = await migration.migrate_table("canarana_conversas")

    assert result.processed == 1
    assert result.errors == 1
    assert supabase.tables["canarana_conversas"][1]["message"] == "quebrada"


async def test_upload_failures_are_counted(supabase, migration, make_row):
    supabase.storage.fail_uploads = True
    supabase.tables["canarana_conversas"] = [make_row(1, "s-1", "ok", None, media_base64=PNG)]

    result = await migration.migrate_table("canarana_conversas")
    assert result.processed == 0
    assert result.errors == 1


async def test_fetch_failure_ends_table(supabase, migration):
    del supabase.rpc_handlers["get_base64_messages"]
    result = await migration.migrate_table("canarana_conversas")
    assert (result.processed, result.errors) == (0, 0)


async def test_migrate_all_reports_per_table(supabase, migration, make_row):
    supabase.tables["canarana_conversas"] = [make_row(1, "s-1", "a", None, media_base64=PNG)]
    supabase.tables["gerente_lojas_conversas"] = [make_row(2, "s-2", "b", None, media_base64=PDF)]

    report = await migration.migrate_all()

    assert report.success is True
    assert report.total_processed == 2
    assert report.table_results["canarana_conversas"].processed == 1
    assert report.table_results["gerente_lojas_conversas"].processed == 1
    assert set(report.table_results) == set(migration.registry.get_all_tables())
    assert report.message == "Migration finished: 2 media processed, 0 errors"


async def test_migrate_selected_tables_only(supabase, migration, make_row):
    supabase.tables["canarana_conversas"] = [make_row(1, "s-1", "a", None, media_base64=PNG)]
    report = await migration.migrate_all(["canarana_conversas"])
    assert list(report.table_results) == ["canarana_conversas"]
