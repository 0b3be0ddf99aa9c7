import asyncio
from datetime import timedelta

import pytest

from chat_sync.models.conversation import ConversationStatus
from chat_sync.services.status_store import StatusStore
from chat_sync.utils.timestamps import utc_now


@pytest.fixture
def marked():
    return []


@pytest.fixture
def store(redis_client, marked):
    def mark_read(channel_id, conversation_id):
        marked.append((channel_id, conversation_id))
        return 1

    return StatusStore(
        redis_client,
        mark_read=mark_read,
        key_prefix="test_status",
        auto_resolve_after=timedelta(hours=24),
    )


async def test_missing_record_is_unread(store):
    record = await store.get("canarana", "5577999990000-Ana")
    assert record.status == ConversationStatus.UNREAD
    assert record.last_activity is None


async def test_taking_a_conversation_marks_it_read(store, marked):
    record = await store.update_status("canarana", "5577999990000-Ana", ConversationStatus.IN_PROGRESS)

    assert record.status == ConversationStatus.IN_PROGRESS
    assert marked == [("canarana", "5577999990000-Ana")]
    stored = await store.get("canarana", "5577999990000-Ana")
    assert stored.status == ConversationStatus.IN_PROGRESS
    assert stored.last_activity is not None


async def test_setting_unread_does_not_mark_read(store, marked):
    await store.update_status("canarana", "s1", ConversationStatus.UNREAD)
    assert marked == []


async def test_status_saved_when_mark_read_fails(redis_client):
    def broken(channel_id, conversation_id):
        raise RuntimeError("database offline")

    store = StatusStore(redis_client, mark_read=broken, key_prefix="test_status")
    await store.update_status("canarana", "s1", "resolved")
    assert (await store.get("canarana", "s1")).status == ConversationStatus.RESOLVED


async def test_empty_ids_rejected(store):
    with pytest.raises(ValueError):
        await store.update_status("", "s1", ConversationStatus.RESOLVED)
    with pytest.raises(ValueError):
        await store.update_status("canarana", "", ConversationStatus.RESOLVED)


async def test_new_message_reopens_conversation(store):
    await store.update_status("canarana", "s1", ConversationStatus.RESOLVED)

    assert await store.handle_new_message("canarana", "s1") is True
    record = await store.get("canarana", "s1")
    assert record.status == ConversationStatus.UNREAD
    assert record.last_message_time is not None

    assert await store.handle_new_message("canarana", "s1") is False


async def test_mark_viewed_sets_last_viewed(store):
    record = await store.mark_viewed("canarana", "s1")
    assert record.last_viewed is not None
    assert record.status == ConversationStatus.UNREAD


async def test_get_many_omits_missing(store):
    await store.update_status("canarana", "s1", ConversationStatus.RESOLVED)
    records = await store.get_many("canarana", ["s1", "s2"])
    assert list(records) == ["s1"]
    assert await store.get_many("canarana", []) == {}


async def test_unreadable_record_treated_as_missing(store, redis_client):
    await redis_client.set("test_status:canarana:s1", "{not json")
    assert (await store.get("canarana", "s1")).status == ConversationStatus.UNREAD


async def test_counts_per_channel_and_overall(store):
    await store.update_status("canarana", "s1", ConversationStatus.IN_PROGRESS)
    await store.update_status("canarana", "s2", ConversationStatus.RESOLVED)
    await store.handle_new_message("canarana", "s3")
    await store.update_status("chat", "s4", ConversationStatus.RESOLVED)

    canarana = await store.counts("canarana")
    assert canarana.as_dict() == {"unread": 1, "in_progress": 1, "resolved": 1, "total": 3}

    overall = await store.counts()
    assert overall.resolved == 2
    assert overall.total == 4


async def test_conversations_with_status_keeps_colons(store):
    await store.update_status("canarana", "5577999990000@s.whatsapp.net:1", ConversationStatus.IN_PROGRESS)
    matches = await store.conversations_with_status(ConversationStatus.IN_PROGRESS)
    assert matches == [("canarana", "5577999990000@s.whatsapp.net:1")]


async def test_idle_in_progress_conversations_auto_resolve(store):
    await store.update_status("canarana", "idle", ConversationStatus.IN_PROGRESS)
    await store.handle_new_message("canarana", "waiting")

    assert await store.auto_resolve_stale(now=utc_now() + timedelta(hours=1)) == 0

    later = utc_now() + timedelta(hours=25)
    assert await store.auto_resolve_stale(now=later) == 1

    idle = await store.get("canarana", "idle")
    assert idle.status == ConversationStatus.RESOLVED
    assert idle.auto_resolved_at == later
    assert (await store.get("canarana", "waiting")).status == ConversationStatus.UNREAD


async def test_reopening_clears_auto_resolution(store):
    await store.update_status("canarana", "s1", ConversationStatus.IN_PROGRESS)
    await store.auto_resolve_stale(now=utc_now() + timedelta(hours=25))

    await store.handle_new_message("canarana", "s1")
    assert (await store.get("canarana", "s1")).auto_resolved_at is None


async def test_sweep_reports_resolved_conversations(redis_client):
    notified = []

    async def on_auto_resolve(resolved):
        notified.append(resolved)

    store = StatusStore(
        redis_client,
        key_prefix="test_status",
        auto_resolve_after=timedelta(hours=24),
        on_auto_resolve=on_auto_resolve,
    )
    await store.update_status("canarana", "5577999990000-Ana", ConversationStatus.IN_PROGRESS)

    assert await store.auto_resolve_stale(now=utc_now() + timedelta(hours=1)) == 0
    assert notified == []

    assert await store.auto_resolve_stale(now=utc_now() + timedelta(hours=25)) == 1
    assert notified == [[("canarana", "5577999990000-Ana")]]


async def test_failing_sweep_notification_keeps_resolution(redis_client):
    def on_auto_resolve(resolved):
        raise RuntimeError("broadcast down")

    store = StatusStore(redis_client, key_prefix="test_status", on_auto_resolve=on_auto_resolve)
    await store.update_status("canarana", "s1", ConversationStatus.IN_PROGRESS)

    assert await store.auto_resolve_stale(now=utc_now() + timedelta(days=30)) == 1
    assert (await store.get("canarana", "s1")).status == ConversationStatus.RESOLVED


async def make_idle(store, redis_client, conversation_id):
    record = await store.update_status("canarana", conversation_id, ConversationStatus.IN_PROGRESS)
    record.last_activity = utc_now() - timedelta(hours=30)
    await redis_client.set(f"test_status:canarana:{conversation_id}", record.model_dump_json())


async def run_first_sweep(store):
    task = asyncio.create_task(store.run_auto_resolve_loop(interval=3600))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


async def test_sweep_loop_resolves_idle_conversations(store, redis_client):
    await make_idle(store, redis_client, "idle")

    await run_first_sweep(store)

    record = await store.get("canarana", "idle")
    assert record.status == ConversationStatus.RESOLVED
    assert record.auto_resolved_at is not None
    assert await redis_client.get("lock:conversation_status:auto_resolve") is None


async def test_sweep_loop_skips_while_another_worker_holds_lock(store, redis_client):
    await make_idle(store, redis_client, "idle")
    await redis_client.set("lock:conversation_status:auto_resolve", "other-worker")

    await run_first_sweep(store)

    assert (await store.get("canarana", "idle")).status == ConversationStatus.IN_PROGRESS
    assert await redis_client.get("lock:conversation_status:auto_resolve") == "other-worker"
