import fnmatch

import pytest
from fastapi.testclient import TestClient

from chat_sync.auth.dependencies import get_current_user
from chat_sync.config import settings
from chat_sync.models.conversation import ConversationStatus
from chat_sync.models.user import User
from chat_sync.services.channel_registry import get_channel_registry
from chat_sync.services.contact_service import ContactNameResolver, ContactService
from chat_sync.services.conversation_service import ConversationService, get_conversation_service
from chat_sync.services.media_migration_service import MediaMigrationService, get_media_migration_service
from chat_sync.services.message_repository import MessageRepository
from chat_sync.services.status_store import StatusStore, get_status_store
from chat_sync.services.storage_service import MediaStorageService
from chat_sync.services.webhook_service import EvolutionWebhookService, get_webhook_service
from chat_sync.services.websocket_service import ConnectionManager, get_connection_manager
from main import app


class MemoryRedis:
    """The handful of redis.asyncio calls StatusStore makes"""

    def __init__(self):
        self.data = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        self.data[key] = value

    async def mget(self, keys):
        return [self.data.get(k) for k in keys]

    async def delete(self, key):
        self.data.pop(key, None)

    async def scan_iter(self, match="*", count=None):
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, match):
                yield key


@pytest.fixture
def client(supabase, registry, make_row):
    supabase.tables["canarana_conversas"] = [
        make_row(1, "5577999990000-Ana", "oi", "2025-03-10T12:00:00+00:00", nome_do_contato="Ana"),
        make_row(2, "5577999990000-Ana", "Olá Ana!", "2025-03-10T12:01:00+00:00", tipo_remetente="USUARIO_INTERNO"),
        make_row(3, "5577888881111-Bruno", "bom dia", "2025-03-10T12:02:00+00:00"),
    ]

    def mark_read(channel_id, conversation_id):
        table = registry.get_table_name(channel_id)
        return MessageRepository(supabase, table, registry.table_has_read_flag(table)).mark_as_read(conversation_id)

    store = StatusStore(MemoryRedis(), mark_read=mark_read, key_prefix="test_status")
    conversations = ConversationService(supabase, registry=registry, status_store=store)
    storage = MediaStorageService(client=supabase, bucket="media-files")
    resolver = ContactNameResolver(ContactService(supabase))

    app.dependency_overrides[get_current_user] = lambda: User(user_id="agent-1", email="atendente@example.com")
    app.dependency_overrides[get_channel_registry] = lambda: registry
    app.dependency_overrides[get_status_store] = lambda: store
    app.dependency_overrides[get_conversation_service] = lambda: conversations
    app.dependency_overrides[get_connection_manager] = lambda: ConnectionManager()
    app.dependency_overrides[get_media_migration_service] = lambda: MediaMigrationService(
        supabase, storage, registry=registry, upload_pause=0, batch_pause=0
    )
    app.dependency_overrides[get_webhook_service] = lambda: EvolutionWebhookService(
        supabase, registry, storage, name_resolver=resolver
    )

    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_requires_bearer_token(client):
    del app.dependency_overrides[get_current_user]
    response = client.get("/channels")
    assert response.status_code == 401


def test_invalid_bearer_token_rejected(client):
    del app.dependency_overrides[get_current_user]
    response = client.get("/channels", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_list_channels(client):
    response = client.get("/channels")
    assert response.status_code == 200
    ids = [c["id"] for c in response.json()]
    assert "canarana" in ids and "gerente-externo" in ids


def test_unknown_channel_is_404(client):
    assert client.get("/channels/nowhere/conversations").status_code == 404


def test_list_conversations(client):
    response = client.get("/channels/canarana/conversations", params={"limit": 10})
    assert response.status_code == 200
    body = response.json()
    assert [c["id"] for c in body] == ["5577888881111-Bruno", "5577999990000-Ana"]
    assert body[1]["status"] == "unread"


def test_grouped_messages(client):
    response = client.get(
        "/channels/canarana/conversations/5577999990000-Ana/messages",
        params={"grouped": True},
    )
    assert response.status_code == 200
    groups = response.json()
    assert [g["sender"] for g in groups] == ["contact", "agent"]


def test_taking_a_conversation_marks_it_read(client, supabase):
    response = client.put(
        "/channels/canarana/conversations/5577999990000-Ana/status",
        json={"status": "in_progress"},
    )
    assert response.status_code == 200
    assert response.json()["record"]["status"] == "in_progress"

    ana_rows = [r for r in supabase.tables["canarana_conversas"] if r["session_id"] == "5577999990000-Ana"]
    assert all(r["is_read"] for r in ana_rows)

    status = client.get("/channels/canarana/conversations/5577999990000-Ana/status").json()
    assert status["record"]["status"] == ConversationStatus.IN_PROGRESS.value

    counts = client.get("/status/counts", params={"channel_id": "canarana"}).json()
    assert counts["in_progress"] == 1


def test_invalid_status_rejected(client):
    response = client.put(
        "/channels/canarana/conversations/5577999990000-Ana/status",
        json={"status": "archived"},
    )
    assert response.status_code == 422


def test_mark_read_endpoint(client):
    response = client.post("/channels/canarana/conversations/5577888881111-Bruno/read")
    assert response.status_code == 200
    assert response.json() == {"success": True, "updated": 1}


def test_channel_stats(client):
    body = client.get("/channels/canarana/stats").json()
    assert body["display_name"] == "Canarana"
    assert body["counts"]["total_conversations"] == 2


def test_manual_auto_resolve(client):
    response = client.post("/status/auto-resolve")
    assert response.status_code == 200
    assert response.json() == {"success": True, "resolved": 0}


def test_webhook_requires_api_key(client):
    response = client.post("/webhook/evolution", json={"event": "messages.upsert", "instance": "canarana"})
    assert response.status_code == 401

    response = client.post(
        "/webhook/evolution",
        json={"event": "messages.upsert", "instance": "canarana"},
        headers={"X-API-Key": "wrong"},
    )
    assert response.status_code == 401


def test_webhook_without_configured_secret_is_500(client, monkeypatch):
    monkeypatch.setattr(settings, "WEBHOOK_SECRET_KEY", "")

    response = client.post(
        "/webhook/evolution",
        json={"event": "messages.upsert", "instance": "canarana"},
        headers={"X-API-Key": "test-webhook-secret"},
    )
    assert response.status_code == 500


def test_webhook_stores_message(client, supabase):
    payload = {
        "event": "messages.upsert",
        "instance": "canarana",
        "data": {
            "key": {"remoteJid": "5577777772222@s.whatsapp.net", "fromMe": False},
            "pushName": "Carla",
            "message": {"conversation": "Vocês abrem sábado?"},
        },
    }
    response = client.post(
        "/webhook/evolution",
        json=payload,
        headers={"X-API-Key": settings.WEBHOOK_SECRET_KEY},
    )
    assert response.status_code == 200
    assert response.json()["processed"] is True
    assert supabase.tables["canarana_conversas"][-1]["message"] == "Vocês abrem sábado?"


def test_webhook_missing_instance_is_400(client):
    response = client.post(
        "/webhook/evolution",
        json={"event": "messages.upsert"},
        headers={"X-API-Key": settings.WEBHOOK_SECRET_KEY},
    )
    assert response.status_code == 400


def test_media_migration_endpoint(client):
    response = client.post("/media/migrate")
    assert response.status_code == 200
    assert response.json()["total_processed"] == 0

    response = client.post("/media/migrate", json={"tables": ["not_a_table"]})
    assert response.status_code == 400


def test_websocket_without_token_is_closed(client):
    from fastapi import WebSocketDisconnect

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/channels/canarana"):
            pass
    assert exc_info.value.code == 1008
