import pytest

from chat_sync.services.channel_registry import (
    DEFAULT_TABLE,
    ChannelNotFoundError,
    ChannelRegistry,
    is_uuid,
)

CANARANA_UUID = "011b69ba-cf25-4f63-af2e-4ad0260d9516"


def test_legacy_ids_map_to_tables(registry):
    assert registry.get_table_name("canarana") == "canarana_conversas"
    assert registry.get_table_name("gerente-externo") == "gerente_externo_conversas"
    assert registry.get_table_name("chat") == "yelena_ai_conversas"


def test_known_uuid_maps_to_table(registry):
    assert registry.get_table_name(CANARANA_UUID) == "canarana_conversas"
    assert registry.get_table_name(CANARANA_UUID.upper()) == "canarana_conversas"


def test_unknown_channel_falls_back_unless_strict(registry):
    assert registry.get_table_name("nowhere") == DEFAULT_TABLE
    with pytest.raises(ChannelNotFoundError):
        registry.get_table_name("nowhere", strict=True)


def test_channel_listing(registry):
    channels = {c.id: c for c in registry.list_channels()}
    assert channels["gerente-lojas"].display_name == "Gustavo"
    assert channels["chat"].has_read_flag is False
    assert channels["canarana"].has_read_flag is True
    assert registry.is_valid_channel(CANARANA_UUID)
    assert not registry.is_valid_channel("nowhere")


def test_all_tables_are_unique():
    registry = ChannelRegistry(channel_tables={"a": "t1", "b": "t1", "c": "t2"})
    assert registry.get_all_tables() == ["t1", "t2"]
    assert registry.channel_for_table("t2") == "c"
    assert registry.channel_for_table("t3") is None


def test_is_uuid():
    assert is_uuid(CANARANA_UUID)
    assert not is_uuid("canarana")
    assert not is_uuid(None)


def test_instance_names_match_exactly_then_partially(registry):
    assert registry.table_for_instance("Canarana") == "canarana_conversas"
    assert registry.table_for_instance("evolution-joao-dourado-01") == "joao_dourado_conversas"
    assert registry.table_for_instance("zzz") == DEFAULT_TABLE
    assert registry.table_for_instance("zzz", default=None) is None


async def test_channel_uuid_lookup_reads_channels_table(supabase, registry):
    supabase.tables["channels"] = [
        {"id": "11111111-2222-3333-4444-555555555555", "name": "Souto Soares"},
    ]
    registry._channel_to_uuid.pop("souto-soares")

    assert await registry.get_channel_uuid("souto-soares") == "11111111-2222-3333-4444-555555555555"
    assert await registry.get_channel_uuid(CANARANA_UUID) == CANARANA_UUID
    assert await registry.channel_id_for_uuid("11111111-2222-3333-4444-555555555555") == "souto-soares"


async def test_instance_resolved_through_mappings(supabase, registry):
    supabase.tables["api_instances"] = [{"id": "inst-1", "instance_name": "Loja Centro"}]
    supabase.tables["channel_api_mappings"] = [{"api_instance_id": "inst-1", "channel_id": CANARANA_UUID}]

    assert await registry.resolve_instance_table("loja centro") == "canarana_conversas"

    # cached: no further database reads
    calls = len(supabase.calls)
    assert await registry.resolve_instance_table("LOJA CENTRO") == "canarana_conversas"
    assert len(supabase.calls) == calls


async def test_unmapped_instance_uses_static_map(supabase, registry):
    assert await registry.resolve_instance_table("gerente-lojas") == "gerente_lojas_conversas"


async def test_unknown_instance_resolves_to_none(supabase, registry):
    supabase.failing_tables.add("api_instances")
    assert await registry.resolve_instance_table("mystery") is None
    assert "mystery" not in registry._instance_cache
