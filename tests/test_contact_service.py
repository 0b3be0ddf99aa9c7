import pytest

from chat_sync.services.contact_service import ContactNameResolver, ContactService, is_valid_contact_name


@pytest.fixture
def resolver(supabase):
    return ContactNameResolver(ContactService(supabase))


def test_contact_name_validity():
    assert is_valid_contact_name("Maria")
    assert not is_valid_contact_name("  ")
    assert not is_valid_contact_name("Unknown")
    assert not is_valid_contact_name("Sistema Yelena")
    assert not is_valid_contact_name("chatbot")
    assert not is_valid_contact_name("Cliente")
    assert not is_valid_contact_name("cliente 1234")
    assert is_valid_contact_name("Clientela Souza")


async def test_saved_contact_wins(supabase, resolver):
    supabase.tables["contacts"] = [{"phone": "5577999991234", "contact_name": "Maria Souza"}]

    assert await resolver.resolve("5577999991234", "Maria") == "Maria Souza"
    assert resolver.get_resolved_name("5577999991234") == "Maria Souza"


async def test_provided_name_is_saved(supabase, resolver):
    assert await resolver.resolve("5577999991234", "Joana") == "Joana"
    assert supabase.tables["contacts"][0]["contact_name"] == "Joana"


async def test_fallback_then_pending_resolution(supabase, resolver):
    assert await resolver.resolve("5577999991234", "bot") == "Cliente 1234"
    assert resolver.stats() == {"resolved": 0, "pending": 1}

    supabase.tables["contacts"] = [{"phone": "5577999991234", "contact_name": "Carlos"}]
    assert await resolver.process_pending() == 1
    assert resolver.stats() == {"resolved": 1, "pending": 0}


async def test_generated_fallback_name_is_never_saved(supabase, resolver):
    assert await resolver.resolve("5577999991234", "Cliente") == "Cliente 1234"
    assert supabase.tables.get("contacts", []) == []

    assert await resolver.resolve("5577999991234", "Maria") == "Maria"
    assert supabase.tables["contacts"][0]["contact_name"] == "Maria"


async def test_force_resolve_bypasses_validation(supabase, resolver):
    assert await resolver.force_resolve("5577999991234", "Bot da Loja")
    assert resolver.resolve_cached("5577999991234") == "Bot da Loja"


async def test_lookup_errors_fall_back(supabase, resolver):
    supabase.failing_tables.add("contacts")
    assert await resolver.resolve("5577999991234", None) == "Cliente 1234"


def test_resolve_cached_never_hits_database(supabase, resolver):
    assert resolver.resolve_cached("5577999991234", "Ana") == "Ana"
    assert resolver.resolve_cached("5577999991234", None) == "Cliente 1234"
    assert supabase.calls == []
