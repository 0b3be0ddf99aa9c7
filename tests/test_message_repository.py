import pytest

from chat_sync.services.message_repository import MessageRepository


@pytest.fixture
def repository(supabase, make_row):
    supabase.tables["canarana_conversas"] = [
        make_row(1, "5577999990000-Ana", "oi", "2025-03-10T12:00:00+00:00"),
        make_row(2, "5577999990000-Ana", "tudo bem?", "2025-03-10T12:01:00+00:00"),
        make_row(3, "5577888881111-Bruno", "bom dia", "2025-03-10T12:02:00+00:00", is_read=True),
    ]
    return MessageRepository(supabase, "canarana_conversas")


def test_recent_rows_newest_first(repository):
    assert [r["id"] for r in repository.find_recent(2)] == [3, 2]


def test_session_history_oldest_first(repository):
    assert [r["id"] for r in repository.find_by_session("5577999990000-Ana")] == [1, 2]


def test_find_by_phone_matches_inside_session_id(repository):
    assert [r["id"] for r in repository.find_by_phone("88881111")] == [3]


def test_find_after_exclusive_and_inclusive(repository):
    assert [r["id"] for r in repository.find_after("2025-03-10T12:01:00+00:00")] == [3]
    assert [r["id"] for r in repository.find_after("2025-03-10T12:01:00+00:00", inclusive=True)] == [2, 3]
    assert [r["id"] for r in repository.find_after(None)] == [1, 2, 3]


def test_mark_as_read_only_touches_unread_rows(supabase, repository):
    assert repository.mark_as_read("5577999990000-Ana") == 2
    rows = supabase.tables["canarana_conversas"]
    assert all(r["is_read"] for r in rows)
    assert rows[0]["read_at"] == "2025-03-10T12:00:00+00:00"

    assert repository.mark_as_read("5577999990000-Ana") == 0


def test_count_unread(repository):
    assert repository.count_unread() == 2


def test_tables_without_read_flag(supabase):
    repository = MessageRepository(supabase, "yelena_ai_conversas", has_read_flag=False)
    stored = repository.insert({"session_id": "s-1", "message": "oi", "is_read": False})

    assert "is_read" not in stored
    assert repository.mark_as_read("s-1") == 0
    assert repository.count_unread() == 0
    assert "is_read" not in repository.columns


def test_insert_message_returns_stored_row(supabase, repository):
    stored = repository.insert_message("5577777772222-Caio", "Olá", contact_name="Caio")
    assert stored["id"] == 1001
    assert repository.find_by_id(1001)["nome_do_contato"] == "Caio"


def test_update_and_delete(repository):
    assert repository.update(1, {"message": "editada"})["message"] == "editada"
    assert repository.update(99, {"message": "x"}) is None
    assert repository.delete(1) is True
    assert repository.find_by_id(1) is None


def test_insert_failure_is_wrapped(supabase, repository):
    supabase.failing_tables.add("canarana_conversas")
    with pytest.raises(Exception, match="Message insert failed"):
        repository.insert({"session_id": "s", "message": "oi"})


def test_read_failures_propagate(supabase, repository):
    supabase.failing_tables.add("canarana_conversas")
    with pytest.raises(Exception):
        repository.find_recent()
