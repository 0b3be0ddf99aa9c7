import os
import re
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

# Add project root to Python path
project_root = str(Path(__file__).parent.parent)
sys.path.append(project_root)

# Settings are read at import time
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-enough-length-0123456789")
os.environ.setdefault("WEBHOOK_SECRET_KEY", "test-webhook-secret")
os.environ.setdefault("MIGRATION_UPLOAD_PAUSE", "0")
os.environ.setdefault("MIGRATION_BATCH_PAUSE", "0")

import fakeredis

from chat_sync.services.channel_registry import ChannelRegistry


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    """Subset of the postgrest query builder backed by a list of dicts"""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self.op = "select"
        self.payload: Any = None
        self.order_by: Optional[tuple] = None
        self.limit_to: Optional[int] = None
        self.count_mode: Optional[str] = None

    # operations
    def select(self, *columns, count=None):
        self.op = "select"
        self.count_mode = count
        return self

    def insert(self, rows):
        self.op = "insert"
        self.payload = rows
        return self

    def upsert(self, row, on_conflict=None):
        self.op = "upsert"
        self.payload = (row, on_conflict)
        return self

    def update(self, changes):
        self.op = "update"
        self.payload = changes
        return self

    def delete(self):
        self.op = "delete"
        return self

    # filters
    def eq(self, column, value):
        self.filters.append(lambda r: r.get(column) == value)
        return self

    def neq(self, column, value):
        self.filters.append(lambda r: r.get(column) != value)
        return self

    def gt(self, column, value):
        self.filters.append(lambda r: r.get(column) is not None and r.get(column) > value)
        return self

    def gte(self, column, value):
        self.filters.append(lambda r: r.get(column) is not None and r.get(column) >= value)
        return self

    def lt(self, column, value):
        self.filters.append(lambda r: r.get(column) is not None and r.get(column) < value)
        return self

    def ilike(self, column, pattern):
        regex = re.compile("^" + ".*".join(re.escape(p) for p in pattern.split("%")) + "$", re.IGNORECASE)
        self.filters.append(lambda r: r.get(column) is not None and bool(regex.match(str(r.get(column)))))
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, count):
        self.limit_to = count
        return self

    def _matching(self) -> List[Dict[str, Any]]:
        rows = self.db.tables.setdefault(self.table_name, [])
        return [r for r in rows if all(f(r) for f in self.filters)]

    def execute(self):
        self.db.calls.append((self.table_name, self.op))
        if self.table_name in self.db.failing_tables:
            raise Exception(f"relation {self.table_name} unavailable")

        rows = self.db.tables.setdefault(self.table_name, [])

        if self.op == "insert":
            new_rows = self.payload if isinstance(self.payload, list) else [self.payload]
            stored = []
            for row in new_rows:
                row = dict(row)
                row.setdefault("id", self.db.next_id())
                rows.append(row)
                stored.append(row)
            return FakeResponse(stored)

        if self.op == "upsert":
            row, key = self.payload
            key = key or "id"
            for existing in rows:
                if existing.get(key) == row.get(key):
                    existing.update(row)
                    return FakeResponse([existing])
            rows.append(dict(row))
            return FakeResponse([row])

        matched = self._matching()

        if self.op == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResponse(matched)

        if self.op == "delete":
            for row in matched:
                rows.remove(row)
            return FakeResponse(matched)

        result = list(matched)
        if self.order_by:
            column, desc = self.order_by
            result.sort(key=lambda r: (r.get(column) is None, r.get(column) or ""), reverse=desc)
        total = len(result)
        if self.limit_to is not None:
            result = result[: self.limit_to]
        return FakeResponse([dict(r) for r in result], count=total if self.count_mode else None)


class FakeRpc:
    def __init__(self, db: "FakeSupabase", name: str, params: Dict[str, Any]):
        self.db = db
        self.name = name
        self.params = params

    def execute(self):
        self.db.rpc_calls.append((self.name, self.params))
        handler = self.db.rpc_handlers.get(self.name)
        if handler is None:
            raise Exception(f"function {self.name} does not exist")
        return FakeResponse(handler(**self.params))


class FakeBucket:
    def __init__(self, storage: "FakeStorage", name: str):
        self.storage = storage
        self.name = name

    def upload(self, path, file, file_options=None):
        if self.storage.fail_uploads:
            raise Exception("storage unavailable")
        self.storage.objects[(self.name, path)] = (file, file_options or {})
        return {"Key": f"{self.name}/{path}"}

    def get_public_url(self, path):
        return f"https://test-project.supabase.co/storage/v1/object/public/{self.name}/{path}"


class FakeStorage:
    def __init__(self):
        self.objects: Dict[tuple, tuple] = {}
        self.fail_uploads = False

    def from_(self, bucket):
        return FakeBucket(self, bucket)


class FakeSupabase:
    """In-memory stand-in for the sync Supabase client"""

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = tables or {}
        self.rpc_handlers: Dict[str, Callable[..., Any]] = {}
        self.rpc_calls: List[tuple] = []
        self.calls: List[tuple] = []
        self.failing_tables = set()
        self.storage = FakeStorage()
        self._id = 1000

    def next_id(self) -> int:
        self._id += 1
        return self._id

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params=None):
        return FakeRpc(self, name, params or {})


@pytest.fixture
def supabase():
    return FakeSupabase()


@pytest.fixture
def registry(supabase):
    return ChannelRegistry(supabase=supabase)


@pytest.fixture
async def redis_client():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


def _make_row(row_id, session_id, message, read_at, **extra):
    row = {
        "id": row_id,
        "session_id": session_id,
        "message": message,
        "read_at": read_at,
        "tipo_remetente": "CONTATO_EXTERNO",
        "nome_do_contato": None,
        "is_read": False,
    }
    row.update(extra)
    return row


@pytest.fixture
def make_row():
    return _make_row
