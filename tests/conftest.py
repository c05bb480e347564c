import asyncio
import itertools
from types import SimpleNamespace

import pytest
from postgrest.exceptions import APIError

from coachhub.services.branding import BrandingController
from coachhub.services.cache import QueryCache


TENANT_ONE = {
    "id": "tenant-1",
    "subdomain": "coach1",
    "custom_domain": "coachone.fit",
    "business_name": "Coach One",
    "primary_color": "#FF0000",
    "secondary_color": "#111111",
    "logo_url": "https://cdn.example.com/coach1.png",
    "terminology": {"client": "athlete"},
}
TENANT_TWO = {
    "id": "tenant-2",
    "subdomain": "coach2",
    "custom_domain": None,
    "business_name": "Coach Two",
    "primary_color": "#00FF00",
}


def ts(minute: int) -> str:
    return f"2024-05-01T10:{minute:02d}:00+00:00"


class FakeQuery:
    """Just enough of the postgrest request builder for the services under test."""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters = []
        self.orders = []
        self._limit = None

    def select(self, *columns):
        self.op = "select"
        return self

    def insert(self, payload):
        self.op = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.op = "update"
        self.payload = payload
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self.filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        allowed = set(values)
        self.filters.append(lambda row: row.get(column) in allowed)
        return self

    def or_(self, expression):
        clauses = []
        for part in expression.split(","):
            column, op, value = part.split(".", 2)
            assert op == "eq"
            clauses.append((column, value))
        self.filters.append(lambda row: any(str(row.get(c)) == v for c, v in clauses))
        return self

    def order(self, column, desc=False):
        self.orders.append((column, desc))
        return self

    def limit(self, count):
        self._limit = count
        return self

    async def execute(self):
        self.db.log.append((self.table, self.op))
        hold = self.db.holds.get((self.table, self.op))
        if hold is not None:
            await hold.wait()
        failure = self.db.failures.get((self.table, self.op))
        if failure is not None:
            raise failure

        rows = self.db.tables.setdefault(self.table, [])

        if self.op == "insert":
            payloads = self.payload if isinstance(self.payload, list) else [self.payload]
            created = []
            for payload in payloads:
                row = dict(payload)
                for columns in self.db.unique.get(self.table, []):
                    if any(all(r.get(c) == row.get(c) for c in columns) for r in rows):
                        raise APIError({
                            "code": "23505",
                            "message": "duplicate key value violates unique constraint",
                        })
                row.setdefault("id", f"{self.table}-{next(self.db.ids)}")
                if self.table == "chat_messages":
                    row.setdefault("created_at", ts(30 + len(rows)))
                    row.setdefault("is_read", False)
                rows.append(row)
                created.append(row)
            for row in created:
                self.db.emit_insert(self.table, row)
            return SimpleNamespace(data=[dict(r) for r in created])

        matched = [r for r in rows if all(f(r) for f in self.filters)]

        if self.op == "update":
            for row in matched:
                row.update(self.payload)
            return SimpleNamespace(data=[dict(r) for r in matched])

        for column, desc in reversed(self.orders):
            matched = sorted(matched, key=lambda r: r.get(column) or "", reverse=desc)
        if self._limit is not None:
            matched = matched[:self._limit]
        return SimpleNamespace(data=[dict(r) for r in matched])


class FakeChannel:
    def __init__(self, db, topic):
        self.db = db
        self.topic = topic
        self.handlers = []
        self.subscribed = False

    def on_postgres_changes(self, event, callback, table="*", schema="public", filter=None):
        self.handlers.append((event, table, filter, callback))
        return self

    async def subscribe(self, callback=None):
        self.subscribed = True
        self.db.channels.append(self)
        return self


class FakeAuth:
    def __init__(self):
        self.tokens = {}
        self.listeners = []
        self.signed_out = False

    async def get_user(self, token):
        if token not in self.tokens:
            raise Exception("invalid JWT")
        return SimpleNamespace(user=SimpleNamespace(id=self.tokens[token]))

    async def sign_out(self):
        self.signed_out = True
        self.emit("SIGNED_OUT", None)

    def on_auth_state_change(self, callback):
        self.listeners.append(callback)
        return SimpleNamespace(unsubscribe=lambda: self.listeners.remove(callback))

    def emit(self, event, user_id):
        session = SimpleNamespace(user=SimpleNamespace(id=user_id)) if user_id else None
        for callback in list(self.listeners):
            callback(event, session)


def _filter_matches(expression, record):
    if not expression:
        return True
    column, rest = expression.split("=", 1)
    op, value = rest.split(".", 1)
    assert op == "eq"
    return str(record.get(column)) == value


class FakeSupabase:
    """In-memory stand-in for supabase.AsyncClient: tables, realtime channels, auth."""

    def __init__(self):
        self.tables = {}
        self.unique = {"user_blocks": [("blocker_id", "blocked_id")]}
        self.failures = {}
        self.holds = {}
        self.log = []
        self.channels = []
        self.removed_channels = []
        self.ids = itertools.count(1)
        self.auth = FakeAuth()

    def table(self, name):
        return FakeQuery(self, name)

    def channel(self, topic):
        return FakeChannel(self, topic)

    async def remove_channel(self, channel):
        channel.subscribed = False
        if channel in self.channels:
            self.channels.remove(channel)
        self.removed_channels.append(channel)

    def emit_insert(self, table, record):
        payload = {"data": {"type": "INSERT", "table": table, "record": dict(record)}}
        for channel in list(self.channels):
            for event, handler_table, expression, callback in channel.handlers:
                if event in ("INSERT", "*") and handler_table in (table, "*") and _filter_matches(expression, record):
                    callback(payload)

    def seed(self, table, *rows):
        self.tables.setdefault(table, []).extend(dict(r) for r in rows)

    def fail(self, table, op, error=None):
        self.failures[(table, op)] = error or APIError({"code": "500", "message": "boom"})

    def hold(self, table, op="select") -> asyncio.Event:
        event = asyncio.Event()
        self.holds[(table, op)] = event
        return event

    def count(self, table, op):
        return self.log.count((table, op))


@pytest.fixture
def db():
    client = FakeSupabase()
    client.seed("tenants", TENANT_ONE, TENANT_TWO)
    return client


@pytest.fixture
def branding():
    return BrandingController()


@pytest.fixture
def cache():
    return QueryCache()
