"""
API test fixtures: an in-memory stand-in for the Supabase client and a
TestClient whose session can be switched per test.
"""
import itertools
from datetime import datetime
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

import tracker.app as app_module
from tracker.app import app, current_session
from tracker.services import auth_service, supabase_service


class FakeQuery:
    """Just enough of the postgrest query builder for the service layer."""

    def __init__(self, store, table):
        self.store = store
        self.rows = store.tables.setdefault(table, [])
        self.op = 'select'
        self.payload = None
        self.filters = []
        self.order_key = None
        self.order_desc = False
        self.limit_n = None

    def select(self, *columns):
        self.op = 'select'
        return self

    def insert(self, payload):
        self.op, self.payload = 'insert', payload
        return self

    def update(self, payload):
        self.op, self.payload = 'update', payload
        return self

    def upsert(self, payload):
        self.op, self.payload = 'upsert', payload
        return self

    def delete(self):
        self.op = 'delete'
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def order(self, column, desc=False):
        if self.store.fail_ordering:
            raise RuntimeError("column deliveries.createdAt does not exist")
        self.order_key, self.order_desc = column, desc
        return self

    def limit(self, n):
        self.limit_n = n
        return self

    def _matches(self, row):
        return all(row.get(column) == value for column, value in self.filters)

    def execute(self):
        if self.store.fail_all:
            raise RuntimeError("connection refused")

        if self.op == 'insert':
            row = {'id': f"row{next(self.store.ids):08d}", **self.payload}
            self.rows.append(row)
            return SimpleNamespace(data=[dict(row)])

        if self.op == 'upsert':
            self.rows[:] = [r for r in self.rows if r.get('id') != self.payload.get('id')]
            self.rows.append(dict(self.payload))
            return SimpleNamespace(data=[dict(self.payload)])

        matching = [r for r in self.rows if self._matches(r)]

        if self.op == 'update':
            for row in matching:
                row.update(self.payload)
            return SimpleNamespace(data=[dict(r) for r in matching])

        if self.op == 'delete':
            self.rows[:] = [r for r in self.rows if not self._matches(r)]
            return SimpleNamespace(data=[dict(r) for r in matching])

        if self.order_key:
            matching.sort(key=lambda r: r.get(self.order_key) or '', reverse=self.order_desc)
        if self.limit_n is not None:
            matching = matching[:self.limit_n]
        return SimpleNamespace(data=[dict(r) for r in matching])


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.ids = itertools.count(1)
        self.fail_ordering = False
        self.fail_all = False

    def table(self, name):
        return FakeQuery(self, name)

    def seed(self, table, *rows):
        self.tables.setdefault(table, []).extend(dict(r) for r in rows)


@pytest.fixture
def store(monkeypatch):
    fake = FakeSupabase()
    monkeypatch.setattr(supabase_service, 'get_client', lambda: fake)
    monkeypatch.setattr(auth_service, 'get_client', lambda: fake)
    monkeypatch.setattr(app_module, 'get_client', lambda: fake)
    return fake


@pytest.fixture
def client(store):
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def login_as():
    """Make every following request run as the given session."""

    def _login(session):
        app.dependency_overrides[current_session] = lambda: session
        return session

    yield _login
    app.dependency_overrides.clear()


def stored(delivery_factory, **overrides):
    """Delivery row as Supabase returns it: timestamps as ISO strings."""
    row = delivery_factory(**overrides)
    if isinstance(row.get('createdAt'), datetime):
        row['createdAt'] = row['createdAt'].isoformat()
    return row


@pytest.fixture
def stored_delivery(delivery_factory):
    def _make(**overrides):
        return stored(delivery_factory, **overrides)
    return _make
