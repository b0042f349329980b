import itertools
from types import SimpleNamespace

import pytest
from postgrest.exceptions import APIError


class FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.calls = []

    def _chain(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        return self

    def select(self, *args, **kwargs):
        return self._chain("select", *args, **kwargs)

    def eq(self, *args):
        return self._chain("eq", *args)

    def order(self, *args, **kwargs):
        return self._chain("order", *args, **kwargs)

    def single(self):
        return self._chain("single")

    def insert(self, rows):
        return self._chain("insert", rows)

    def delete(self):
        return self._chain("delete")

    def execute(self):
        self.client.executed.append(self)
        if self.table in self.client.failing:
            raise APIError({"message": "boom", "code": "500", "hint": None, "details": None})
        op = self.calls[0][0]
        if op == "insert":
            rows = self.calls[0][1][0]
            rows = rows if isinstance(rows, list) else [rows]
            inserted = [dict(r, id=f"{self.table}-{next(self.client.ids)}") for r in rows]
            self.client.inserted.setdefault(self.table, []).extend(inserted)
            return SimpleNamespace(data=inserted)
        if op == "delete":
            filters = [c[1] for c in self.calls if c[0] == "eq"]
            rows = self.client.inserted.get(self.table, [])
            deleted = [r for r in rows if all(r.get(k) == v for k, v in filters)]
            self.client.inserted[self.table] = [r for r in rows if r not in deleted]
            return SimpleNamespace(data=deleted)
        data = self.client.rows.get(self.table, [])
        if any(c[0] == "single" for c in self.calls):
            data = data[0]
        return SimpleNamespace(data=data)


class FakeClient:
    """In-memory stand-in for the supabase query builder."""

    def __init__(self, rows=None):
        self.rows = rows or {}
        self.failing = set()
        self.executed = []
        self.inserted = {}
        self.ids = itertools.count(1)

    def table(self, name):
        return FakeQuery(self, name)


@pytest.fixture
def client():
    return FakeClient()
