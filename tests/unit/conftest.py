from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest


@dataclass
class FakeResponse:
    data: list[dict[str, Any]]
    count: int | None = None


class FakeQuery:
    def __init__(self, client: "FakeSupabaseClient", table: str) -> None:
        self.client = client
        self.table = table
        self.action = "select"
        self.columns = "*"
        self.count_mode: str | None = None
        self.filters: list[tuple[str, str, Any]] = []
        self.row_limit: int | None = None
        self.payload: Any = None

    def select(self, columns: str = "*", count: str | None = None) -> "FakeQuery":
        self.action = "select"
        self.columns = columns
        self.count_mode = count
        return self

    def insert(self, payload: Any) -> "FakeQuery":
        self.action = "insert"
        self.payload = payload
        return self

    def delete(self) -> "FakeQuery":
        self.action = "delete"
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(("eq", column, value))
        return self

    def in_(self, column: str, values: list[Any]) -> "FakeQuery":
        self.filters.append(("in", column, list(values)))
        return self

    def limit(self, size: int) -> "FakeQuery":
        self.row_limit = size
        return self

    def _matches(self, row: dict[str, Any]) -> bool:
        for kind, column, value in self.filters:
            if kind == "eq" and row.get(column) != value:
                return False
            if kind == "in" and row.get(column) not in value:
                return False
        return True

    def execute(self) -> FakeResponse:
        self.client.executed.append(self)
        error = self.client.errors.get((self.table, self.action))
        if error is not None:
            raise error

        rows = self.client.tables.setdefault(self.table, [])

        if self.action == "insert":
            inserted = self.payload if isinstance(self.payload, list) else [self.payload]
            rows.extend(inserted)
            return FakeResponse(data=list(inserted))

        matching = [row for row in rows if self._matches(row)]

        if self.action == "delete":
            self.client.tables[self.table] = [row for row in rows if not self._matches(row)]
            return FakeResponse(data=matching)

        limited = matching[: self.row_limit] if self.row_limit is not None else matching
        count = len(matching) if self.count_mode else None
        return FakeResponse(data=limited, count=count)


class FakeRpc:
    def __init__(self, client: "FakeSupabaseClient", name: str, params: dict[str, Any]) -> None:
        self.client = client
        self.name = name
        self.params = params

    def execute(self) -> FakeResponse:
        error = self.client.errors.get(("rpc", self.name))
        if error is not None:
            raise error
        return FakeResponse(data=list(self.client.rpc_results.get(self.name, [])))


@dataclass
class FakeSupabaseClient:
    """In-memory stand-in for the supabase Client query builder."""
    tables: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    rpc_results: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    errors: dict[tuple[str, str], Exception] = field(default_factory=dict)
    executed: list[FakeQuery] = field(default_factory=list)
    rpc_calls: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: dict[str, Any]) -> FakeRpc:
        self.rpc_calls.append((name, params))
        return FakeRpc(self, name, params)


@pytest.fixture
def supabase_client() -> FakeSupabaseClient:
    return FakeSupabaseClient()
