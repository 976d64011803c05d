"""In-memory stand-in for the store handle.

Interprets the narrow CQL subset the services prepare, against tables built
from the real CREATE TABLE definitions:

- INSERT (optionally IF NOT EXISTS)
- SELECT by key, with an optional tuple bound and LIMIT
- UPDATE with bound or literal SET values and IF conditions
- DELETE by key prefix

Conditional updates are atomic per statement, and every call yields to the
event loop first, so ``asyncio.gather`` interleaves concurrent callers the
way concurrent requests would.
"""

import asyncio
import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any
from uuid import UUID

from src.access_codes.models import ACCESS_CODES_TABLES_CQL
from src.accounts.models import ACCOUNTS_TABLES_CQL
from src.audit.models import AUDIT_TABLES_CQL
from src.core.errors import StorageUnavailableError
from src.enrollments.models import ENROLLMENTS_TABLES_CQL


ALL_TABLES_CQL = [
    *AUDIT_TABLES_CQL,
    *ACCESS_CODES_TABLES_CQL,
    *ENROLLMENTS_TABLES_CQL,
    *ACCOUNTS_TABLES_CQL,
]

_COLUMN = re.compile(r"^\s+(\w+) (?:TEXT|TIMESTAMP|TIMEUUID|BOOLEAN|INT|UUID)\b", re.M)
_INLINE_KEY = re.compile(r"^\s+(\w+) \w+ PRIMARY KEY", re.M)
_COMPOUND_KEY = re.compile(r"PRIMARY KEY \(\((\w+)\)(?:,\s*([\w\s,]+))?\)")

_INSERT = re.compile(
    r"^INSERT INTO \w+\.(\w+) \(([^)]*)\) VALUES \(([^)]*)\)( IF NOT EXISTS)?$"
)
_SELECT = re.compile(r"^SELECT (.+?) FROM \w+\.(\w+)(?: WHERE (.+?))?( LIMIT \?)?$")
_UPDATE = re.compile(r"^UPDATE \w+\.(\w+) SET (.+?) WHERE (.+?)(?: IF (.+))?$")
_DELETE = re.compile(r"^DELETE FROM \w+\.(\w+) WHERE (.+)$")
_TUPLE_BOUND = re.compile(r"^\(([\w\s,]+)\) < \(([?\s,]+)\)$")


@dataclass
class Table:
    name: str
    columns: list[str]
    key: tuple[str, ...]
    descending: bool
    rows: dict[tuple, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_cql(cls, cql: str) -> "Table":
        name = re.search(r"\{keyspace\}\.(\w+)", cql).group(1)
        inline = _INLINE_KEY.search(cql)
        if inline:
            key: tuple[str, ...] = (inline.group(1),)
        else:
            match = _COMPOUND_KEY.search(cql)
            clustering = [c.strip() for c in (match.group(2) or "").split(",") if c.strip()]
            key = (match.group(1), *clustering)
        return cls(
            name=name,
            columns=_COLUMN.findall(cql),
            key=key,
            descending="DESC" in cql,
        )

    def row_key(self, values: dict[str, Any]) -> tuple:
        return tuple(values[c] for c in self.key)

    def as_row(self, values: dict[str, Any]) -> SimpleNamespace:
        return SimpleNamespace(**{c: values.get(c) for c in self.columns})


def _sortable(value: Any) -> Any:
    # TIMEUUIDs order by their embedded time, like Cassandra
    if isinstance(value, UUID) and value.version == 1:
        return (value.time, value.bytes)
    return value


def _literal(token: str, params: Iterator[Any]) -> Any:
    token = token.strip()
    if token == "?":
        return next(params)
    if token == "true":
        return True
    if token == "false":
        return False
    if token == "null":
        return None
    if token.startswith("'") and token.endswith("'"):
        return token[1:-1]
    msg = f"Unsupported CQL literal: {token}"
    raise ValueError(msg)


def _assignments(clause: str, params: Iterator[Any]) -> dict[str, Any]:
    values = {}
    for part in clause.split(" AND " if " AND " in clause else ", "):
        column, _, token = part.partition("=")
        values[column.strip()] = _literal(token, params)
    return values


class FakeStatement:
    """Prepared statement: the normalized CQL text."""

    def __init__(self, cql: str) -> None:
        self.cql = " ".join(cql.split())

    def __repr__(self) -> str:
        return f"FakeStatement({self.cql!r})"


class FakeResult:
    """Minimal ResultSet: iterable rows, ``one()``, ``was_applied``."""

    def __init__(self, rows: list[Any] | None = None, was_applied: bool = True) -> None:
        self.current_rows = rows or []
        self.was_applied = was_applied

    def __iter__(self):
        return iter(self.current_rows)

    def one(self) -> Any:
        return self.current_rows[0] if self.current_rows else None


class FakeStore:
    """Drop-in for ``StoreHandle`` backed by in-memory tables.

    Attributes:
        fail_batches: Number of upcoming batches to fail with
            StorageUnavailableError (nothing in a failed batch is applied)
        fail_statements: Statements whose execution fails
        executed: Every (statement, params) executed outside batches
        batches: Every applied batch, as lists of (statement, params)
    """

    def __init__(self, keyspace: str = "enrollgate_test") -> None:
        self.keyspace = keyspace
        self.tables = {t.name: t for t in map(Table.from_cql, ALL_TABLES_CQL)}
        self.fail_batches = 0
        self.fail_statements: set[FakeStatement] = set()
        self.executed: list[tuple[FakeStatement, tuple]] = []
        self.batches: list[list[tuple[FakeStatement, tuple]]] = []

    # ==========================================================================
    # StoreHandle interface
    # ==========================================================================

    def prepare(self, cql: str) -> FakeStatement:
        return FakeStatement(cql)

    async def execute(
        self, statement: FakeStatement, params: Sequence[Any] | None = None
    ) -> FakeResult:
        await asyncio.sleep(0)
        if statement in self.fail_statements:
            raise StorageUnavailableError
        self.executed.append((statement, tuple(params or ())))
        return self._apply(statement, tuple(params or ()))

    async def execute_batch(
        self, items: Sequence[tuple[FakeStatement, Sequence[Any]]]
    ) -> FakeResult:
        await asyncio.sleep(0)
        if self.fail_batches:
            self.fail_batches -= 1
            raise StorageUnavailableError
        applied = [(statement, tuple(params)) for statement, params in items]
        for statement, params in applied:
            self._apply(statement, params)
        self.batches.append(applied)
        return FakeResult()

    def shutdown(self) -> None:
        pass

    # ==========================================================================
    # Helpers for assertions
    # ==========================================================================

    def rows(self, table: str) -> list[dict[str, Any]]:
        return list(self.tables[table].rows.values())

    def row(self, table: str, *key: Any) -> dict[str, Any] | None:
        return self.tables[table].rows.get(tuple(key))

    # ==========================================================================
    # Interpreter
    # ==========================================================================

    def _apply(self, statement: FakeStatement, params: tuple) -> FakeResult:
        cql = statement.cql
        values = iter(params)
        if match := _INSERT.match(cql):
            return self._insert(match, values)
        if match := _SELECT.match(cql):
            return self._select(match, values)
        if match := _UPDATE.match(cql):
            return self._update(match, values)
        if match := _DELETE.match(cql):
            return self._delete(match, values)
        msg = f"Unsupported CQL: {cql}"
        raise ValueError(msg)

    def _insert(self, match: re.Match, values: Iterator[Any]) -> FakeResult:
        table = self.tables[match.group(1)]
        columns = [c.strip() for c in match.group(2).split(",")]
        tokens = match.group(3).split(",")
        row = {c: _literal(t, values) for c, t in zip(columns, tokens, strict=True)}

        key = table.row_key(row)
        if match.group(4) and key in table.rows:
            return FakeResult([table.as_row(table.rows[key])], was_applied=False)

        table.rows.setdefault(key, {}).update(row)
        return FakeResult()

    def _matching(
        self, table: Table, where: str | None, values: Iterator[Any]
    ) -> list[dict[str, Any]]:
        equals: dict[str, Any] = {}
        bound: tuple[list[str], list[Any]] | None = None
        for term in (where or "").split(" AND ") if where else []:
            if tuple_match := _TUPLE_BOUND.match(term):
                columns = [c.strip() for c in tuple_match.group(1).split(",")]
                bound = (columns, [next(values) for _ in columns])
            else:
                column, _, token = term.partition("=")
                equals[column.strip()] = _literal(token, values)

        rows = [
            row
            for row in table.rows.values()
            if all(row.get(c) == v for c, v in equals.items())
        ]
        if bound:
            columns, limit_values = bound
            ceiling = [_sortable(v) for v in limit_values]
            rows = [r for r in rows if [_sortable(r[c]) for c in columns] < ceiling]

        rows.sort(
            key=lambda r: [_sortable(r[c]) for c in table.key],
            reverse=table.descending,
        )
        return rows

    def _select(self, match: re.Match, values: Iterator[Any]) -> FakeResult:
        table = self.tables[match.group(2)]
        rows = self._matching(table, match.group(3), values)
        if match.group(4):
            rows = rows[: next(values)]
        return FakeResult([table.as_row(r) for r in rows])

    def _update(self, match: re.Match, values: Iterator[Any]) -> FakeResult:
        table = self.tables[match.group(1)]
        changes = _assignments(match.group(2), values)
        key_values = _assignments(match.group(3), values)
        conditions = _assignments(match.group(4), values) if match.group(4) else None

        key = table.row_key(key_values)
        current = table.rows.get(key)
        if conditions is not None:
            if current is None:
                return FakeResult(was_applied=False)
            if any(current.get(c) != v for c, v in conditions.items()):
                return FakeResult([table.as_row(current)], was_applied=False)

        table.rows.setdefault(key, dict(key_values)).update(changes)
        return FakeResult()

    def _delete(self, match: re.Match, values: Iterator[Any]) -> FakeResult:
        table = self.tables[match.group(1)]
        for row in self._matching(table, match.group(2), values):
            del table.rows[table.row_key(row)]
        return FakeResult()
