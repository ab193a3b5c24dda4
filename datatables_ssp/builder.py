"""
Mutable query-builder facade over SQLAlchemy Core.

SQLAlchemy statements are immutable; DataTable code composes predicates,
ordering and paging step by step and hands the builder to user callbacks,
so this wrapper keeps the current statement and counts added predicates.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union
import copy
import logging

from sqlalchemy import String, cast, column as sa_column, delete, func, insert, literal_column, or_, select, table as sa_table, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import CompileError
from sqlalchemy.sql.expression import Alias, ColumnElement, FromClause, Join, Select, TableClause

logger = logging.getLogger(__name__)

Bind = Union[Engine, Connection]

_QUOTES = "\"`[]"


def split_key(key: str) -> Tuple[Optional[str], str]:
    """Split ``table.field`` into its unquoted qualifier and field name."""
    if "(" in key:
        return None, key
    qualifier, _, name = key.rpartition(".")
    return (qualifier.strip(_QUOTES) or None), name.strip(_QUOTES)


def source_tables(clause: FromClause) -> List[FromClause]:
    """Tables (or aliased tables) of a FROM clause, leftmost (the FROM table) first, then joined ones."""
    if isinstance(clause, Join):
        return source_tables(clause.left) + source_tables(clause.right)
    if isinstance(clause, TableClause):
        return [clause]
    if isinstance(clause, Alias) and isinstance(clause.element, TableClause):
        return [clause]
    return []


def base_table(clause: FromClause) -> TableClause:
    """Physical table behind a FROM entry; `users AS u` resolves to `users`."""
    return clause.element if isinstance(clause, Alias) else clause


class QueryBuilder:
    def __init__(self, source: Union[Select, FromClause], bind: Bind):
        self.bind = bind
        if isinstance(source, Select):
            self.statement: Select = source
            self.source: Optional[FromClause] = None
            self.has_projection = True
        elif isinstance(source, FromClause):
            self.statement = select(source)
            self.source = source
            self.has_projection = False
        else:
            raise TypeError(f"unsupported query source: {type(source).__name__}")
        self.predicate_count = 0
        self.last_insert_id: Any = None

    @property
    def dialect_name(self) -> str:
        return self.bind.dialect.name

    def clone(self) -> "QueryBuilder":
        return copy.copy(self)

    # --- source shape ---

    def tables(self) -> List[FromClause]:
        if self.source is not None:
            return source_tables(self.source)
        found: List[FromClause] = []
        for clause in self.statement.get_final_froms():
            found.extend(source_tables(clause))
        return found

    def _from_table(self) -> FromClause:
        tables = self.tables()
        if not tables:
            raise ValueError("query has no table to write to")
        return tables[0]

    @property
    def table(self) -> TableClause:
        """Target of INSERT/UPDATE/DELETE: the FROM table of the base query, unaliased."""
        return base_table(self._from_table())

    @property
    def table_qualifiers(self) -> Tuple[str, ...]:
        """Names that qualify the write target in column keys: its alias and its table name."""
        first = self._from_table()
        return (first.name, base_table(first).name)

    def project(self, columns: Iterable[Tuple[str, str]]) -> "QueryBuilder":
        """Replace the implicit ``SELECT *`` of a FROM-only source with labelled columns."""
        exprs = [literal_column(key).label(alias) for key, alias in columns]
        self.statement = select(*exprs).select_from(self.source) if self.source is not None else self.statement.with_only_columns(*exprs)
        self.has_projection = True
        return self

    def compiled_sql(self) -> str:
        dialect = self.bind.dialect
        try:
            return str(self.statement.compile(dialect=dialect, compile_kwargs={"literal_binds": True}))
        except CompileError:
            return str(self.statement.compile(dialect=dialect))

    # --- expressions ---

    def expression(self, key: str, raw: bool = True) -> ColumnElement:
        """
        SQL expression for a column key.

        Raw keys are trusted SQL text (derived from the base query or given by
        the developer). Non-raw keys come from the client and are rendered as
        quoted identifiers only.
        """
        if raw:
            return literal_column(key)
        qualifier, name = split_key(key)
        col = sa_column(name)
        if qualifier:
            return sa_table(qualifier, col).c[name]
        return col

    # --- composition ---

    def where(self, *clauses: ColumnElement) -> "QueryBuilder":
        self.statement = self.statement.where(*clauses)
        self.predicate_count += 1
        return self

    def like(self, key: str, term: str, raw: bool = True) -> "QueryBuilder":
        """Case-insensitive substring match; LIKE wildcards in `term` are escaped."""
        return self.where(self._contains(self.expression(key, raw), term))

    def or_like(self, keys: Sequence[Tuple[str, bool]], term: str) -> "QueryBuilder":
        """One grouped OR of substring matches over (key, raw) pairs."""
        return self.where(or_(*[self._contains(self.expression(k, raw), term) for k, raw in keys]))

    def _contains(self, expr: ColumnElement, term: str) -> ColumnElement:
        return cast(expr, String).icontains(term, autoescape=True)

    def order_by(self, key: str, direction: str = "asc", raw: bool = True) -> "QueryBuilder":
        expr = self.expression(key, raw)
        self.statement = self.statement.order_by(expr.desc() if direction == "desc" else expr.asc())
        return self

    def limit(self, length: int, offset: int = 0) -> "QueryBuilder":
        self.statement = self.statement.limit(length).offset(offset or 0)
        return self

    # --- execution ---

    @contextmanager
    def _reader(self) -> Iterator[Connection]:
        if isinstance(self.bind, Engine):
            with self.bind.connect() as conn:
                yield conn
        else:
            yield self.bind

    @contextmanager
    def _writer(self) -> Iterator[Connection]:
        if isinstance(self.bind, Engine):
            with self.bind.begin() as conn:
                yield conn
        else:
            tx = self.bind.begin_nested() if self.bind.in_transaction() else self.bind.begin()
            with tx:
                yield self.bind

    def count_all_results(self) -> int:
        stmt = select(func.count()).select_from(self.statement.order_by(None).subquery())
        with self._reader() as conn:
            return int(conn.execute(stmt).scalar_one())

    def get(self) -> List[Dict[str, Any]]:
        logger.debug("executing %s", self.statement)
        with self._reader() as conn:
            return [dict(row) for row in conn.execute(self.statement).mappings()]

    def coerce_key(self, field_name: str, value: Any) -> Any:
        """Convert a primary-key value received as text to the column's Python type."""
        col = self.table.c[field_name]
        try:
            py_type = col.type.python_type
        except NotImplementedError:
            return value
        if py_type is int and isinstance(value, str):
            try:
                return int(value)
            except ValueError:
                return value
        return value

    def insert(self, values: Dict[str, Any]) -> Any:
        """Insert one row; returns (and records) the generated primary key, if any."""
        with self._writer() as conn:
            result = conn.execute(insert(self.table).values(values))
        pk = result.inserted_primary_key
        self.last_insert_id = pk[0] if pk and pk[0] is not None else result.lastrowid
        return self.last_insert_id

    def update(self, values: Dict[str, Any], key_field: str, key_value: Any) -> int:
        target = self.table
        stmt = update(target).where(target.c[key_field] == self.coerce_key(key_field, key_value)).values(values)
        with self._writer() as conn:
            return conn.execute(stmt).rowcount

    def delete(self, key_field: str, key_value: Any) -> int:
        target = self.table
        stmt = delete(target).where(target.c[key_field] == self.coerce_key(key_field, key_value))
        with self._writer() as conn:
            return conn.execute(stmt).rowcount
