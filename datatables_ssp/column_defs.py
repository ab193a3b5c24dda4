from __future__ import annotations

from typing import Any, Callable, List, NamedTuple, Optional, Sequence, Union
import logging

from .builder import QueryBuilder, base_table, split_key
from .columns import Column, ColumnKind, RowNumbering
from .introspection import SchemaIntrospector
from .projection import ExpressionKind, ProjectionParser
from .schemas import ColumnRequest, DrawRequest

logger = logging.getLogger(__name__)


class ColumnRef(NamedTuple):
    """A key to order or search on. `raw` keys are trusted SQL; others are client-supplied identifiers."""

    key: str
    raw: bool = True


class ColumnRegistry:
    """
    Ordered column definitions of one DataTable.

    Built once per request from the base query's shape, configured by the
    caller (add/edit/format/hide), then read-only while the query runs.
    """

    def __init__(self, columns: Optional[Sequence[Column]] = None, primary_key: str = "id", as_object: bool = False):
        self.columns: List[Column] = list(columns or [])
        self.primary_key = primary_key
        self.as_object = as_object
        self.searchable_columns: Optional[List[str]] = None

    @classmethod
    def from_query(
        cls,
        query: QueryBuilder,
        primary_key: str = "id",
        introspector: Optional[SchemaIntrospector] = None,
        parser: Optional[ProjectionParser] = None,
    ) -> "ColumnRegistry":
        registry = cls(primary_key=primary_key)
        registry.derive_from_query(query, introspector, parser)
        return registry

    def return_as_object(self, as_object: bool) -> "ColumnRegistry":
        self.as_object = as_object
        return self

    # --- derivation ---

    def derive_from_query(
        self,
        query: QueryBuilder,
        introspector: Optional[SchemaIntrospector] = None,
        parser: Optional[ProjectionParser] = None,
    ) -> "ColumnRegistry":
        """
        Derive columns from the base query's shape.

        With an explicit projection every SELECT entry becomes one column
        (wildcards expand to the referenced table's fields). Without one, every
        field of the FROM table and of each joined table becomes a column and
        the query is given a matching labelled projection. Later changes to
        the query are not re-derived.
        """
        introspector = introspector or SchemaIntrospector(query.bind)
        parser = parser or ProjectionParser(query.dialect_name)

        if query.has_projection:
            parsed = parser.parse(query.compiled_sql())
            base = parsed.tables[0].qualifier if parsed.tables else None
            for item in parsed.projection:
                if item.is_star:
                    targets = [parsed.resolve_table(item.parts[-1])] if item.parts else parsed.tables
                    for t in targets:
                        for name in introspector.field_names(t.name, t.schema):
                            self._append_derived(parser.column_sql(name, t.qualifier), name, base)
                elif item.kind is ExpressionKind.COLUMN:
                    self._append_derived(item.expression, item.alias or item.name, base)
                else:
                    self._append_derived(item.expression, item.alias or item.expression, base)
        else:
            tables = query.tables()
            for index, t in enumerate(tables):
                physical = base_table(t)
                for name in introspector.field_names(physical.name, getattr(physical, "schema", None)):
                    key = parser.column_sql(name, t.name)
                    alias = f"{t.name}_{name}" if self.get_column_by("alias", name) else name
                    if index == 0:
                        self._append_derived(key, alias, t.name)
                    else:
                        self.columns.append(Column(key, alias, ColumnKind.JOINED, reference=f"{t.name}.{self.primary_key}"))
            query.project((c.key, c.alias) for c in self.columns if not c.is_primary)

        logger.debug("derived columns: %s", [(c.key, c.alias, c.kind.value) for c in self.columns])
        return self

    def _append_derived(self, key: str, alias: str, base_table: Optional[str]) -> None:
        self.columns.append(Column(key, alias))
        if self.primary_column() is None and self._is_primary_key(key, base_table):
            self.columns.append(Column(key, alias, ColumnKind.PRIMARY))

    def _is_primary_key(self, key: str, base_table: Optional[str]) -> bool:
        if key == self.primary_key:
            return True
        qualifier, name = split_key(key)
        pk_qualifier, pk_name = split_key(self.primary_key)
        if name != pk_name:
            return False
        if qualifier is None:
            return pk_qualifier is None
        return qualifier == (pk_qualifier or base_table)

    # --- configuration ---

    def add_numbering(self, alias: str = "number") -> "ColumnRegistry":
        self.columns.insert(0, Column(alias, alias, ColumnKind.NUMBERING))
        return self

    def add(self, alias: str, callback: Callable[[Any], Any], position: Union[str, int] = "last") -> "ColumnRegistry":
        column = Column(alias, alias, ColumnKind.ADDED, callback=callback)
        if position == "first":
            self.columns.insert(0, column)
        elif position == "last":
            self.columns.append(column)
        else:
            self.columns.insert(int(position), column)
        return self

    def edit(self, alias: str, callback: Callable[[Any], Any]) -> "ColumnRegistry":
        column = self.get_column_by("alias", alias) if alias else None
        if column is not None:
            column.transform(ColumnKind.EDITED, callback)
        return self

    def format(self, alias: Union[str, Sequence[str]], callback: Callable[[Any], Any]) -> "ColumnRegistry":
        for a in ([alias] if isinstance(alias, str) else alias):
            column = self.get_column_by("alias", a) if a else None
            if column is not None:
                column.transform(ColumnKind.FORMATTED, callback)
        return self

    def remove(self, alias: Union[str, Sequence[str]]) -> "ColumnRegistry":
        aliases = {alias} if isinstance(alias, str) else set(alias)
        self.columns = [c for c in self.columns if c.alias not in aliases]
        return self

    def set_searchable(self, columns: Union[str, Sequence[str], None]) -> "ColumnRegistry":
        self.searchable_columns = None if columns is None else ([columns] if isinstance(columns, str) else list(columns))
        return self

    def add_searchable(self, columns: Union[str, Sequence[str]]) -> "ColumnRegistry":
        if self.searchable_columns is None:
            self.searchable_columns = []
        self.searchable_columns.extend([columns] if isinstance(columns, str) else columns)
        return self

    # --- lookups ---

    def get_columns(self) -> List[Column]:
        return list(self.columns)

    def get_column_by(self, attr: str, value: Any) -> Optional[Column]:
        for column in self.columns:
            if getattr(column, attr) == value and not column.is_primary:
                return column
        return None

    def primary_column(self) -> Optional[Column]:
        return next((c for c in self.columns if c.is_primary), None)

    def output_columns(self) -> List[Column]:
        """
        Columns occupying output positions.

        Array mode leaves out the primary shadow. Object mode keeps it (it
        becomes DT_RowId) and leaves out its untransformed plain twin.
        """
        if not self.as_object:
            return [c for c in self.columns if not c.is_primary]
        primary = self.primary_column()
        if primary is None:
            return list(self.columns)
        return [
            c for c in self.columns
            if not (c.kind is ColumnKind.PLAIN and c.key == primary.key and c.alias == primary.alias)
        ]

    def numbering(self, start: int = 0) -> RowNumbering:
        return RowNumbering(start=start or 0)

    # --- request resolution ---

    def _client_ref(self, name: str) -> ColumnRef:
        name = name.strip()
        if any(c.key == name for c in self.columns):
            return ColumnRef(name, True)
        return ColumnRef(name, False)

    def _positional(self, index: int) -> Optional[Column]:
        columns = [c for c in self.columns if not c.is_primary]
        return columns[index] if 0 <= index < len(columns) else None

    def resolve_orderables(self, request: DrawRequest) -> List[Optional[ColumnRef]]:
        """Sort key for each output position, or None where ordering is not allowed."""
        if not self.as_object:
            return [ColumnRef(c.key) if c.orderable else None for c in self.columns if not c.is_primary]

        orderables: List[Optional[ColumnRef]] = []
        for desc in request.columns:
            if not desc.orderable:
                orderables.append(None)
            elif desc.name:
                orderables.append(self._client_ref(desc.name))
            elif (column := self.get_column_by("alias", desc.data)) is not None:
                orderables.append(ColumnRef(column.key) if column.orderable else None)
            elif desc.data:
                orderables.append(ColumnRef(desc.data, False))
            else:
                orderables.append(None)
        return orderables

    def resolve_search_target(self, index: int, desc: ColumnRequest) -> Optional[ColumnRef]:
        """Key a per-column search term applies to."""
        if not self.as_object:
            column = self._positional(index)
            return ColumnRef(column.key) if column is not None and column.searchable else None
        if desc.name:
            return self._client_ref(desc.name)
        column = self.get_column_by("alias", desc.data)
        if column is not None:
            return ColumnRef(column.key) if column.searchable else None
        return ColumnRef(desc.data, False) if desc.data else None

    def resolve_searchable(self, request: DrawRequest) -> List[ColumnRef]:
        """Keys the global search term is matched against."""
        if self.searchable_columns is not None:
            return [ColumnRef(k.strip()) for k in self.searchable_columns]

        searchable: List[ColumnRef] = []
        for index, desc in enumerate(request.columns):
            if not desc.searchable:
                continue
            ref = self.resolve_search_target(index, desc)
            if ref is not None:
                searchable.append(ref)
        return searchable
