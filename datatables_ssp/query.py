"""Query execution and row shaping for DataTables draw and action requests."""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple, Union
import html
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql.expression import TableClause

from .builder import QueryBuilder, split_key
from .column_defs import ColumnRegistry
from .columns import Column, ColumnKind, RowNumbering
from .schemas import DrawRequest

logger = logging.getLogger(__name__)

DT_ROW_ID = "DT_RowId"
DT_ROW_CLASS = "DT_RowClass"

Row = Dict[str, Any]
# Return True/False to state whether a predicate was added; None lets the builder's predicate count decide
FilterCallback = Callable[[QueryBuilder, DrawRequest], Optional[bool]]
# Called with row=None after a read query is composed, and with the written row after each write
PostQueryCallback = Callable[[QueryBuilder, Optional[Row]], None]
RowClass = Union[str, Callable[[Row], Optional[str]]]
Escaper = Callable[[Any], Any]


def escape_html(value: Any) -> Any:
    if isinstance(value, str):
        return html.escape(value)
    return value


class DataTableQuery:
    def __init__(self, builder: QueryBuilder, escaper: Optional[Escaper] = None):
        self.builder = builder
        self.escaper: Escaper = escaper or escape_html
        self.columns: Optional[ColumnRegistry] = None
        self.request: Optional[DrawRequest] = None
        self.filter_applied = False
        self._filter: Optional[FilterCallback] = None
        self._post_query: Optional[PostQueryCallback] = None
        self._row_class: Optional[RowClass] = None
        self._count_all: Optional[int] = None

    def set_column_defs(self, columns: ColumnRegistry) -> "DataTableQuery":
        self.columns = columns
        return self

    def set_request(self, request: DrawRequest) -> "DataTableQuery":
        self.request = request
        return self

    def set_post_query(self, callback: PostQueryCallback) -> "DataTableQuery":
        self._post_query = callback
        return self

    def filter(self, callback: FilterCallback) -> "DataTableQuery":
        self._filter = callback
        return self

    def set_row_class(self, row_class: RowClass) -> "DataTableQuery":
        self._row_class = row_class
        return self

    # --- reads ---

    def count_all(self) -> int:
        if self._count_all is None:
            self._count_all = self.builder.clone().count_all_results()
        return self._count_all

    def count_filtered(self) -> int:
        builder = self.builder.clone()
        applied = self._apply_search(builder)
        if not applied and self._count_all is not None:
            return self._count_all
        return builder.count_all_results()

    def fetch_rows(self) -> List[Any]:
        request = self._draw_request()
        builder = self.builder.clone()

        self._apply_order(builder)
        if request.paged:
            builder.limit(request.length, request.start)
        self._apply_search(builder)
        if self._post_query is not None:
            self._post_query(builder, None)

        numbering = self.columns.numbering(request.start)
        return [self._shape(row, numbering) for row in builder.get()]

    def _draw_request(self) -> DrawRequest:
        if self.request is None or self.columns is None:
            raise ValueError("draw request and column definitions must be set before querying")
        return self.request

    def _apply_order(self, builder: QueryBuilder) -> None:
        request = self._draw_request()
        orderables = self.columns.resolve_orderables(request)
        for order in request.order:
            ref = orderables[order.column] if 0 <= order.column < len(orderables) else None
            if ref is not None:
                builder.order_by(ref.key, order.direction, ref.raw)

    def _apply_search(self, builder: QueryBuilder) -> bool:
        """Add per-column, global and custom predicates; True if any was added."""
        request = self._draw_request()
        applied = False

        for index, desc in enumerate(request.columns):
            if desc.search.value != "":
                ref = self.columns.resolve_search_target(index, desc)
                if ref is not None:
                    builder.like(ref.key, desc.search.value, ref.raw)
                    applied = True

        if request.search.value != "":
            searchable = self.columns.resolve_searchable(request)
            if searchable:
                builder.or_like([(ref.key, ref.raw) for ref in searchable], request.search.value)
                applied = True

        if self._filter is not None:
            before, before_stmt = builder.predicate_count, builder.statement
            result = self._filter(builder, request)
            if result is not None:
                effective = bool(result)
            else:
                # a rebound statement is a changed query
                effective = builder.predicate_count > before or builder.statement is not before_stmt
            applied = applied or effective

        self.filter_applied = self.filter_applied or applied
        return applied

    # --- shaping ---

    def _shape(self, raw_row: Row, numbering: RowNumbering) -> Any:
        row = {k: self.escaper(v) for k, v in raw_row.items()}
        as_object = self.columns.as_object
        values: List[Any] = []
        data: Dict[str, Any] = {}

        for column in self.columns.output_columns():
            value = self._value(column, row, numbering)
            if not as_object:
                values.append(value)
            elif column.is_primary:
                data[DT_ROW_ID] = value
            else:
                data[column.alias] = value

        row_class = None
        if self._row_class is not None:
            row_class = self._row_class(row) if callable(self._row_class) else self._row_class

        if not as_object:
            if row_class is None:
                return values
            # DataTables reads numeric-keyed objects like arrays
            data = {str(i): v for i, v in enumerate(values)}
        if row_class is not None:
            data[DT_ROW_CLASS] = row_class
        return data

    def _value(self, column: Column, row: Row, numbering: RowNumbering) -> Any:
        kind = column.kind
        if kind is ColumnKind.NUMBERING:
            return numbering.next()
        if kind in (ColumnKind.ADDED, ColumnKind.EDITED):
            return column.callback(row)
        if kind is ColumnKind.FORMATTED:
            return column.callback(row.get(column.alias))
        if kind in (ColumnKind.PLAIN, ColumnKind.JOINED, ColumnKind.PRIMARY):
            return row.get(column.alias)
        raise ValueError(f"unhandled column kind {kind!r}")

    # --- writes ---

    @property
    def _primary_field(self) -> str:
        return split_key(self.columns.primary_key)[1]

    def _target_field(self, key: str, target: TableClause, qualifiers: Tuple[str, ...]) -> Optional[str]:
        qualifier, name = split_key(key)
        if qualifier is not None and qualifier not in qualifiers:
            return None
        return name if name in target.c else None

    def _payload_field(self, name: str, target: TableClause, qualifiers: Tuple[str, ...]) -> Optional[str]:
        column = self.columns.get_column_by("alias", name)
        if column is not None:
            return self._target_field(column.key, target, qualifiers)
        return name if name in target.c else None

    def _after_write(self, builder: QueryBuilder, row: Row) -> None:
        if self._post_query is not None:
            self._post_query(builder, row)

    def insert_rows(self, rows: List[Row]) -> List[Row]:
        """Insert each payload; rows that violate a constraint are left out of the result."""
        target, qualifiers = self.builder.table, self.builder.table_qualifiers
        result: List[Row] = []

        for payload in rows:
            builder = self.builder.clone()
            values: Row = {}
            row: Row = {}
            for column in self.columns.get_columns():
                value = payload.get(column.alias)
                if value is None:
                    continue
                row[column.alias] = self.escaper(value)
                if column.is_primary:
                    row[DT_ROW_ID] = self.escaper(value)
                field = self._target_field(column.key, target, qualifiers)
                if field is not None:
                    values[field] = value

            try:
                new_id = builder.insert(values)
            except IntegrityError as e:
                logger.warning("insert into %s skipped: %s", target.name, e.orig)
                continue

            row.setdefault(DT_ROW_ID, new_id)
            result.append(row)
            self._after_write(builder, row)

        return result

    def update_rows(self, rows: Dict[Any, Row]) -> List[Row]:
        """Update each payload by primary key; failed or unmatched rows are left out."""
        target, qualifiers = self.builder.table, self.builder.table_qualifiers
        result: List[Row] = []

        for key, payload in rows.items():
            builder = self.builder.clone()
            values: Row = {}
            row: Row = {}
            for name, value in (payload or {}).items():
                row[name] = self.escaper(value)
                field = self._payload_field(name, target, qualifiers)
                if field is not None:
                    values[field] = value
            key_value = builder.coerce_key(self._primary_field, key)
            row[DT_ROW_ID] = self.escaper(key_value)

            if not values:
                logger.warning("update of %s=%s skipped: no known fields in payload", self._primary_field, key)
                continue
            try:
                affected = builder.update(values, self._primary_field, key_value)
            except IntegrityError as e:
                logger.warning("update of %s=%s skipped: %s", self._primary_field, key, e.orig)
                continue
            if not affected:
                logger.warning("update of %s=%s matched no rows", self._primary_field, key)
                continue

            result.append(row)
            self._after_write(builder, row)

        return result

    def delete_rows(self, rows: Dict[Any, Row]) -> List[Row]:
        """Delete each row by primary key; failed or unmatched rows are left out."""
        result: List[Row] = []

        for key, payload in rows.items():
            builder = self.builder.clone()
            row: Row = {}
            for column in self.columns.get_columns():
                value = (payload or {}).get(column.alias)
                if value is not None and not column.is_primary:
                    row[column.alias] = self.escaper(value)
            key_value = builder.coerce_key(self._primary_field, key)
            row[DT_ROW_ID] = self.escaper(key_value)

            try:
                affected = builder.delete(self._primary_field, key_value)
            except IntegrityError as e:
                logger.warning("delete of %s=%s skipped: %s", self._primary_field, key, e.orig)
                continue
            if not affected:
                logger.warning("delete of %s=%s matched no rows", self._primary_field, key)
                continue

            result.append(row)
            self._after_write(builder, row)

        return result
