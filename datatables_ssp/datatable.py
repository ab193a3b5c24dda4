from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union
import logging

from pydantic import ValidationError
from sqlalchemy.sql.expression import FromClause, Select

from .builder import Bind, QueryBuilder
from .column_defs import ColumnRegistry
from .config import settings
from .introspection import SchemaIntrospector
from .query import DataTableQuery, Escaper, FilterCallback, PostQueryCallback, RowClass
from .request import RequestParams
from .schemas import ActionRequest, ActionResponse, DrawRequest, DrawResponse, ErrorResponse

logger = logging.getLogger(__name__)

_DRAW_FIELDS = ("draw", "start", "length", "order", "search", "columns")
_ACTIONS = ("create", "edit", "remove")


class DataTable:
    """
    Server-side processing for one DataTables request.

    Example:
        >>> users = Table("users", metadata, autoload_with=engine)
        >>> result = (
        ...     DataTable.of(select(users.c.id, users.c.name, users.c.email), engine)
        ...     .add_numbering()
        ...     .format("email", lambda v: v.lower())
        ...     .add("action", lambda row: f"<a href='/users/{row['id']}'>edit</a>")
        ...     .get_result(params, as_object=True)
        ... )
    """

    def __init__(
        self,
        source: Union[Select, FromClause],
        bind: Bind,
        primary_key: Optional[str] = None,
        introspector: Optional[SchemaIntrospector] = None,
        escaper: Optional[Escaper] = None,
    ):
        self.primary_key = primary_key or settings.primary_key
        self.builder = QueryBuilder(source, bind)
        self.column_defs = ColumnRegistry.from_query(self.builder, self.primary_key, introspector)
        self.query = DataTableQuery(self.builder, escaper)

    @classmethod
    def of(cls, source: Union[Select, FromClause], bind: Bind, primary_key: Optional[str] = None, **kwargs: Any) -> "DataTable":
        return cls(source, bind, primary_key, **kwargs)

    # --- configuration (chainable) ---

    def post_query(self, callback: PostQueryCallback) -> "DataTable":
        self.query.set_post_query(callback)
        return self

    def filter(self, callback: FilterCallback) -> "DataTable":
        self.query.filter(callback)
        return self

    def set_row_class(self, row_class: RowClass) -> "DataTable":
        self.query.set_row_class(row_class)
        return self

    def add_numbering(self, alias: str = "number") -> "DataTable":
        self.column_defs.add_numbering(alias)
        return self

    def add(self, alias: str, callback: Callable[[Dict[str, Any]], Any], position: Union[str, int] = "last") -> "DataTable":
        self.column_defs.add(alias, callback, position)
        return self

    def edit(self, alias: str, callback: Callable[[Dict[str, Any]], Any]) -> "DataTable":
        self.column_defs.edit(alias, callback)
        return self

    def format(self, alias: Union[str, Sequence[str]], callback: Callable[[Any], Any]) -> "DataTable":
        self.column_defs.format(alias, callback)
        return self

    def hide(self, alias: Union[str, Sequence[str]]) -> "DataTable":
        self.column_defs.remove(alias)
        return self

    def set_searchable_columns(self, columns: Union[str, Sequence[str]]) -> "DataTable":
        self.column_defs.set_searchable(columns)
        return self

    def add_searchable_columns(self, columns: Union[str, Sequence[str]]) -> "DataTable":
        self.column_defs.add_searchable(columns)
        return self

    # --- result ---

    def get_result(self, params: Union[RequestParams, Mapping[str, Any]], as_object: Optional[bool] = None) -> Dict[str, Any]:
        """Answer a draw or action request; malformed requests get an error envelope."""
        if not isinstance(params, RequestParams):
            params = RequestParams.from_mapping(params)
        if as_object is not None:
            self.column_defs.return_as_object(as_object)
        self.query.set_column_defs(self.column_defs)

        if params.get("draw") not in (None, ""):
            return self._handle_draw(params)
        if params.get("action") not in (None, ""):
            return self._handle_action(params)
        return self.handle_error("no datatable request detected")

    def _handle_draw(self, params: RequestParams) -> Dict[str, Any]:
        fields = {name: params.get(name) for name in _DRAW_FIELDS if params.get(name) is not None}
        try:
            request = DrawRequest.model_validate(fields)
        except ValidationError as e:
            logger.warning("malformed draw request: %s", e)
            return self.handle_error("malformed draw request")

        self.query.set_request(request)
        return DrawResponse(
            draw=request.draw,
            recordsTotal=self.query.count_all(),
            recordsFiltered=self.query.count_filtered(),
            data=self.query.fetch_rows(),
        ).model_dump()

    def _handle_action(self, params: RequestParams) -> Dict[str, Any]:
        action = params.get("action")
        if action not in _ACTIONS:
            logger.warning("unknown datatable action: %r", action)
            return self.handle_error("no datatable request detected")
        try:
            request = ActionRequest.model_validate({"action": action, "data": params.get("data") or {}})
        except ValidationError as e:
            logger.warning("malformed %s request: %s", action, e)
            return self.handle_error(f"malformed {action} request")

        if request.action == "create":
            rows = self.query.insert_rows(request.rows())
        elif request.action == "edit":
            rows = self.query.update_rows(request.keyed_rows())
        else:
            rows = self.query.delete_rows(request.keyed_rows())
        return ActionResponse(data=rows).model_dump()

    @staticmethod
    def handle_error(message: str) -> Dict[str, Any]:
        # Empty data keeps the client table rendering
        return ErrorResponse(data=[], error=message).model_dump()
