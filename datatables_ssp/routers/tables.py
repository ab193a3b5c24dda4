from __future__ import annotations

from typing import Any, Dict, Optional
import logging

from fastapi import APIRouter, HTTPException, Request
from sqlalchemy.exc import NoSuchTableError
from starlette.concurrency import run_in_threadpool

from ..config import settings
from ..datatable import DataTable
from ..db import get_engine, list_tables, reflect_table
from ..introspection import SchemaIntrospector
from ..request import RequestParams

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tables", tags=["tables"])


def _is_exposed(name: str) -> bool:
    allowed = settings.exposed_tables_list
    return "*" in allowed or name in allowed


def _serve(table_name: str, params: RequestParams, as_object: bool) -> Dict[str, Any]:
    engine = get_engine()
    schema = settings.database_schema
    try:
        table = reflect_table(engine, table_name, schema)
    except NoSuchTableError:
        raise HTTPException(status_code=404, detail=f"Unknown table: {table_name}")

    introspector = SchemaIntrospector(engine)
    pk = introspector.primary_key(table_name, schema)
    primary_key = pk[0] if pk else settings.primary_key
    return DataTable.of(table, engine, primary_key, introspector=introspector).get_result(params, as_object)


@router.get("")
def exposed_tables() -> Dict[str, Any]:
    names = list_tables(get_engine(), settings.database_schema)
    return {"tables": [n for n in names if _is_exposed(n)]}


@router.api_route("/{table_name}", methods=["GET", "POST"])
async def table_data(table_name: str, request: Request, asObject: Optional[bool] = None) -> Dict[str, Any]:
    if not _is_exposed(table_name):
        raise HTTPException(status_code=404, detail=f"Unknown table: {table_name}")
    params = await RequestParams.from_request(request)
    as_object = settings.return_as_object if asObject is None else asObject
    return await run_in_threadpool(_serve, table_name, params, as_object)
