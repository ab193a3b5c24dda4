"""
datatables-ssp: server-side processing for DataTables over SQLAlchemy queries.
"""
from datatables_ssp.columns import Column, ColumnKind, RowNumbering
from datatables_ssp.column_defs import ColumnRef, ColumnRegistry
from datatables_ssp.builder import QueryBuilder
from datatables_ssp.datatable import DataTable
from datatables_ssp.query import DT_ROW_CLASS, DT_ROW_ID, DataTableQuery, escape_html
from datatables_ssp.request import RequestParams, decode_brackets

__version__ = "0.1.0"

__all__ = [
    "Column",
    "ColumnKind",
    "ColumnRef",
    "ColumnRegistry",
    "DataTable",
    "DataTableQuery",
    "DT_ROW_CLASS",
    "DT_ROW_ID",
    "QueryBuilder",
    "RequestParams",
    "RowNumbering",
    "decode_brackets",
    "escape_html",
]
