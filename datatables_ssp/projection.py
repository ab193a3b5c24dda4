"""
SQLGlot-based introspection of a SELECT statement's projection list.
Used to derive DataTable columns from an arbitrary base query.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple
import logging

import sqlglot
from sqlglot import exp

logger = logging.getLogger(__name__)


class ExpressionKind(str, Enum):
    COLUMN = "column"
    FUNCTION = "function"
    OTHER = "other"


@dataclass
class ProjectedExpression:
    """One entry of a SELECT list.

    `parts` are the unquoted qualifying parts (``("users", "name")``); for a
    wildcard they hold only the table qualifier, if any. `expression` is the
    canonical rendered SQL of the entry without its alias.
    """

    kind: ExpressionKind
    expression: str
    parts: Tuple[str, ...] = ()
    alias: Optional[str] = None
    is_star: bool = False

    @property
    def name(self) -> str:
        return self.parts[-1] if self.parts else self.expression


@dataclass
class TableReference:
    name: str
    alias: Optional[str] = None
    schema: Optional[str] = None

    @property
    def qualifier(self) -> str:
        return self.alias or self.name


@dataclass
class ParsedSelect:
    projection: List[ProjectedExpression] = field(default_factory=list)
    tables: List[TableReference] = field(default_factory=list)

    def resolve_table(self, qualifier: str) -> TableReference:
        """Map a qualifier (alias or table name) back to the referenced table."""
        for table in self.tables:
            if qualifier in (table.alias, table.name):
                return table
        return TableReference(name=qualifier)


class ProjectionParser:
    """
    Parse compiled SELECT statements with SQLGlot.

    Function calls are rendered by SQLGlot's generator, so nested calls come
    out recursively with the same ``", "`` argument delimiter, e.g.
    ``CONCAT(UPPER(users.first), ' ', users.last)``.
    """

    def __init__(self, dialect: str = "sqlite"):
        self.dialect = self._normalize_dialect(dialect)

    def _normalize_dialect(self, dialect: str) -> str:
        """Map SQLAlchemy dialect names onto SQLGlot's."""
        mapping = {
            "duckdb": "duckdb",
            "postgres": "postgres",
            "postgresql": "postgres",
            "mysql": "mysql",
            "mariadb": "mysql",
            "mssql": "tsql",
            "sqlserver": "tsql",
            "oracle": "oracle",
            "sqlite": "sqlite",
        }
        return mapping.get((dialect or "").lower(), "sqlite")

    def parse(self, sql: str) -> ParsedSelect:
        """
        Parse a SELECT statement into its projection list and source tables.

        Raises:
            sqlglot.errors.ParseError: the statement is not valid SQL
            ValueError: the statement is not a plain SELECT
        """
        tree = sqlglot.parse_one(sql, read=self.dialect)
        if not isinstance(tree, exp.Select):
            raise ValueError(f"expected a SELECT statement, got {type(tree).__name__}")

        parsed = ParsedSelect()
        for table in tree.find_all(exp.Table):
            if table.parent_select is not tree or not table.name:
                continue
            parsed.tables.append(
                TableReference(name=table.name, alias=table.alias or None, schema=table.db or None)
            )

        for node in tree.expressions:
            parsed.projection.append(self._project(node))

        logger.debug("parsed %d projected expressions from %s", len(parsed.projection), sql)
        return parsed

    def _project(self, node: exp.Expression) -> ProjectedExpression:
        alias = None
        if isinstance(node, exp.Alias):
            alias = node.alias
            node = node.this

        if isinstance(node, exp.Star):
            return ProjectedExpression(ExpressionKind.COLUMN, "*", (), alias, is_star=True)

        if isinstance(node, exp.Column):
            parts = tuple(p.name for p in node.parts)
            if node.is_star:
                return ProjectedExpression(ExpressionKind.COLUMN, node.sql(dialect=self.dialect), parts[:-1], alias, is_star=True)
            return ProjectedExpression(ExpressionKind.COLUMN, node.sql(dialect=self.dialect), parts, alias)

        if isinstance(node, exp.Func):
            return ProjectedExpression(ExpressionKind.FUNCTION, self.render(node), (), alias)

        return ProjectedExpression(ExpressionKind.OTHER, node.sql(dialect=self.dialect), (), alias)

    def render(self, node: exp.Expression) -> str:
        return node.sql(dialect=self.dialect)

    def column_sql(self, field_name: str, table: Optional[str] = None) -> str:
        """Render a (possibly qualified) column reference, quoting only when needed."""
        return exp.column(field_name, table=table).sql(dialect=self.dialect)
