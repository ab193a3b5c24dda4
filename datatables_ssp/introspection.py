from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple, Union

from sqlalchemy import inspect
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)


class SchemaIntrospector:
    """Field names of a table, read through SQLAlchemy's inspector.

    Results are cached per instance; a missing table raises
    ``sqlalchemy.exc.NoSuchTableError``.
    """

    def __init__(self, bind: Union[Engine, Connection]):
        self.bind = bind
        self._cache: Dict[Tuple[Optional[str], str], List[str]] = {}

    def field_names(self, table: str, schema: Optional[str] = None) -> List[str]:
        k = (schema, table)
        if k not in self._cache:
            columns = inspect(self.bind).get_columns(table, schema=schema)
            self._cache[k] = [c["name"] for c in columns]
            logger.debug("introspected %s: %s", table, self._cache[k])
        return list(self._cache[k])

    def primary_key(self, table: str, schema: Optional[str] = None) -> List[str]:
        pk = inspect(self.bind).get_pk_constraint(table, schema=schema)
        return list(pk.get("constrained_columns") or [])
