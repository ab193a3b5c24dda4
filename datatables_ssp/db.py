from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple
import logging
import threading

from sqlalchemy import MetaData, Table, create_engine, inspect, text
from sqlalchemy.engine import Engine, make_url

from .config import settings

logger = logging.getLogger(__name__)

_ENGINE_CACHE: Dict[str, Engine] = {}
_TABLE_CACHE: Dict[Tuple[int, Optional[str], str], Table] = {}
_lock = threading.Lock()


def get_engine_from_dsn(dsn: str) -> Engine:
    """Create (and cache) an engine from a SQLAlchemy DSN.

    Normalizes MySQL DSNs to pymysql. SQLite gets cross-thread connections
    (FastAPI runs sync work in a thread pool) and its data directory created.
    """
    d = (dsn or "").strip()
    low = d.lower()
    if low.startswith("mysql://"):
        d = "mysql+pymysql://" + d[len("mysql://"):]

    with _lock:
        eng = _ENGINE_CACHE.get(d)
        if eng is not None:
            return eng

        kwargs: dict = {"pool_pre_ping": True}
        if low.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            db_path = make_url(d).database
            if db_path and db_path != ":memory:":
                Path(db_path).resolve().parent.mkdir(parents=True, exist_ok=True)
        else:
            kwargs.update({"pool_size": 5, "max_overflow": 20, "pool_recycle": 1800})

        eng = create_engine(d, **kwargs)
        _ENGINE_CACHE[d] = eng
        logger.info("created engine for %s", eng.url.render_as_string(hide_password=True))
        return eng


def get_engine() -> Engine:
    return get_engine_from_dsn(settings.database_url)


def test_engine_connection(engine: Engine) -> tuple[bool, Optional[str]]:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True, None
    except Exception as e:  # pragma: no cover - basic smoke test only
        return False, str(e)


def list_tables(engine: Engine, schema: Optional[str] = None) -> List[str]:
    insp = inspect(engine)
    return sorted(insp.get_table_names(schema=schema) + insp.get_view_names(schema=schema))


def reflect_table(engine: Engine, name: str, schema: Optional[str] = None) -> Table:
    """Reflect (and cache) a table; raises NoSuchTableError when missing."""
    k = (id(engine), schema, name)
    with _lock:
        tbl = _TABLE_CACHE.get(k)
        if tbl is None:
            tbl = Table(name, MetaData(), schema=schema, autoload_with=engine)
            _TABLE_CACHE[k] = tbl
        return tbl


def clear_caches() -> None:
    with _lock:
        for eng in _ENGINE_CACHE.values():
            eng.dispose()
        _ENGINE_CACHE.clear()
        _TABLE_CACHE.clear()
