from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import pytest
import sqlalchemy as sa

metadata = sa.MetaData()

users = sa.Table(
    "users",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("name", sa.String(50), nullable=False),
    sa.Column("email", sa.String(100), unique=True),
)

orders = sa.Table(
    "orders",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id")),
    sa.Column("amount", sa.Integer),
)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test.sqlite"


@pytest.fixture
def engine(db_path):
    eng = sa.create_engine(f"sqlite:///{db_path}")
    metadata.create_all(eng)
    with eng.begin() as conn:
        conn.execute(users.insert(), [
            {"id": 1, "name": "Alice", "email": "alice@example.com"},
            {"id": 2, "name": "Bob", "email": "bob@example.com"},
            {"id": 3, "name": "Carol", "email": "carol@example.com"},
        ])
        conn.execute(orders.insert(), [
            {"id": 1, "user_id": 1, "amount": 10},
            {"id": 2, "user_id": 1, "amount": 20},
            {"id": 3, "user_id": 2, "amount": 5},
        ])
    yield eng
    eng.dispose()


@pytest.fixture
def make_draw() -> Callable[..., Dict[str, Any]]:
    """Build a decoded draw request; `columns` are the `data` values sent by the client."""

    def _make(
        columns: List[Optional[str]],
        draw: int = 1,
        start: int = 0,
        length: int = 10,
        search: str = "",
        order: Optional[List[tuple]] = None,
        column_search: Optional[Dict[int, str]] = None,
        names: Optional[Dict[int, str]] = None,
    ) -> Dict[str, Any]:
        column_search = column_search or {}
        names = names or {}
        return {
            "draw": str(draw),
            "start": str(start),
            "length": str(length),
            "search": {"value": search, "regex": "false"},
            "order": [{"column": str(c), "dir": d} for c, d in (order or [])],
            "columns": [
                {
                    "data": data,
                    "name": names.get(i, ""),
                    "searchable": "true",
                    "orderable": "true",
                    "search": {"value": column_search.get(i, ""), "regex": "false"},
                }
                for i, data in enumerate(columns)
            ],
        }

    return _make
