from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional


class ColumnKind(str, Enum):
    PLAIN = "plain"
    NUMBERING = "numbering"
    ADDED = "added"
    EDITED = "edited"
    FORMATTED = "formatted"
    PRIMARY = "primary"
    # Expanded from a joined table; `reference` names "<table>.<pk>"
    JOINED = "joined"


_NEEDS_CALLBACK = {ColumnKind.ADDED, ColumnKind.EDITED, ColumnKind.FORMATTED}
_SYNTHETIC = {ColumnKind.NUMBERING, ColumnKind.ADDED}


@dataclass(eq=False)
class Column:
    """One output column of a DataTable.

    `key` is what the query builder sees (``users.name``, ``COUNT(orders.id)``),
    `alias` is what the client sees (JSON key in object mode).
    """

    key: str
    alias: str
    kind: ColumnKind = ColumnKind.PLAIN
    searchable: Optional[bool] = None
    orderable: Optional[bool] = None
    callback: Optional[Callable[[Any], Any]] = None
    reference: Optional[str] = None

    def __post_init__(self) -> None:
        default = self.kind not in _SYNTHETIC
        if self.searchable is None:
            self.searchable = default
        if self.orderable is None:
            self.orderable = default
        if self.kind in _NEEDS_CALLBACK and self.callback is None:
            raise ValueError(f"column '{self.alias}' of kind {self.kind.value} requires a callback")

    def transform(self, kind: ColumnKind, callback: Callable[[Any], Any]) -> None:
        """Switch the column to an edited/formatted kind in place."""
        if kind not in _NEEDS_CALLBACK:
            raise ValueError(f"{kind.value} is not a transform kind")
        if callback is None:
            raise ValueError(f"column '{self.alias}' of kind {kind.value} requires a callback")
        self.kind = kind
        self.callback = callback

    @property
    def is_primary(self) -> bool:
        return self.kind is ColumnKind.PRIMARY


@dataclass
class RowNumbering:
    """Per-request row counter: first call yields start + 1."""

    start: int = 0
    _current: Optional[int] = field(default=None, repr=False)

    def next(self) -> int:
        self._current = (self.start + 1) if self._current is None else self._current + 1
        return self._current
