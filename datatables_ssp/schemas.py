from __future__ import annotations

from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Literal, Optional, Union


# --- Draw (read) requests ---
class SearchRequest(BaseModel):
    value: str = ""
    regex: bool = False

    @field_validator("value", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else str(v)


class ColumnRequest(BaseModel):
    data: Optional[str] = Field(default=None, description="Column index (array mode) or property name (object mode)")
    name: Optional[str] = None
    searchable: bool = True
    orderable: bool = True
    search: SearchRequest = Field(default_factory=SearchRequest)

    @field_validator("data", "name", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        return None if v is None else str(v)


class OrderRequest(BaseModel):
    column: int
    dir: str = "asc"

    @property
    def direction(self) -> str:
        return "desc" if (self.dir or "").lower() == "desc" else "asc"


class DrawRequest(BaseModel):
    draw: int
    start: int = 0
    length: Optional[int] = Field(default=None, description="-1 or omitted means all rows")
    order: List[OrderRequest] = Field(default_factory=list)
    search: SearchRequest = Field(default_factory=SearchRequest)
    columns: List[ColumnRequest] = Field(default_factory=list)

    @field_validator("start", mode="before")
    @classmethod
    def _blank_start(cls, v: Any) -> Any:
        return 0 if v in (None, "") else v

    @field_validator("length", mode="before")
    @classmethod
    def _blank_length(cls, v: Any) -> Any:
        return None if v in (None, "") else v

    @property
    def paged(self) -> bool:
        return self.length is not None and self.length != -1


# --- Action (write) requests ---
class ActionRequest(BaseModel):
    action: Literal["create", "edit", "remove"]
    data: Union[Dict[str, Dict[str, Any]], List[Dict[str, Any]]] = Field(default_factory=dict)

    def rows(self) -> List[Dict[str, Any]]:
        """Payloads of a create request, in submission order."""
        if isinstance(self.data, dict):
            return list(self.data.values())
        return list(self.data)

    def keyed_rows(self) -> Dict[str, Dict[str, Any]]:
        """Payloads of an edit/remove request keyed by primary-key value."""
        if isinstance(self.data, dict):
            return dict(self.data)
        return {str(i): row for i, row in enumerate(self.data)}


# --- Responses ---
class DrawResponse(BaseModel):
    draw: int
    recordsTotal: int
    recordsFiltered: int
    data: List[Any]


class ActionResponse(BaseModel):
    data: List[Dict[str, Any]]


class ErrorResponse(BaseModel):
    data: List[Any] = Field(default_factory=list)
    error: str


class HealthResponse(BaseModel):
    status: str = "ok"
    app: str
    env: str


class TestConnectionRequest(BaseModel):
    dsn: Optional[str] = None


class TestConnectionResponse(BaseModel):
    ok: bool
    error: Optional[str] = None
