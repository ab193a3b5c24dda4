"""
Transport adapter for DataTables requests.

The DataTables client serialises nested parameters with bracket notation
(``columns[0][search][value]=foo``). This module decodes such pairs into nested
structures and exposes them through a GET/POST-aware accessor.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
import logging
import re

from starlette.requests import Request

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])*)$")
_PART_RE = re.compile(r"\[([^\[\]]*)\]")

# Parameters whose numeric-keyed members form ordered lists
LIST_PARAMS = ("columns", "order")


def _split_key(key: str) -> List[str]:
    m = _KEY_RE.match(key)
    if not m:
        return [key]
    return [m.group(1)] + _PART_RE.findall(m.group(2))


def _listify(value: Any) -> Any:
    if isinstance(value, dict) and value and all(str(k).isdigit() for k in value):
        return [value[k] for k in sorted(value, key=lambda k: int(k))]
    return value


def decode_brackets(pairs: Iterable[Tuple[str, Any]]) -> Dict[str, Any]:
    """
    Decode bracket-notation pairs into a nested dict.

    ``a[]`` appends to a list. Members of ``columns`` and ``order`` keyed by
    consecutive indexes become lists; other numeric keys (e.g. primary keys
    under ``data``) stay mapping keys.
    """
    out: Dict[str, Any] = {}
    for key, value in pairs:
        parts = _split_key(key)
        node: Any = out
        for i, part in enumerate(parts):
            last = i == len(parts) - 1
            nxt_is_list = (not last) and parts[i + 1] == ""
            if last:
                node[part] = value
            elif nxt_is_list:
                node = node.setdefault(part, [])
                node.append(value)
                break
            else:
                child = node.get(part)
                if not isinstance(child, dict):
                    child = {}
                    node[part] = child
                node = child
    for name in LIST_PARAMS:
        if name in out:
            out[name] = _listify(out[name])
    return out


class RequestParams:
    """
    Inbound parameters of one DataTables request.

    `get(name)` looks in the query string first, then the body. `get()` with no
    name returns the parameter set of the request method: the query string for
    GET, the body otherwise. Method names compare case-insensitively.
    """

    def __init__(self, method: str = "GET", query: Optional[Mapping[str, Any]] = None, body: Optional[Mapping[str, Any]] = None):
        self.method = (method or "GET").upper()
        self.query: Dict[str, Any] = dict(query or {})
        self.body: Dict[str, Any] = dict(body or {})

    def get(self, name: Optional[str] = None, default: Any = None) -> Any:
        if name is None:
            return dict(self.query if self.method == "GET" else self.body)
        if name in self.query:
            return self.query[name]
        return self.body.get(name, default)

    @classmethod
    def from_mapping(cls, params: Mapping[str, Any], method: str = "GET") -> "RequestParams":
        """Wrap parameters that are already decoded (or still in bracket notation)."""
        flat = any("[" in str(k) for k in params)
        data = decode_brackets(params.items()) if flat else dict(params)
        if (method or "GET").upper() == "GET":
            return cls(method, query=data)
        return cls(method, body=data)

    @classmethod
    async def from_request(cls, request: Request) -> "RequestParams":
        query = decode_brackets(request.query_params.multi_items())
        body: Dict[str, Any] = {}
        if request.method.upper() != "GET":
            ctype = (request.headers.get("content-type") or "").lower()
            if ctype.startswith("application/json"):
                payload = await request.json()
                body = payload if isinstance(payload, dict) else {}
            else:
                form = await request.form()
                body = decode_brackets(form.multi_items())
        logger.debug("%s params: query=%s body=%s", request.method, list(query), list(body))
        return cls(request.method, query=query, body=body)
