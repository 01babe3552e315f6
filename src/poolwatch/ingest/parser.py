from __future__ import annotations
from typing import Any, Optional


def _pool_fields(body: dict) -> Optional[dict]:
    result = body.get("result")
    if isinstance(result, list):
        entry = result[0] if result else None
    elif isinstance(result, dict) and isinstance(result.get("data"), list):
        entry = result["data"][0] if result["data"] else None
    else:
        return None
    if not isinstance(entry, dict):
        return None
    content = (entry.get("data") or {}).get("content") or {}
    fields = content.get("fields")
    return fields if isinstance(fields, dict) else None


def parse_sqrt_price(body: Any) -> Optional[str]:
    """
    Return the raw sqrt_price string from a sui_multiGetObjects reply; else None.

    Nodes disagree on the envelope:
      - {"result": [ {"data": {"content": {"fields": {...}}}} ]}          (common)
      - {"result": {"data": [ {"data": {"content": {"fields": {...}}}} ]}}
    The pool object's fields carry "sqrt_price" as a decimal string (u128).
    Integers are normalized to str so Decimal parsing never sees a float.
    """
    if not isinstance(body, dict):
        return None
    fields = _pool_fields(body)
    if fields is None:
        return None
    raw = fields.get("sqrt_price")
    if raw is None or isinstance(raw, (bool, float)):
        return None
    if isinstance(raw, int):
        return str(raw)
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return None


def rpc_error(body: Any) -> Optional[str]:
    """JSON-RPC error message, or a per-object error from the result entry."""
    if not isinstance(body, dict):
        return "non-object response"
    err = body.get("error")
    if isinstance(err, dict):
        return str(err.get("message") or err)
    result = body.get("result")
    if isinstance(result, list) and result and isinstance(result[0], dict) and result[0].get("error"):
        return str(result[0]["error"])
    return None
