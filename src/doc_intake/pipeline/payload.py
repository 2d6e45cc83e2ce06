"""Trigger payload coercion."""

from __future__ import annotations

from typing import Any


__all__ = ["coerce_payload"]


def coerce_payload(payload: Any) -> bytes:
    """Convert a trigger payload to bytes.

    Bytes-like values are copied, text is UTF-8 encoded, and anything else
    is passed through ``bytes()`` (buffers, iterables of ints).

    Raises:
        TypeError: If the payload cannot be represented as bytes.
    """
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, (bytearray, memoryview)):
        return bytes(payload)
    if isinstance(payload, str):
        return payload.encode("utf-8")
    if payload is None or isinstance(payload, (int, float, bool)):
        msg = f"Cannot convert {type(payload).__name__} payload to bytes"
        raise TypeError(msg)
    try:
        return bytes(payload)
    except (TypeError, ValueError) as exc:
        msg = f"Cannot convert {type(payload).__name__} payload to bytes"
        raise TypeError(msg) from exc
