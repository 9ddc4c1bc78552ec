from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Mapping, Union
from urllib.parse import quote

QueryValue = Union[str, int, Decimal, datetime]

# Characters left unescaped by the gateway's reference encoder.
_UNRESERVED_EXTRA = "!*'()"
GATEWAY_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


class CanonicalError(ValueError):
    pass


def format_gateway_timestamp(value: datetime) -> str:
    return value.strftime(GATEWAY_TIMESTAMP_FORMAT)


def _text(value: QueryValue) -> str:
    if isinstance(value, bool):
        raise CanonicalError("boolean values are not allowed in a signed query")
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, datetime):
        return format_gateway_timestamp(value)
    if isinstance(value, float):
        raise CanonicalError("float values are not allowed in a signed query")
    raise CanonicalError(f"unsupported query value type: {type(value)!r}")


def percent_encode(text: str) -> str:
    return quote(text, safe=_UNRESERVED_EXTRA, encoding="utf-8")


def canonical_query(params: Mapping[str, QueryValue]) -> bytes:
    """Sorted ``key=value`` pairs joined by ``&``; spaces in values become ``+``."""
    encoded = {percent_encode(str(key)): value for key, value in params.items()}
    pairs = []
    for key in sorted(encoded):
        value = percent_encode(_text(encoded[key])).replace("%20", "+")
        pairs.append(f"{key}={value}")
    return "&".join(pairs).encode("ascii")
