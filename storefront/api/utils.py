from __future__ import annotations

from datetime import datetime, timezone
from urllib.parse import urlencode

from fastapi import Request


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "127.0.0.1"


def frontend_order_url(frontend_url: str, order_id: str, success: bool, message: str) -> str:
    query = urlencode({"success": "true" if success else "false", "message": message})
    return f"{frontend_url.rstrip('/')}/order/{order_id}?{query}"
