from __future__ import annotations

import argparse
import json

import uvicorn

from storefront.core.config import get_settings
from storefront.core.logging import configure_logging
from storefront.persistence.migrations import backfill_delivery_status
from storefront.persistence.pg import init_db, session_scope
from storefront.settlement import build_settlement_engine


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Storefront order settlement CLI")
    top = parser.add_subparsers(dest="command", required=True)

    top.add_parser("init-db", help="Create database tables")
    serve = top.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    top.add_parser(
        "migrate-delivery-status",
        help="Backfill delivery status and history for orders stored without them",
    )

    payment_url = top.add_parser("payment-url", help="Print a redirect-gateway payment URL for an order")
    payment_url.add_argument("order_id")
    payment_url.add_argument("--ip", default="127.0.0.1", help="Caller IP reported to the gateway")

    return parser


def _serve(args: argparse.Namespace) -> int:
    settings = get_settings()
    uvicorn.run(
        "storefront.main:app",
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
        log_level=settings.log_level.lower(),
    )
    return 0


def _migrate_delivery_status() -> int:
    init_db()
    with session_scope() as session:
        migrated = backfill_delivery_status(session)
    print(json.dumps({"migrated": migrated}))
    return 0


def _payment_url(args: argparse.Namespace) -> int:
    with session_scope() as session:
        url = build_settlement_engine(session).create_gateway_payment(args.order_id, args.ip)
    print(url)
    return 0


def main() -> int:
    configure_logging()
    parser = _build_parser()
    args = parser.parse_args()

    if args.command == "init-db":
        init_db()
        return 0
    if args.command == "serve":
        return _serve(args)
    if args.command == "migrate-delivery-status":
        return _migrate_delivery_status()
    if args.command == "payment-url":
        return _payment_url(args)

    parser.error("unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
