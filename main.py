# main.py
from __future__ import annotations

import argparse
import json
from typing import Optional, Sequence

from storage.db import init_db


def _serve(args) -> int:
    import uvicorn

    from web import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port)
    return 0


def _sync(args) -> int:
    from services.sync_service import TaskSyncService

    result = TaskSyncService().sync()
    print(json.dumps(result.to_dict(), indent=2))
    if not result.connected:
        print("[sync] Microsoft account is not connected")
        return 1
    return 0 if not result.errors else 2


def _webhook(args) -> int:
    from services.sync_service import TaskSyncService

    subscription = TaskSyncService().setup_webhook(args.url)
    if subscription is None:
        print("[webhook] Microsoft account is not connected")
        return 1
    print(f"[webhook] {subscription['id']} valid until {subscription['expirationDateTime']}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Wedding planner task service.")
    sub = ap.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(func=_serve)

    sync = sub.add_parser("sync", help="Run one sync pass with Microsoft To Do")
    sync.set_defaults(func=_sync)

    webhook = sub.add_parser("webhook", help="Create or renew the change subscription")
    webhook.add_argument("--url", default=None, help="Notification URL (default: SITE_URL + webhook path)")
    webhook.set_defaults(func=_webhook)

    init = sub.add_parser("init-db", help="Create database tables")
    init.set_defaults(func=lambda _args: 0)

    args = ap.parse_args(argv)
    init_db()
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
