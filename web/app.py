# web/app.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI

from core.settings import APP_NAME, AUTH, SITE, AuthSettings, SiteSettings
from services.microsoft_auth import MicrosoftOAuth
from services.sync_service import TaskSyncService
from services.tasks import TaskService
from services.webhook import WebhookReceiver
from web.access import AccessMiddleware
from web.auth_routes import router as auth_router
from web.task_routes import router as task_router
from web.webhook_routes import router as webhook_router


@dataclass
class AppServices:
    tasks: TaskService
    sync: TaskSyncService
    webhook: WebhookReceiver
    oauth: MicrosoftOAuth

    @classmethod
    def default(cls) -> "AppServices":
        tasks = TaskService()
        sync = TaskSyncService(tasks)
        webhook = WebhookReceiver(tasks, sync.tokens)
        return cls(tasks=tasks, sync=sync, webhook=webhook, oauth=sync.oauth)


def create_app(
    services: Optional[AppServices] = None,
    *,
    auth: AuthSettings = AUTH,
    site: SiteSettings = SITE,
) -> FastAPI:
    app = FastAPI(title=APP_NAME)
    app.state.services = services or AppServices.default()
    app.state.auth = auth
    app.state.site = site
    app.add_middleware(AccessMiddleware, auth=auth, site=site)

    app.include_router(auth_router)
    app.include_router(task_router)
    app.include_router(webhook_router)

    @app.get("/health")
    def health():
        return {"ok": True}

    return app


__all__ = ["AppServices", "create_app"]
