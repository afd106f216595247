"""Request-scoped accessors for the services attached to the app."""
from __future__ import annotations

from fastapi import HTTPException, Request

from core.settings import AuthSettings, SiteSettings


def get_services(request: Request):
    return request.app.state.services


def get_auth(request: Request) -> AuthSettings:
    return request.app.state.auth


def get_site(request: Request) -> SiteSettings:
    return request.app.state.site


def require_admin(request: Request) -> None:
    auth = get_auth(request)
    if request.cookies.get(auth.admin_cookie) != auth.cookie_value:
        raise HTTPException(status_code=401, detail="Unauthorized")
