# web/auth_routes.py
from __future__ import annotations

from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from services.microsoft_auth import MicrosoftAuthError
from services.sync_service import REMOTE_ERRORS
from services.sync_log import get_logger
from web.deps import get_auth, get_services, get_site, require_admin


router = APIRouter()
logger = get_logger("web")

STATE_COOKIE = "ms-oauth-state"


class LoginRequest(BaseModel):
    password: str = ""
    type: str = "guest"


@router.post("/api/auth")
def login(body: LoginRequest, request: Request):
    auth = get_auth(request)
    site = get_site(request)
    is_admin = body.type == "admin"
    expected = auth.admin_password if is_admin else auth.guest_password
    if not expected:
        logger.error("%s password is not configured", "ADMIN" if is_admin else "GUEST")
        return JSONResponse(
            {"success": False, "error": "Server configuration error"}, status_code=500
        )
    if body.password != expected:
        return JSONResponse({"success": False, "error": "Invalid password"}, status_code=401)

    response = JSONResponse({"success": True})
    response.set_cookie(
        auth.admin_cookie if is_admin else auth.guest_cookie,
        auth.cookie_value,
        max_age=auth.cookie_max_age_sec,
        httponly=True,
        secure=site.secure_cookies,
        samesite="lax",
        path="/",
        domain=site.cookie_domain,
    )
    return response


@router.delete("/api/auth")
def logout(request: Request):
    auth = get_auth(request)
    site = get_site(request)
    response = JSONResponse({"success": True})
    for name in (auth.guest_cookie, auth.admin_cookie):
        response.delete_cookie(name, path="/", domain=site.cookie_domain)
    return response


def _admin_redirect(request: Request, query: str) -> RedirectResponse:
    base = get_site(request).url.rstrip("/")
    return RedirectResponse(f"{base}/admin?tab=tasks&{query}", status_code=307)


@router.get("/api/auth/microsoft", dependencies=[Depends(require_admin)])
def microsoft_login(request: Request):
    services = get_services(request)
    try:
        url, state = services.oauth.authorization_url()
    except MicrosoftAuthError as exc:
        logger.error("Microsoft auth error: %s", exc)
        return _admin_redirect(request, "error=auth_failed")
    site = get_site(request)
    response = RedirectResponse(url, status_code=307)
    # The callback lands on the main host, so the cookie must span subdomains.
    response.set_cookie(
        STATE_COOKIE,
        state,
        max_age=600,
        httponly=True,
        secure=site.secure_cookies,
        samesite="lax",
        path="/",
        domain=site.cookie_domain,
    )
    return response


@router.get("/api/auth/microsoft/callback")
def microsoft_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
):
    if error:
        logger.error("Microsoft OAuth error: %s %s", error, error_description or "")
        return _admin_redirect(request, f"error={quote(error)}")
    if not code:
        return _admin_redirect(request, "error=no_code")
    expected_state = request.cookies.get(STATE_COOKIE)
    if not expected_state or state != expected_state:
        return _admin_redirect(request, "error=state_mismatch")

    services = get_services(request)
    try:
        services.sync.connect(code)
    except (MicrosoftAuthError, *REMOTE_ERRORS) as exc:
        logger.error("Microsoft callback error: %s", exc)
        return _admin_redirect(request, "error=callback_failed")

    response = _admin_redirect(request, "microsoft=connected")
    response.delete_cookie(STATE_COOKIE, path="/", domain=get_site(request).cookie_domain)
    return response
