"""Cookie gate and admin-subdomain routing."""
from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from core.settings import AuthSettings, SiteSettings


PUBLIC_PREFIXES = ("/api/auth", "/api/webhooks", "/health")
ADMIN_PREFIXES = ("/admin", "/api/admin")


def _host(request: Request) -> str:
    return (request.headers.get("host") or "").lower()


class AccessMiddleware(BaseHTTPMiddleware):
    """Guest pages need the guest (or admin) cookie, admin paths the admin cookie.

    Every path on the ``admin.`` host is an admin path; non-API paths there are
    served from under ``/admin``.
    """

    def __init__(self, app, *, auth: AuthSettings, site: SiteSettings) -> None:
        super().__init__(app)
        self.auth = auth
        self.site = site

    def _has_cookie(self, request: Request, name: str) -> bool:
        return request.cookies.get(name) == self.auth.cookie_value

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        on_admin_host = _host(request).startswith(self.site.admin_host_prefix)
        is_admin = self._has_cookie(request, self.auth.admin_cookie)

        if on_admin_host:
            # The OAuth callback and webhooks must stay reachable from the admin host.
            if not path.startswith(PUBLIC_PREFIXES) and not is_admin:
                return JSONResponse({"error": "Unauthorized"}, status_code=401)
            if not path.startswith("/api") and not path.startswith("/admin"):
                rewritten = "/admin" if path in ("", "/") else f"/admin{path}"
                request.scope["path"] = rewritten
                request.scope["raw_path"] = rewritten.encode("utf-8")
            return await call_next(request)

        if path.startswith(PUBLIC_PREFIXES):
            return await call_next(request)

        if path.startswith(ADMIN_PREFIXES):
            if not is_admin:
                return JSONResponse({"error": "Unauthorized"}, status_code=401)
            return await call_next(request)

        if not (is_admin or self._has_cookie(request, self.auth.guest_cookie)):
            return JSONResponse({"error": "Unauthorized"}, status_code=401)
        return await call_next(request)


__all__ = ["AccessMiddleware", "ADMIN_PREFIXES", "PUBLIC_PREFIXES"]
