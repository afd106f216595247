"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return the data directory for ``app_name``.

    ``WEDDING_DATA_DIR`` wins when set; otherwise an OS-specific user data
    directory is used.
    """

    platform_id = (platform or sys.platform).lower()
    environ = dict(env if env is not None else os.environ)
    override = environ.get("WEDDING_DATA_DIR")
    if override:
        return Path(override).expanduser()

    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = home_dir / "Library" / "Application Support"
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return base.expanduser() / sanitized


def _env(key: str, default: str = "") -> str:
    return os.environ.get(key, default)


APP_NAME = "WeddingPlanner"


DATA_DIR = get_default_data_dir(APP_NAME)
LOG_DIR = DATA_DIR / "logs"

for _dir in (DATA_DIR, LOG_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


DB_PATH = DATA_DIR / "app.db"
SYNC_LOG_PATH = LOG_DIR / "sync.log"


@dataclass(frozen=True)
class SiteSettings:
    url: str = _env("SITE_URL", "http://localhost:8000")
    admin_host_prefix: str = "admin."
    cookie_domain: Optional[str] = _env("COOKIE_DOMAIN") or None
    secure_cookies: bool = _env("SECURE_COOKIES", "0") == "1"


SITE = SiteSettings()


@dataclass(frozen=True)
class AuthSettings:
    admin_password: Optional[str] = _env("ADMIN_PASSWORD") or None
    guest_password: Optional[str] = _env("GUEST_PASSWORD") or _env("SITE_PASSWORD") or None
    admin_cookie: str = "wedding-admin-auth"
    guest_cookie: str = "wedding-guest-auth"
    cookie_value: str = "authenticated"
    cookie_max_age_sec: int = 60 * 60 * 24 * 30


AUTH = AuthSettings()


@dataclass(frozen=True)
class MicrosoftSyncSettings:
    client_id: str = _env("MICROSOFT_CLIENT_ID")
    client_secret: str = _env("MICROSOFT_CLIENT_SECRET")
    redirect_uri: str = _env(
        "MICROSOFT_REDIRECT_URI",
        f"{SITE.url.rstrip('/')}/api/auth/microsoft/callback",
    )
    authority: str = "https://login.microsoftonline.com/common/oauth2/v2.0"
    graph_base_url: str = "https://graph.microsoft.com/v1.0"
    scopes: tuple[str, ...] = ("Tasks.ReadWrite", "User.Read", "offline_access")
    tasklist_name: str = "Wedding Planning"
    webhook_secret: str = _env("MICROSOFT_WEBHOOK_SECRET", "weddingPlannerSecret")
    webhook_path: str = "/api/webhooks/microsoft"
    # To Do subscriptions are capped at 4230 minutes by Graph.
    subscription_minutes: int = 4230
    token_refresh_margin_sec: int = 5 * 60
    request_timeout_sec: int = 30

    @property
    def authorize_url(self) -> str:
        return f"{self.authority}/authorize"

    @property
    def token_url(self) -> str:
        return f"{self.authority}/token"

    @property
    def webhook_url(self) -> str:
        return f"{SITE.url.rstrip('/')}{self.webhook_path}"


MICROSOFT = MicrosoftSyncSettings()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "LOG_DIR",
    "DB_PATH",
    "SYNC_LOG_PATH",
    "SITE",
    "AUTH",
    "MICROSOFT",
    "get_default_data_dir",
]
