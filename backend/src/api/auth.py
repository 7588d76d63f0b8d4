"""
Admin authentication for the refresh routes.

Two credentials are accepted: the X-Admin-Key header matching ADMIN_API_KEY
(for automation), or the signed football_auth session cookie of an admin user
(for the web app). Issuing cookies is the login flow's job; this module only
verifies them.
"""

import base64
import hashlib
import hmac
import json
import logging
import secrets
import time
from typing import Any, Dict, Optional
from urllib.parse import unquote

from fastapi import Request

from config import Config
from refresh.executor import ADMIN_KEY_HEADER, INTERNAL_CALL_HEADER, ForwardedAuth

logger = logging.getLogger(__name__)

AUTH_COOKIE_NAME = "football_auth"
# Internal-call tokens outlive the longest phase run
INTERNAL_TOKEN_MAX_AGE = 3600


class AdminAuthError(Exception):
    """Request carries no valid admin credential."""
    pass


def _signature(value: str, secret: str) -> str:
    digest = hmac.new(secret.encode(), value.encode(), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode()


def sign_auth_cookie(data: Dict[str, Any], secret: str) -> str:
    """Serialize and sign session data as '<json>.<signature>'."""
    value = json.dumps(data, separators=(",", ":"))
    return f"{value}.{_signature(value, secret)}"


def verify_auth_cookie(cookie: Optional[str], secret: str) -> Optional[Dict[str, Any]]:
    """
    Verify a signed session cookie.

    Returns:
        The session data, or None if the cookie is missing, unsigned,
        tampered with, or not a JSON object
    """
    if not cookie or not secret:
        return None

    cookie = unquote(cookie)
    value, dot, signature = cookie.rpartition(".")
    if not dot or not value:
        return None

    if not secrets.compare_digest(signature, _signature(value, secret)):
        return None

    try:
        data = json.loads(value)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def sign_internal_token(secret: str, now: Optional[float] = None) -> str:
    """Token marking a call as made by this server's own orchestrator: '<issued>.<signature>'."""
    issued = str(int(time.time() if now is None else now))
    return f"{issued}.{_signature('internal:' + issued, secret)}"


def is_internal_call(request: Request, config: Config, now: Optional[float] = None) -> bool:
    """True when the request carries a fresh internal-call token signed with COOKIE_SECRET."""
    token = request.headers.get(INTERNAL_CALL_HEADER)
    if not token or not config.cookie_secret:
        return False

    issued, dot, signature = token.partition(".")
    if not dot or not issued.isdigit():
        return False
    if not secrets.compare_digest(signature, _signature("internal:" + issued, config.cookie_secret)):
        return False

    age = (time.time() if now is None else now) - int(issued)
    return abs(age) <= INTERNAL_TOKEN_MAX_AGE


def has_admin_key(request: Request, config: Config) -> bool:
    """True when the request carries the configured admin API key."""
    presented = request.headers.get(ADMIN_KEY_HEADER)
    if not presented or not config.admin_api_key:
        return False
    return secrets.compare_digest(presented.encode(), config.admin_api_key.encode())


def is_admin(request: Request, config: Config) -> bool:
    """Admin key first, then the session cookie."""
    if has_admin_key(request, config):
        return True

    session = verify_auth_cookie(request.cookies.get(AUTH_COOKIE_NAME), config.cookie_secret)
    return bool(session) and session.get("isAdmin") is True


def require_admin(request: Request, config: Config) -> ForwardedAuth:
    """
    Check admin access and capture the credentials to forward downstream.

    Raises:
        AdminAuthError: If the request is not from an admin
    """
    if not is_admin(request, config):
        logger.warning("Rejected unauthenticated refresh request", extra={
            "path": request.url.path
        })
        raise AdminAuthError("Unauthorized")

    if has_admin_key(request, config):
        return ForwardedAuth(admin_key=request.headers.get(ADMIN_KEY_HEADER))
    return ForwardedAuth(
        cookie=request.headers.get("cookie"),
        internal_token=sign_internal_token(config.cookie_secret),
    )
