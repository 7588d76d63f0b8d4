"""
Refresh executor: calls one per-entity refresh endpoint and reports the outcome.

Every outcome, including network failures and garbage responses, comes back as
a RefreshResult. execute() never raises.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from refresh.league import LeagueConfig
from refresh.phase_endpoints import parse_endpoint

logger = logging.getLogger(__name__)

REFRESH_PATH = "/api/data/refresh"
ADMIN_KEY_HEADER = "X-Admin-Key"
# Signed marker on calls the orchestrator makes back into the refresh API
INTERNAL_CALL_HEADER = "X-Refresh-Internal"


@dataclass
class ForwardedAuth:
    """Credentials taken from the incoming admin request."""
    admin_key: Optional[str] = None
    cookie: Optional[str] = None
    internal_token: Optional[str] = None

    def headers(self) -> Dict[str, str]:
        # Admin key wins; the cookie is only forwarded without one
        if self.admin_key:
            return {ADMIN_KEY_HEADER: self.admin_key}
        headers = {}
        if self.cookie:
            headers["Cookie"] = self.cookie
        if self.internal_token:
            headers[INTERNAL_CALL_HEADER] = self.internal_token
        return headers


@dataclass
class RefreshResult:
    """Outcome of one per-entity refresh call."""
    endpoint: str
    success: bool
    duration: int                      # Milliseconds
    error: Optional[str] = None
    details: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "endpoint": self.endpoint,
            "success": self.success,
            "duration": self.duration,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.details is not None:
            data["details"] = self.details
        return data


def _elapsed_ms(start: float) -> int:
    return int(round((time.perf_counter() - start) * 1000))


def _interpret_response(response: httpx.Response):
    """
    Decide success from status and body.

    Returns:
        (success, error, details); raises ValueError for a non-JSON 2xx body
    """
    if not response.is_success:
        try:
            body = response.json()
        except ValueError:
            body = None
        error = body.get("error") if isinstance(body, dict) else None
        return False, str(error) if error else f"HTTP {response.status_code}", body

    body = response.json()
    flag = body.get("success") if isinstance(body, dict) else None
    if flag is False:
        error = body.get("error") or "Refresh reported failure"
        return False, str(error), body

    return True, None, body


class RefreshExecutor:
    """POSTs to per-entity refresh endpoints on behalf of the orchestrator."""

    def __init__(self, http_client: httpx.AsyncClient, base_url: str):
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")

    def build_url(self, descriptor: str, league: LeagueConfig) -> str:
        """
        Full URL for an endpoint descriptor.

        The league's internal id replaces any league_id already in the descriptor.
        """
        name, params = parse_endpoint(descriptor)
        params.pop("league_id", None)
        if league.id:
            params["league_id"] = league.id
        query = urlencode(params)
        url = f"{self.base_url}{REFRESH_PATH}/{name}"
        return f"{url}?{query}" if query else url

    async def execute(
        self,
        descriptor: str,
        league: LeagueConfig,
        auth: Optional[ForwardedAuth] = None,
    ) -> RefreshResult:
        """
        Call one refresh endpoint.

        Args:
            descriptor: Endpoint descriptor, e.g. "fixtures?mode=live"
            league: League the refresh is for
            auth: Credentials to forward

        Returns:
            RefreshResult (never raises)
        """
        headers = (auth or ForwardedAuth()).headers()
        headers["Accept"] = "application/json"
        start = time.perf_counter()

        try:
            url = self.build_url(descriptor, league)
            response = await self.http_client.post(url, headers=headers)
            success, error, details = _interpret_response(response)
        except Exception as e:
            duration = _elapsed_ms(start)
            logger.error("Refresh call failed", extra={
                "endpoint": descriptor,
                "league_id": league.id,
                "duration_ms": duration,
                "error": str(e) or type(e).__name__
            })
            return RefreshResult(
                endpoint=descriptor,
                success=False,
                duration=duration,
                error=str(e) or type(e).__name__,
            )

        duration = _elapsed_ms(start)
        if success:
            logger.info("Refresh call succeeded", extra={
                "endpoint": descriptor,
                "league_id": league.id,
                "duration_ms": duration
            })
        else:
            logger.warning("Refresh call reported failure", extra={
                "endpoint": descriptor,
                "league_id": league.id,
                "status_code": response.status_code,
                "duration_ms": duration,
                "error": error
            })

        return RefreshResult(
            endpoint=descriptor,
            success=success,
            duration=duration,
            error=error,
            details=details,
        )
