"""
API-Football client with rate limiting, retry logic, and error handling.

Thin adapter over the v3 API: only the calls the bundled refreshers need.
"""

import asyncio
import logging
import random
import time
from typing import Any, Dict, List, Optional

import httpx
from asyncio_throttle import Throttler

from config import Config

logger = logging.getLogger(__name__)


class FootballAPIError(Exception):
    """Base exception for API-Football errors."""
    pass


class FootballAPIRateLimitError(FootballAPIError):
    """Raised when rate limit is exceeded."""
    pass


class FootballAPINonRetryableError(FootballAPIError):
    """Raised for non-retryable errors (4xx except 429, or an errors payload)."""
    pass


class FootballAPIClient:
    """Client for interacting with API-Football."""

    def __init__(self, config: Config, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.base_url = config.football_api_base_url
        self.max_retries = config.max_retries
        self.retry_backoff_base = config.retry_backoff_base
        self.max_retry_delay = config.max_retry_delay

        self.throttler = Throttler(
            rate_limit=config.max_requests_per_minute,
            period=60.0
        )
        self.min_interval = config.min_request_interval
        self.last_request_time = 0.0

        self.client = client or httpx.AsyncClient(
            timeout=30.0,
            follow_redirects=True,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "x-apisports-key": self.config.football_api_key,
            "Accept": "application/json",
        }

    async def _wait_for_rate_limit(self):
        """Wait to respect rate limiting."""
        await self.throttler.acquire()

        # Also enforce minimum interval between requests
        time_since_last = time.time() - self.last_request_time
        if time_since_last < self.min_interval:
            wait_time = self.min_interval - time_since_last
            # Add jitter (±25%)
            jitter = wait_time * 0.25 * (random.random() * 2 - 1)
            await asyncio.sleep(wait_time + jitter)

        self.last_request_time = time.time()

    def _is_retryable_error(self, status_code: int) -> bool:
        """Retryable: 429, 500, 502, 503, 504."""
        return status_code in {429, 500, 502, 503, 504}

    def _backoff(self, attempt: int) -> float:
        backoff = min(
            self.retry_backoff_base * (2 ** attempt),
            self.max_retry_delay
        )
        jitter = backoff * 0.25 * (random.random() * 2 - 1)
        return backoff + jitter

    async def _request_with_retry(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """
        GET an endpoint with retry logic.

        Args:
            endpoint: API endpoint path, e.g. "/fixtures"
            params: Query parameters

        Returns:
            httpx.Response object

        Raises:
            FootballAPIRateLimitError: If still rate limited after retries
            FootballAPINonRetryableError: If non-retryable error
            FootballAPIError: For other errors after retries exhausted
        """
        url = f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"
        last_exception = None

        for attempt in range(self.max_retries + 1):
            try:
                await self._wait_for_rate_limit()
                response = await self.client.get(url, params=params, headers=self._headers())

                if response.is_success:
                    return response

                status_code = response.status_code

                if status_code == 429:
                    retry_after = int(response.headers.get("Retry-After", 60))
                    logger.warning(
                        "Rate limited by API-Football",
                        extra={
                            "endpoint": endpoint,
                            "retry_after": retry_after,
                            "attempt": attempt + 1
                        }
                    )
                    if attempt < self.max_retries:
                        await asyncio.sleep(retry_after)
                        continue
                    raise FootballAPIRateLimitError(
                        f"Rate limited after {self.max_retries} retries"
                    )

                if not self._is_retryable_error(status_code):
                    error_text = response.text[:500]
                    logger.error(
                        "Non-retryable error from API-Football",
                        extra={
                            "endpoint": endpoint,
                            "status_code": status_code,
                            "error": error_text
                        }
                    )
                    raise FootballAPINonRetryableError(
                        f"Non-retryable error {status_code}: {error_text}"
                    )

                if attempt < self.max_retries:
                    wait_time = self._backoff(attempt)
                    logger.warning(
                        "Retryable error from API-Football, retrying",
                        extra={
                            "endpoint": endpoint,
                            "status_code": status_code,
                            "attempt": attempt + 1,
                            "wait_time": wait_time
                        }
                    )
                    await asyncio.sleep(wait_time)
                    continue

                raise FootballAPIError(
                    f"Request failed after {self.max_retries} retries: "
                    f"{status_code} - {response.text[:500]}"
                )

            except (httpx.TimeoutException, httpx.NetworkError) as e:
                last_exception = e
                if attempt < self.max_retries:
                    wait_time = self._backoff(attempt)
                    logger.warning(
                        "Transport error from API-Football, retrying",
                        extra={
                            "endpoint": endpoint,
                            "attempt": attempt + 1,
                            "wait_time": wait_time,
                            "error": str(e)
                        }
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise FootballAPIError(
                    f"Request to {endpoint} failed after {self.max_retries} retries: {e}"
                ) from e

        raise FootballAPIError("Request failed") from last_exception

    async def _get_response_list(self, endpoint: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        """GET an endpoint and return its "response" array."""
        response = await self._request_with_retry(endpoint, params=params)
        try:
            data = response.json()
        except ValueError as e:
            logger.error("JSON parse failed", extra={
                "endpoint": endpoint,
                "status_code": response.status_code,
                "response_preview": response.text[:500]
            })
            raise FootballAPIError(f"Failed to parse JSON: {e}") from e

        # API-Football reports quota and key problems with a 200 and an errors payload
        errors = data.get("errors")
        if errors:
            logger.error("API-Football returned errors", extra={"endpoint": endpoint, "errors": errors})
            raise FootballAPINonRetryableError(f"API-Football error: {errors}")

        return data.get("response") or []

    async def get_fixtures(self, league: int, season: int, **params: Any) -> List[Dict[str, Any]]:
        """
        Get fixtures for a league and season.

        Args:
            league: API-Football league id
            season: Season year
            **params: Extra filters passed through (from/to, next, last, live)

        Returns:
            List of fixture objects
        """
        query = {"league": league, "season": season}
        query.update({k: v for k, v in params.items() if v is not None})
        fixtures = await self._get_response_list("/fixtures", query)

        logger.debug("Fetched fixtures", extra={
            "league": league,
            "fixtures_count": len(fixtures)
        })
        return fixtures

    async def get_live_fixtures(self, league: int) -> List[Dict[str, Any]]:
        """Get in-progress fixtures for a league (live=all has no season filter)."""
        return await self._get_response_list("/fixtures", {"live": "all", "league": league})

    async def get_standings(self, league: int, season: int) -> List[Dict[str, Any]]:
        """
        Get the league table.

        Returns:
            Rows of the first standings group (one per team), or [] if none
        """
        response = await self._get_response_list("/standings", {"league": league, "season": season})
        if not response:
            return []
        groups = (response[0].get("league") or {}).get("standings") or []
        return groups[0] if groups else []

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
