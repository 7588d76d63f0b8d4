"""
Shared FastAPI dependencies.

Clients are created lazily on first use so the app imports without Supabase
or API-Football credentials; tests swap them out via app.dependency_overrides.
"""

from typing import Dict, Optional

import httpx
from fastapi import Depends

from api.rate_limit import InMemoryRateLimitStore, RateLimiter
from config import Config
from database.supabase_client import SupabaseClient
from football_api.client import FootballAPIClient
from refresh.executor import RefreshExecutor
from refresh.fixtures import FixturesRefresher
from refresh.orchestrator import PhaseOrchestrator
from refresh.smart import SmartRefresher
from refresh.standings import StandingsRefresher

_config: Optional[Config] = None
_db: Optional[SupabaseClient] = None
_http_client: Optional[httpx.AsyncClient] = None
_football_client: Optional[FootballAPIClient] = None
_rate_limiter: Optional[RateLimiter] = None


def get_config() -> Config:
    global _config
    if _config is None:
        _config = Config()
    return _config


def get_db(config: Config = Depends(get_config)) -> SupabaseClient:
    global _db
    if _db is None:
        _db = SupabaseClient(config)
    return _db


def get_http_client(config: Config = Depends(get_config)) -> httpx.AsyncClient:
    """Client the executor uses to call refresh endpoints (no timeout unless configured)."""
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(timeout=config.refresh_http_timeout)
    return _http_client


def get_football_client(config: Config = Depends(get_config)) -> FootballAPIClient:
    global _football_client
    if _football_client is None:
        _football_client = FootballAPIClient(config)
    return _football_client


def get_rate_limiter(config: Config = Depends(get_config)) -> RateLimiter:
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter(
            InMemoryRateLimitStore(),
            max_requests=config.refresh_rate_limit_max,
            window_seconds=config.refresh_rate_limit_window,
        )
    return _rate_limiter


def get_orchestrator(
    config: Config = Depends(get_config),
    db: SupabaseClient = Depends(get_db),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> PhaseOrchestrator:
    executor = RefreshExecutor(http_client, config.refresh_base_url)
    return PhaseOrchestrator(db, executor)


def get_smart_refresher(
    config: Config = Depends(get_config),
    orchestrator: PhaseOrchestrator = Depends(get_orchestrator),
) -> SmartRefresher:
    return SmartRefresher(orchestrator, step_delay=config.smart_step_delay)


def get_refreshers(
    db: SupabaseClient = Depends(get_db),
    football_client: FootballAPIClient = Depends(get_football_client),
) -> Dict[str, object]:
    """Per-entity refreshers served under /api/data/refresh/{entity}."""
    return {
        "fixtures": FixturesRefresher(football_client, db),
        "standings": StandingsRefresher(football_client, db),
    }


async def close_clients():
    """Release pooled HTTP connections on shutdown."""
    global _http_client, _football_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None
    if _football_client is not None:
        await _football_client.close()
        _football_client = None
