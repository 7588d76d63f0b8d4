"""
Per-entity refresh routes: POST /api/data/refresh/{entity}.

Every refresher answers with a JSON summary carrying a boolean success flag,
or streams its progress as SSE when asked to.
"""

import logging
import time
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from api.auth import require_admin
from api.dependencies import get_config, get_db, get_rate_limiter, get_refreshers
from api.rate_limit import RateLimiter, enforce_rate_limit
from api.streaming import sse_response, stream_refresh, wants_streaming
from config import Config
from refresh.entity import InvalidRefreshRequest
from refresh.league import resolve_league

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/data/refresh", tags=["refresh"])


@router.post("/{entity}")
async def refresh_entity(
    entity: str,
    request: Request,
    mode: Optional[str] = Query(None),
    count: Optional[str] = Query(None),
    league_id: Optional[str] = Query(None),
    api_id: Optional[int] = Query(None),
    stream: Optional[str] = Query(None),
    config: Config = Depends(get_config),
    db=Depends(get_db),
    refreshers: Dict[str, object] = Depends(get_refreshers),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Run one per-entity refresher for a league."""
    require_admin(request, config)

    refresher = refreshers.get(entity)
    if refresher is None:
        return JSONResponse(
            status_code=404,
            content={"success": False, "error": f"Unknown refresh endpoint: {entity}"},
        )

    limit = enforce_rate_limit(request, config, limiter)
    headers = limit.headers() if limit else {}

    league = resolve_league(
        db,
        league_id=league_id,
        api_id=api_id,
        default_api_id=config.default_league_api_id,
        default_season=config.default_season,
    )
    if not league.id:
        # Built-in fallback league: there is no row to attach refreshed data to
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": f"League {league.name} is not in the database",
                "league": league.name,
            },
            headers=headers,
        )

    async def run(sink=None):
        return await refresher.refresh(league, mode=mode, count=count, sink=sink)

    if wants_streaming(request, stream):
        response = sse_response(stream_refresh(run))
        response.headers.update(headers)
        return response

    start = time.perf_counter()
    try:
        summary = await run()
    except InvalidRefreshRequest as e:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": str(e), "league": league.name},
            headers=headers,
        )
    except Exception as e:
        logger.error("Refresh failed", extra={
            "entity": entity,
            "league": league.name,
            "error": str(e)
        }, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(e) or type(e).__name__,
                "league": league.name,
                "duration": int((time.perf_counter() - start) * 1000),
            },
            headers=headers,
        )

    return JSONResponse(content=summary, headers=headers)
