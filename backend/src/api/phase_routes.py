"""
Phase orchestration routes.

POST /phase runs (or previews) the refresh endpoints for a league's current
match phase, as JSON or streamed as SSE; POST /smart runs the finer-grained
sub-state recommendations; GET /phase reports what phase the league is in and
what each phase would run.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from api.auth import require_admin
from api.dependencies import get_config, get_db, get_orchestrator, get_rate_limiter, get_smart_refresher
from api.rate_limit import RateLimiter, enforce_rate_limit
from api.streaming import sse_response, stream_refresh, wants_streaming
from config import Config
from refresh.league import resolve_league
from refresh.orchestrator import VALID_PHASES, PhaseOrchestrator, PhaseRun
from refresh.phase import phase_display_info
from refresh.phase_endpoints import table_to_dict
from refresh.smart import SmartRefresher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/data/refresh", tags=["phase"])


def _display(run: PhaseRun) -> Dict[str, str]:
    detection = run.resolution.detection
    if detection is None:
        return phase_display_info(run.resolution.phase)
    return phase_display_info(
        run.resolution.phase,
        hours_until_next=detection.hours_until_next,
        live_matches=detection.live_matches,
    )


def _run_response(run: PhaseRun) -> Dict[str, Any]:
    base = {
        "league": run.league.name,
        "phase": run.resolution.phase.value,
        "phaseSource": run.resolution.source,
    }
    if run.dry_run:
        return {"success": True, "dryRun": True, **base, "endpoints": run.plan.to_dict()}

    summary = run.summary
    return {
        "success": summary.success,
        **base,
        "display": _display(run),
        "summary": summary.counts(),
        "results": [result.to_dict() for result in summary.results],
        "refreshed": summary.refreshed,
        "failed": summary.failures,
    }


@router.post("/phase")
async def run_phase_refresh(
    request: Request,
    phase: Optional[str] = Query(None, description="pre-match | imminent | live | post-match"),
    include_optional: bool = Query(False),
    dry_run: bool = Query(False),
    league_id: Optional[str] = Query(None),
    api_id: Optional[int] = Query(None),
    stream: Optional[str] = Query(None),
    config: Config = Depends(get_config),
    db=Depends(get_db),
    orchestrator: PhaseOrchestrator = Depends(get_orchestrator),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Run the refresh endpoints for the league's current (or given) phase."""
    auth = require_admin(request, config)
    limit = enforce_rate_limit(request, config, limiter)
    headers = limit.headers() if limit else {}

    league = resolve_league(
        db,
        league_id=league_id,
        api_id=api_id,
        default_api_id=config.default_league_api_id,
        default_season=config.default_season,
    )
    # Resolve before any streaming starts so a bad phase is still a plain 400
    resolution = orchestrator.resolve_phase(league, phase)

    async def run(sink=None):
        phase_run = await orchestrator.run(
            league,
            include_optional=include_optional,
            dry_run=dry_run,
            auth=auth,
            sink=sink,
            resolution=resolution,
        )
        return _run_response(phase_run)

    if wants_streaming(request, stream) and not dry_run:
        response = sse_response(stream_refresh(run))
        response.headers.update(headers)
        return response

    return JSONResponse(content=await run(), headers=headers)


@router.post("/smart")
async def run_smart_refresh(
    request: Request,
    include_optional: bool = Query(False),
    dry_run: bool = Query(False),
    league_id: Optional[str] = Query(None),
    api_id: Optional[int] = Query(None),
    config: Config = Depends(get_config),
    db=Depends(get_db),
    smart: SmartRefresher = Depends(get_smart_refresher),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Run the refreshes the league's detected sub-state recommends."""
    auth = require_admin(request, config)
    limit = enforce_rate_limit(request, config, limiter)

    league = resolve_league(
        db,
        league_id=league_id,
        api_id=api_id,
        default_api_id=config.default_league_api_id,
        default_season=config.default_season,
    )

    smart_run = await smart.run(
        league,
        include_optional=include_optional,
        dry_run=dry_run,
        auth=auth,
    )

    return JSONResponse(
        content=smart_run.to_dict(),
        headers=limit.headers() if limit else None,
    )


@router.get("/phase")
async def get_phase_info(
    request: Request,
    league_id: Optional[str] = Query(None),
    api_id: Optional[int] = Query(None),
    config: Config = Depends(get_config),
    db=Depends(get_db),
    orchestrator: PhaseOrchestrator = Depends(get_orchestrator),
):
    """Current detected phase plus the phase-to-endpoint table."""
    require_admin(request, config)

    league = resolve_league(
        db,
        league_id=league_id,
        api_id=api_id,
        default_api_id=config.default_league_api_id,
        default_season=config.default_season,
    )
    detection = orchestrator.detect(league)

    return {
        "league": league.name,
        "currentPhase": detection.phase.value,
        "detection": detection.to_dict(),
        "display": phase_display_info(
            detection.phase,
            hours_until_next=detection.hours_until_next,
            live_matches=detection.live_matches,
        ),
        "availablePhases": list(VALID_PHASES),
        "phaseEndpoints": table_to_dict(orchestrator.phase_endpoints),
    }
