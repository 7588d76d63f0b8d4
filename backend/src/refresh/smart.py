"""
Smart refresh: runs the data categories a league's detected sub-state calls for.

Where the phase orchestrator works from the four-phase endpoint table, this
follows the finer-grained sub-state recommendations (required / optional /
skip) and runs them one at a time, reporting when the next check is due.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from refresh.executor import ForwardedAuth, RefreshResult
from refresh.league import LeagueConfig
from refresh.orchestrator import PhaseOrchestrator
from refresh.phase import PhaseDetectionResult, PhaseRecommendation, phase_display_info

logger = logging.getLogger(__name__)

# Recommendation category -> refresh endpoint descriptor
SMART_ENDPOINT_MAP: Dict[str, str] = {
    "fixtures": "fixtures?mode=smart",
    "lineups": "lineups?mode=prematch",
    "statistics": "fixture-statistics?mode=smart",
    "events": "fixture-events?mode=smart",
    "standings": "standings",
    "injuries": "injuries",
    "odds": "odds",
    "weather": "weather",
    "team-stats": "team-stats",
    "live-scores": "fixtures?mode=smart",  # Live uses the fixtures route
    "h2h": "h2h",
}


@dataclass
class SmartRun:
    """Outcome of a smart refresh (or its preview)."""
    league: LeagueConfig
    detection: PhaseDetectionResult
    dry_run: bool = False
    endpoints: List[str] = field(default_factory=list)
    results: List[RefreshResult] = field(default_factory=list)
    duration: int = 0

    @property
    def recommendation(self) -> PhaseRecommendation:
        return self.detection.recommendation

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.successful

    @property
    def success(self) -> bool:
        return self.dry_run or self.failed == 0

    def display(self) -> Dict[str, str]:
        return phase_display_info(
            self.detection.phase,
            hours_until_next=self.detection.hours_until_next,
            live_matches=self.detection.live_matches,
        )

    def next_match(self) -> Optional[Dict[str, Any]]:
        match = self.detection.next_match
        if not match:
            return None
        return {
            "id": match.get("id"),
            "matchDate": match.get("match_date"),
            "hoursUntil": self.detection.hours_until_next,
        }

    def to_dict(self) -> Dict[str, Any]:
        base = {
            "league": self.league.name,
            "phase": self.detection.phase.value,
            "subState": self.detection.sub_state.value,
            "display": self.display(),
        }
        if self.dry_run:
            return {
                "success": True,
                "dryRun": True,
                **base,
                "recommendation": self.recommendation.to_dict(),
                "nextMatch": self.next_match(),
            }
        return {
            "success": self.success,
            **base,
            "refreshed": list(self.endpoints),
            "skipped": list(self.recommendation.skip),
            "results": [r.to_dict() for r in self.results],
            "summary": {
                "total": len(self.endpoints),
                "successful": self.successful,
                "failed": self.failed,
                "duration": self.duration,
            },
            "nextCheckMinutes": self.recommendation.next_check_minutes,
        }


class SmartRefresher:
    """Runs a sub-state's recommended categories through the phase orchestrator's executor."""

    def __init__(self, orchestrator: PhaseOrchestrator, step_delay: float = 0.5):
        self.orchestrator = orchestrator
        self.step_delay = step_delay

    async def _execute(
        self,
        name: str,
        league: LeagueConfig,
        auth: Optional[ForwardedAuth],
    ) -> RefreshResult:
        descriptor = SMART_ENDPOINT_MAP.get(name)
        if descriptor is None:
            logger.warning("Unknown smart refresh endpoint", extra={"endpoint": name})
            return RefreshResult(endpoint=name, success=False, duration=0, error=f"Unknown endpoint: {name}")

        result = await self.orchestrator.executor.execute(descriptor, league, auth)
        # Report under the category name the recommendation used
        result.endpoint = name
        return result

    async def run(
        self,
        league: LeagueConfig,
        include_optional: bool = False,
        dry_run: bool = False,
        auth: Optional[ForwardedAuth] = None,
    ) -> SmartRun:
        """
        Detect the sub-state and run its recommended refreshes in order.

        Raises:
            PhaseResolutionError: If the fixture read for detection fails
        """
        detection = self.orchestrator.detect(league)
        recommendation = detection.recommendation
        endpoints = list(recommendation.required)
        if include_optional:
            endpoints.extend(recommendation.optional)

        if dry_run:
            return SmartRun(league=league, detection=detection, dry_run=True, endpoints=endpoints)

        logger.info("Smart refresh starting", extra={
            "league": league.name,
            "sub_state": detection.sub_state.value,
            "endpoints": endpoints
        })

        start = time.perf_counter()
        results = []
        for i, name in enumerate(endpoints):
            results.append(await self._execute(name, league, auth))
            if self.step_delay and i < len(endpoints) - 1:
                await asyncio.sleep(self.step_delay)
        duration = int(round((time.perf_counter() - start) * 1000))

        run = SmartRun(
            league=league,
            detection=detection,
            endpoints=endpoints,
            results=results,
            duration=duration,
        )
        logger.info("Smart refresh completed", extra={
            "league": league.name,
            "sub_state": detection.sub_state.value,
            "successful": run.successful,
            "failed": run.failed,
            "next_check_minutes": recommendation.next_check_minutes
        })
        return run
