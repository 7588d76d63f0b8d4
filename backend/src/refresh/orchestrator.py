"""
Phase Orchestrator - Coordinates a phase-driven data refresh.

Resolves the current match phase for a league, looks up the endpoints that
phase needs, and runs them through the executor in two concurrent waves:
required first, then optional (if asked for).
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from refresh.entity import LogSink, RefreshLog
from refresh.executor import ForwardedAuth, RefreshExecutor, RefreshResult
from refresh.league import LeagueConfig
from refresh.phase import Phase, PhaseDetectionResult, detect_current_phase
from refresh.phase_endpoints import PHASE_ENDPOINTS, PhaseEndpoints, validate_phase_endpoints
from utils.fixture_windows import get_detection_window, utc_now

logger = logging.getLogger(__name__)

VALID_PHASES = [phase.value for phase in Phase]


class PhaseResolutionError(Exception):
    """The phase for a run could not be determined (bad override or store failure)."""

    def __init__(self, message: str, valid_phases: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.valid_phases = valid_phases or list(VALID_PHASES)


@dataclass
class PhaseResolution:
    """Which phase a run uses and where it came from."""
    phase: Phase
    source: str                                      # "override" or "detected"
    detection: Optional[PhaseDetectionResult] = None


@dataclass
class RunPlan:
    """Endpoints selected for a phase."""
    phase: Phase
    required: List[str]
    optional: List[str]
    to_execute: List[str]

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "required": list(self.required),
            "optional": list(self.optional),
            "toExecute": list(self.to_execute),
        }


@dataclass
class RunSummary:
    """Aggregate of one orchestration run."""
    phase: Phase
    results: List[RefreshResult] = field(default_factory=list)
    duration: int = 0  # Milliseconds, first dispatch to last completion

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return self.total - self.successful

    @property
    def success(self) -> bool:
        return self.failed == 0

    @property
    def refreshed(self) -> List[str]:
        return [r.endpoint for r in self.results if r.success]

    @property
    def failures(self) -> List[Dict[str, Optional[str]]]:
        return [{"endpoint": r.endpoint, "error": r.error} for r in self.results if not r.success]

    def counts(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "duration": self.duration,
        }


@dataclass
class PhaseRun:
    """Everything a caller needs to report on a run or a preview."""
    league: LeagueConfig
    resolution: PhaseResolution
    plan: RunPlan
    dry_run: bool = False
    summary: Optional[RunSummary] = None

    @property
    def success(self) -> bool:
        return self.dry_run or (self.summary is not None and self.summary.success)


class PhaseOrchestrator:
    """Runs the refresh endpoints for a league's current match phase."""

    def __init__(
        self,
        db_client,
        executor: RefreshExecutor,
        phase_endpoints: Mapping[Phase, PhaseEndpoints] = PHASE_ENDPOINTS,
    ):
        validate_phase_endpoints(phase_endpoints)
        self.db_client = db_client
        self.executor = executor
        self.phase_endpoints = phase_endpoints

    def detect(self, league: LeagueConfig, now: Optional[datetime] = None) -> PhaseDetectionResult:
        """
        Read the league's nearby fixtures and classify the phase.

        Raises:
            PhaseResolutionError: If the fixture read fails
        """
        now = now or utc_now()
        if not league.id:
            # League not in the database: nothing to read, detect on an empty window
            return detect_current_phase([], now=now)

        start, end = get_detection_window(now)
        try:
            fixtures = self.db_client.get_fixtures_in_window(league.id, start, end)
        except Exception as e:
            logger.error("Fixture read for phase detection failed", extra={
                "league_id": league.id,
                "error": str(e)
            }, exc_info=True)
            raise PhaseResolutionError("Unable to detect phase") from e

        return detect_current_phase(fixtures, now=now)

    def resolve_phase(self, league: LeagueConfig, override: Optional[str] = None) -> PhaseResolution:
        """
        Decide the phase for a run.

        An override, when given, must name a valid phase; otherwise the phase
        is detected from the store.

        Raises:
            PhaseResolutionError: For an invalid override or a store failure
        """
        if override is not None and override != "":
            phase = Phase.parse(override)
            if phase is None:
                raise PhaseResolutionError(f"Invalid phase: {override}")
            return PhaseResolution(phase=phase, source="override")

        detection = self.detect(league)
        return PhaseResolution(phase=detection.phase, source="detected", detection=detection)

    def plan(self, phase: Phase, include_optional: bool = False) -> RunPlan:
        """Endpoints for a phase. Same inputs always give the same plan."""
        entry = self.phase_endpoints[phase]
        required = list(entry.required)
        optional = list(entry.optional)
        to_execute = required + (optional if include_optional else [])
        return RunPlan(phase=phase, required=required, optional=optional, to_execute=to_execute)

    async def _execute_one(
        self,
        endpoint: str,
        league: LeagueConfig,
        auth: Optional[ForwardedAuth],
        log: Optional[RefreshLog],
        step: int,
        total: int,
    ) -> RefreshResult:
        """Run one endpoint, reporting running/success/error to the log if there is one."""
        if log is not None:
            await log.emit("info", f"[{step}/{total}] Refreshing {endpoint}...", {
                "endpoint": endpoint,
                "status": "running",
                "progress": {"current": step, "total": total}
            })

        try:
            result = await self.executor.execute(endpoint, league, auth)
        except Exception as e:
            logger.error("Executor raised", extra={"endpoint": endpoint, "error": str(e)}, exc_info=True)
            result = RefreshResult(
                endpoint=endpoint,
                success=False,
                duration=0,
                error=str(e) or type(e).__name__,
            )

        if log is not None:
            details = {"endpoint": endpoint, "status": "success" if result.success else "error",
                       "duration": result.duration}
            if result.success:
                await log.emit("success", f"{endpoint}: completed ({result.duration / 1000:.1f}s)", details)
            else:
                await log.emit("error", f"{endpoint} failed: {result.error}", details)
        return result

    async def _run_wave(
        self,
        endpoints: List[str],
        league: LeagueConfig,
        auth: Optional[ForwardedAuth],
        log: Optional[RefreshLog] = None,
        offset: int = 0,
        total: int = 0,
    ) -> List[RefreshResult]:
        """Dispatch every endpoint at once and wait for all of them."""
        if not endpoints:
            return []

        total = total or len(endpoints)
        tasks = [
            self._execute_one(endpoint, league, auth, log, offset + i + 1, total)
            for i, endpoint in enumerate(endpoints)
        ]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        results = []
        for endpoint, outcome in zip(endpoints, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Endpoint call raised", extra={"endpoint": endpoint, "error": str(outcome)})
                outcome = RefreshResult(
                    endpoint=endpoint,
                    success=False,
                    duration=0,
                    error=str(outcome) or type(outcome).__name__,
                )
            results.append(outcome)
        return results

    async def run(
        self,
        league: LeagueConfig,
        phase: Optional[str] = None,
        include_optional: bool = False,
        dry_run: bool = False,
        auth: Optional[ForwardedAuth] = None,
        sink: Optional[LogSink] = None,
        resolution: Optional[PhaseResolution] = None,
    ) -> PhaseRun:
        """
        Resolve the phase and run (or preview) its endpoints.

        Args:
            league: League to refresh
            phase: Optional phase override
            include_optional: Also run the optional wave
            dry_run: Return the plan without calling any endpoint
            auth: Credentials forwarded to every endpoint call
            sink: Receives progress entries as endpoints start and finish (streaming)
            resolution: Phase already resolved by the caller; skips resolve_phase

        Returns:
            PhaseRun with the resolution, plan and (unless dry run) summary

        Raises:
            PhaseResolutionError: If the phase cannot be determined
        """
        resolution = resolution or self.resolve_phase(league, phase)
        plan = self.plan(resolution.phase, include_optional)

        if dry_run:
            logger.info("Phase refresh dry run", extra={
                "league": league.name,
                "phase": resolution.phase.value,
                "phase_source": resolution.source,
                "endpoints": plan.to_execute
            })
            return PhaseRun(league=league, resolution=resolution, plan=plan, dry_run=True)

        logger.info("Phase refresh starting", extra={
            "league": league.name,
            "phase": resolution.phase.value,
            "phase_source": resolution.source,
            "include_optional": include_optional,
            "endpoint_count": len(plan.to_execute)
        })

        log = RefreshLog("phase", league.name, sink) if sink is not None else None
        total = len(plan.to_execute)
        if log is not None:
            await log.emit(
                "info",
                f"Starting {resolution.phase.value} refresh ({resolution.source}, {total} endpoints)...",
                {
                    "phase": resolution.phase.value,
                    "phaseSource": resolution.source,
                    "pending": list(plan.to_execute)
                },
            )

        start = time.perf_counter()
        results = await self._run_wave(plan.required, league, auth, log, 0, total)
        if include_optional and plan.optional:
            results.extend(await self._run_wave(plan.optional, league, auth, log, len(plan.required), total))
        duration = int(round((time.perf_counter() - start) * 1000))

        summary = RunSummary(phase=resolution.phase, results=results, duration=duration)

        if log is not None:
            await log.emit(
                "success" if summary.success else "warning",
                f"Phase refresh complete: {summary.successful}/{summary.total} successful "
                f"({duration / 1000:.1f}s)",
            )

        log_extra: Dict[str, Any] = {
            "league": league.name,
            "phase": resolution.phase.value,
            **summary.counts()
        }
        if summary.success:
            logger.info("Phase refresh completed", extra=log_extra)
        else:
            log_extra["failures"] = summary.failures
            logger.warning("Phase refresh completed with failures", extra=log_extra)

        return PhaseRun(league=league, resolution=resolution, plan=plan, summary=summary)
