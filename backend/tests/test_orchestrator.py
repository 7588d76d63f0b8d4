from datetime import datetime, timedelta, timezone

import httpx
import pytest

from conftest import FakeSupabase, RecordingExecutor, fixture_row
from refresh.executor import ForwardedAuth, RefreshExecutor
from refresh.league import LeagueConfig
from refresh.orchestrator import PhaseOrchestrator, PhaseResolutionError
from refresh.phase import Phase
from refresh.phase_endpoints import PHASE_ENDPOINTS, PhaseEndpoints


def _db_with(*fixtures):
    return FakeSupabase(fixtures=list(fixtures))


@pytest.mark.asyncio
async def test_live_fixture_runs_live_endpoints(league):
    """A fixture in 1H right now selects the live phase and its lists."""
    now = datetime.now(timezone.utc)
    db = _db_with(fixture_row(1, now - timedelta(minutes=30), "1H"))
    executor = RecordingExecutor()
    orchestrator = PhaseOrchestrator(db, executor)

    run = await orchestrator.run(league, include_optional=True)

    assert run.resolution.phase == Phase.LIVE
    assert run.resolution.source == "detected"
    assert run.plan.required == ["fixtures?mode=live"]
    assert run.plan.optional == ["fixture-statistics", "fixture-events"]
    assert [call[0] for call in executor.calls] == [
        "fixtures?mode=live", "fixture-statistics", "fixture-events",
    ]
    assert run.summary.success is True


@pytest.mark.asyncio
async def test_no_fixtures_resolves_to_pre_match(league):
    db = _db_with()
    executor = RecordingExecutor()
    orchestrator = PhaseOrchestrator(db, executor)

    run = await orchestrator.run(league)

    assert run.resolution.phase == Phase.PRE_MATCH
    assert [call[0] for call in executor.calls] == list(PHASE_ENDPOINTS[Phase.PRE_MATCH].required)
    assert run.summary.total == 3


def test_detection_reads_the_surrounding_window(league):
    db = _db_with()
    orchestrator = PhaseOrchestrator(db, RecordingExecutor())
    now = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)

    orchestrator.detect(league, now=now)

    league_id, start, end = db.window_queries[0]
    assert league_id == "league-1"
    assert start == now - timedelta(days=3)
    assert end == now + timedelta(days=7)


@pytest.mark.asyncio
async def test_one_timeout_in_post_match_is_a_partial_failure(league):
    """Four required calls, one times out: failed 1, successful 3."""

    def handler(request):
        if request.url.path.endswith("/fixture-events"):
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(200, json={"success": True})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        orchestrator = PhaseOrchestrator(_db_with(), RefreshExecutor(client, "http://api.test"))
        run = await orchestrator.run(league, phase="post-match")
    summary = run.summary

    assert summary.total == 4
    assert summary.successful == 3
    assert summary.failed == 1
    assert summary.success is False
    assert run.success is False
    assert summary.failures == [{"endpoint": "fixture-events?mode=smart", "error": "timed out"}]
    assert "standings" in summary.refreshed


@pytest.mark.asyncio
async def test_dry_run_calls_nothing(league):
    executor = RecordingExecutor()
    orchestrator = PhaseOrchestrator(_db_with(), executor)

    run = await orchestrator.run(league, phase="post-match", dry_run=True)

    assert executor.calls == []
    assert run.dry_run is True
    assert run.summary is None
    assert run.success is True
    assert run.plan.to_dict() == {
        "required": [
            "fixtures?mode=last&count=5",
            "fixture-statistics?mode=smart",
            "fixture-events?mode=smart",
            "standings",
        ],
        "optional": [],
        "toExecute": [
            "fixtures?mode=last&count=5",
            "fixture-statistics?mode=smart",
            "fixture-events?mode=smart",
            "standings",
        ],
    }


@pytest.mark.asyncio
async def test_dry_run_with_optional_lists_both_waves(league):
    orchestrator = PhaseOrchestrator(_db_with(), RecordingExecutor())
    run = await orchestrator.run(league, phase="pre-match", include_optional=True, dry_run=True)
    entry = PHASE_ENDPOINTS[Phase.PRE_MATCH]
    assert run.plan.to_execute == list(entry.required) + list(entry.optional)


@pytest.mark.asyncio
async def test_plan_is_the_same_across_calls(league):
    orchestrator = PhaseOrchestrator(_db_with(), RecordingExecutor())
    first = await orchestrator.run(league, dry_run=True)
    second = await orchestrator.run(league, dry_run=True)
    assert first.plan == second.plan
    assert first.resolution.phase == second.resolution.phase


@pytest.mark.parametrize("phase", ["halftime", "PRE-MATCH", "live "])
@pytest.mark.asyncio
async def test_invalid_override_is_rejected(league, phase):
    orchestrator = PhaseOrchestrator(_db_with(), RecordingExecutor())
    with pytest.raises(PhaseResolutionError) as exc:
        await orchestrator.run(league, phase=phase)
    assert exc.value.valid_phases == ["pre-match", "imminent", "live", "post-match"]


@pytest.mark.asyncio
async def test_store_failure_is_a_resolution_error(league):
    db = _db_with()
    db.fail_fixture_reads = True
    executor = RecordingExecutor()
    orchestrator = PhaseOrchestrator(db, executor)

    with pytest.raises(PhaseResolutionError) as exc:
        await orchestrator.run(league)
    assert exc.value.message == "Unable to detect phase"
    assert executor.calls == []


def test_override_skips_the_store(league):
    db = _db_with()
    db.fail_fixture_reads = True
    orchestrator = PhaseOrchestrator(db, RecordingExecutor())

    resolution = orchestrator.resolve_phase(league, "imminent")

    assert resolution.phase == Phase.IMMINENT
    assert resolution.source == "override"
    assert db.window_queries == []


def test_league_without_row_detects_on_empty_window():
    db = _db_with()
    league = LeagueConfig(id="", api_id=39, name="Premier League", current_season=2025)
    orchestrator = PhaseOrchestrator(db, RecordingExecutor())

    resolution = orchestrator.resolve_phase(league)

    assert resolution.phase == Phase.PRE_MATCH
    assert db.window_queries == []


@pytest.mark.asyncio
async def test_optional_wave_starts_after_required_wave(league):
    executor = RecordingExecutor()
    orchestrator = PhaseOrchestrator(_db_with(), executor)

    await orchestrator.run(league, phase="pre-match", include_optional=True)

    entry = PHASE_ENDPOINTS[Phase.PRE_MATCH]
    required, optional = set(entry.required), set(entry.optional)
    last_required_end = max(
        i for i, (kind, ep) in enumerate(executor.events) if kind == "end" and ep in required
    )
    first_optional_start = min(
        i for i, (kind, ep) in enumerate(executor.events) if kind == "start" and ep in optional
    )
    assert last_required_end < first_optional_start

    # Required calls are all dispatched before any of them finishes
    first_required_end = min(
        i for i, (kind, ep) in enumerate(executor.events) if kind == "end" and ep in required
    )
    required_starts = [
        i for i, (kind, ep) in enumerate(executor.events) if kind == "start" and ep in required
    ]
    assert max(required_starts) < first_required_end


@pytest.mark.asyncio
async def test_counts_always_add_up(league):
    executor = RecordingExecutor(failing={"standings", "weather"})
    orchestrator = PhaseOrchestrator(_db_with(), executor)

    summary = (await orchestrator.run(league, phase="pre-match", include_optional=True)).summary

    assert summary.total == len(summary.results) == 7
    assert summary.successful + summary.failed == summary.total
    assert summary.failed == 2
    assert summary.counts()["duration"] >= 0


@pytest.mark.asyncio
async def test_auth_is_passed_to_every_call(league):
    executor = RecordingExecutor()
    orchestrator = PhaseOrchestrator(_db_with(), executor)
    auth = ForwardedAuth(admin_key="k")

    await orchestrator.run(league, phase="imminent", include_optional=True, auth=auth)

    assert len(executor.calls) == 3
    assert all(call[2] is auth for call in executor.calls)


@pytest.mark.asyncio
async def test_alternate_phase_table(league):
    table = {
        phase: PhaseEndpoints(required=(f"check?phase={phase.value}",))
        for phase in Phase
    }
    executor = RecordingExecutor()
    orchestrator = PhaseOrchestrator(_db_with(), executor, phase_endpoints=table)

    run = await orchestrator.run(league, phase="live", include_optional=True)

    assert [call[0] for call in executor.calls] == ["check?phase=live"]
    assert run.summary.total == 1


def test_incomplete_phase_table_is_rejected():
    with pytest.raises(ValueError):
        PhaseOrchestrator(_db_with(), RecordingExecutor(), phase_endpoints={})


@pytest.mark.asyncio
async def test_executor_exception_is_recorded_as_failure(league):
    class ExplodingExecutor(RecordingExecutor):
        async def execute(self, descriptor, league, auth=None):
            if descriptor == "odds":
                raise RuntimeError("executor bug")
            return await super().execute(descriptor, league, auth)

    run = await PhaseOrchestrator(_db_with(), ExplodingExecutor()).run(league, phase="imminent")

    assert run.summary.total == 2
    assert run.summary.failures == [{"endpoint": "odds", "error": "executor bug"}]


@pytest.mark.asyncio
async def test_sink_hears_each_endpoint_start_and_finish(league):
    executor = RecordingExecutor(failing={"odds"})
    entries = []

    async def sink(entry):
        entries.append(entry)

    run = await PhaseOrchestrator(_db_with(), executor).run(league, phase="imminent", sink=sink)

    assert entries[0]["details"] == {
        "phase": "imminent",
        "phaseSource": "override",
        "pending": ["lineups?mode=prematch", "odds"],
    }
    running = [e["details"] for e in entries if e.get("details", {}).get("status") == "running"]
    assert sorted(d["progress"]["current"] for d in running) == [1, 2]
    assert all(d["progress"]["total"] == 2 for d in running)

    finished = {
        e["details"]["endpoint"]: (e["type"], e["details"]["status"])
        for e in entries if e.get("details", {}).get("status") in ("success", "error")
    }
    assert finished == {"lineups?mode=prematch": ("success", "success"), "odds": ("error", "error")}
    assert entries[-1]["message"].startswith("Phase refresh complete: 1/2 successful")
    assert run.summary.failed == 1


@pytest.mark.asyncio
async def test_optional_progress_continues_the_count(league):
    entries = []

    async def sink(entry):
        entries.append(entry)

    await PhaseOrchestrator(_db_with(), RecordingExecutor()).run(
        league, phase="imminent", include_optional=True, sink=sink
    )

    steps = [
        (e["details"]["endpoint"], e["details"]["progress"]["current"])
        for e in entries if e.get("details", {}).get("status") == "running"
    ]
    assert dict(steps)["lineups?mode=prematch"] == 1
    assert sorted(current for _, current in steps) == [1, 2, 3]


@pytest.mark.asyncio
async def test_resolved_phase_is_reused(league):
    db = _db_with()
    db.fail_fixture_reads = True
    orchestrator = PhaseOrchestrator(db, RecordingExecutor())
    resolution = orchestrator.resolve_phase(league, "live")

    run = await orchestrator.run(league, resolution=resolution)

    assert run.resolution is resolution
    assert run.summary.success is True
    assert db.window_queries == []
