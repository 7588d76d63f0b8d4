#!/usr/bin/env python3
"""
Script to run (or preview) a phase-driven refresh for one league.

Detects the league's current match phase (unless --phase is given) and calls
that phase's refresh endpoints on the API server at REFRESH_BASE_URL.

Usage:
    python3 scripts/run_phase.py                          # default league, detected phase
    python3 scripts/run_phase.py --api-id 140 --dry-run   # preview La Liga
    python3 scripts/run_phase.py --phase post-match --include-optional
"""

import asyncio
import sys
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv(Path(__file__).parent.parent / ".env")

# Add src directory to path
backend_dir = Path(__file__).parent.parent
src_dir = backend_dir / "src"
sys.path.insert(0, str(src_dir))

import httpx

from config import Config
from database.supabase_client import SupabaseClient
from refresh.executor import ForwardedAuth, RefreshExecutor
from refresh.league import resolve_league
from refresh.orchestrator import VALID_PHASES, PhaseOrchestrator, PhaseResolutionError
from utils.logger import setup_logging


async def run_phase(
    league_id=None,
    api_id=None,
    phase=None,
    include_optional: bool = False,
    dry_run: bool = False,
) -> bool:
    """Run one orchestration and print the outcome. Returns overall success."""
    config = Config()
    setup_logging(config)
    db_client = SupabaseClient(config)

    league = resolve_league(
        db_client,
        league_id=league_id,
        api_id=api_id,
        default_api_id=config.default_league_api_id,
        default_season=config.default_season,
    )
    print(f"🏟️  League: {league.name} (api_id {league.api_id}, season {league.current_season})\n")

    async with httpx.AsyncClient(timeout=config.refresh_http_timeout) as http_client:
        orchestrator = PhaseOrchestrator(
            db_client,
            RefreshExecutor(http_client, config.refresh_base_url),
        )
        try:
            run = await orchestrator.run(
                league,
                phase=phase,
                include_optional=include_optional,
                dry_run=dry_run,
                auth=ForwardedAuth(admin_key=config.admin_api_key or None),
            )
        except PhaseResolutionError as e:
            print(f"❌ {e.message} (valid phases: {', '.join(e.valid_phases)})")
            return False

    print(f"📍 Phase: {run.resolution.phase.value} ({run.resolution.source})")

    if run.dry_run:
        print("\n🔍 Dry run - endpoints that would be called:")
        for endpoint in run.plan.to_execute:
            print(f"   - {endpoint}")
        return True

    summary = run.summary
    print(f"\n📊 {summary.successful}/{summary.total} succeeded in {summary.duration / 1000:.1f}s")
    for result in summary.results:
        mark = "✅" if result.success else "❌"
        suffix = f" - {result.error}" if result.error else ""
        print(f"   {mark} {result.endpoint} ({result.duration}ms){suffix}")

    return summary.success


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description="Run a phase-driven refresh for one league.")
    parser.add_argument("--league-id", help="Internal league UUID")
    parser.add_argument("--api-id", type=int, help="API-Football league id")
    parser.add_argument("--phase", choices=VALID_PHASES, help="Override the detected phase")
    parser.add_argument("--include-optional", action="store_true", help="Also run optional endpoints")
    parser.add_argument("--dry-run", action="store_true", help="Show the endpoints without calling them")
    args = parser.parse_args()

    ok = asyncio.run(run_phase(
        league_id=args.league_id,
        api_id=args.api_id,
        phase=args.phase,
        include_optional=args.include_optional,
        dry_run=args.dry_run,
    ))
    sys.exit(0 if ok else 1)
