#!/usr/bin/env python3
"""
Football Data Refresh Service - Main Entry Point

Runs one phase-driven refresh for every active league: detects each league's
match phase and calls that phase's refresh endpoints on the API server.
Schedule it (cron, systemd timer) at the cadence the phases call for.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List

# Load .env from backend directory before Config() is used
from dotenv import load_dotenv
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent))

import httpx

from config import Config
from database.supabase_client import SupabaseClient
from refresh.executor import ForwardedAuth, RefreshExecutor
from refresh.league import LeagueConfig
from refresh.orchestrator import PhaseOrchestrator, PhaseResolutionError, PhaseRun
from utils.logger import setup_logging

logger = logging.getLogger(__name__)


class PhaseRefreshService:
    """Runs the phase orchestrator across active leagues."""

    def __init__(self, config: Config):
        self.config = config
        self.db_client = SupabaseClient(config)

    def active_leagues(self) -> List[LeagueConfig]:
        return [LeagueConfig.from_row(row) for row in self.db_client.get_active_leagues()]

    async def run_once(self, include_optional: bool = False, dry_run: bool = False) -> List[PhaseRun]:
        """One orchestration per active league, one league at a time."""
        leagues = self.active_leagues()
        logger.info("Starting phase refresh", extra={
            "environment": self.config.environment,
            "leagues": len(leagues),
            "include_optional": include_optional,
            "dry_run": dry_run
        })

        if not self.config.admin_api_key and not dry_run:
            logger.warning("ADMIN_API_KEY not set; refresh endpoints will reject calls")

        auth = ForwardedAuth(admin_key=self.config.admin_api_key or None)
        runs = []
        async with httpx.AsyncClient(timeout=self.config.refresh_http_timeout) as http_client:
            orchestrator = PhaseOrchestrator(
                self.db_client,
                RefreshExecutor(http_client, self.config.refresh_base_url),
            )
            for league in leagues:
                try:
                    run = await orchestrator.run(
                        league,
                        include_optional=include_optional,
                        dry_run=dry_run,
                        auth=auth,
                    )
                except PhaseResolutionError as e:
                    logger.error("Phase detection failed", extra={
                        "league": league.name,
                        "error": e.message
                    })
                    continue
                runs.append(run)

        return runs


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a phase-driven refresh for all active leagues")
    parser.add_argument("--include-optional", action="store_true", help="Also run optional endpoints")
    parser.add_argument("--dry-run", action="store_true", help="Show what would run without calling endpoints")
    return parser.parse_args(argv)


async def main():
    """Main entry point."""
    args = parse_args()
    config = Config()
    setup_logging(config)

    try:
        service = PhaseRefreshService(config)
        runs = await service.run_once(include_optional=args.include_optional, dry_run=args.dry_run)
    except KeyboardInterrupt:
        logger.info("Service interrupted by user")
        return
    except Exception as e:
        logger.error("Service crashed", extra={"error": str(e)}, exc_info=True)
        sys.exit(1)

    if any(not run.success for run in runs):
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
