#!/usr/bin/env python3
"""
Serve the refresh API (phase orchestrator + per-entity refreshers) with uvicorn.

The phase orchestrator calls back into this server, so REFRESH_BASE_URL must
point at the host/port given here.

Usage:
    python3 scripts/run_api.py
    python3 scripts/run_api.py --host 0.0.0.0 --port 8080 --no-reload
"""
import argparse
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

backend = Path(__file__).resolve().parent.parent
load_dotenv(backend / ".env")
sys.path.insert(0, str(backend / "src"))
os.chdir(backend)

import uvicorn

from config import Config
from utils.logger import setup_logging

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Serve the refresh API.")
    parser.add_argument("--host", default=os.getenv("API_HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("API_PORT", "8000")))
    parser.add_argument("--no-reload", action="store_true", help="Disable auto-reload in development")
    args = parser.parse_args()

    config = Config()
    setup_logging(config)
    print(f"🚀 Serving refresh API on http://{args.host}:{args.port} ({config.environment})")

    uvicorn.run(
        "api.main:app",
        host=args.host,
        port=args.port,
        reload=config.environment == "development" and not args.no_reload,
        # Keep the handlers installed by setup_logging
        log_config=None,
    )
