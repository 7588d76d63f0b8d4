"""
Backend API: admin refresh routes (phase orchestrator and per-entity refreshers).
"""

import sys
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv

# Load .env and ensure backend/src is on path
backend_dir = Path(__file__).resolve().parent.parent.parent
load_dotenv(backend_dir / ".env")
sys.path.insert(0, str(backend_dir / "src"))

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.auth import AdminAuthError
from api.dependencies import close_clients
from api.phase_routes import router as phase_router
from api.rate_limit import RateLimitExceeded
from api.refresh_routes import router as refresh_router
from refresh.orchestrator import PhaseResolutionError


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_clients()


app = FastAPI(title="Football Data Refresh API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Phase routes first: /phase and /smart must not be captured by /{entity}
app.include_router(phase_router)
app.include_router(refresh_router)


@app.exception_handler(AdminAuthError)
async def admin_auth_error_handler(request: Request, exc: AdminAuthError):
    return JSONResponse(status_code=403, content={"error": "Unauthorized"})


@app.exception_handler(PhaseResolutionError)
async def phase_resolution_error_handler(request: Request, exc: PhaseResolutionError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": exc.message, "validPhases": exc.valid_phases},
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_error_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"success": False, "error": str(exc)},
        headers=exc.result.headers(),
    )


@app.get("/health")
def health():
    return {"status": "ok"}
