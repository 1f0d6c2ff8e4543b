"""
Lucid — Application Entry Point

FastAPI application hosting the audit pipeline.

uvicorn lucid.main:app
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load .env file before any configuration is loaded
load_dotenv()

from lucid import __version__
from lucid.api.routers.audit import router as audit_router
from lucid.clients.llm import ExplainabilityProvider, create_provider
from lucid.config import load_config
from lucid.systems.audit.service import AuditService
from lucid.telemetry.logging import setup_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup and shutdown sequence.
    """
    # ── 1. Load configuration ─────────────────────────────────
    config_path = os.environ.get("LUCID_CONFIG_PATH", "config/default.yaml")
    config = load_config(config_path)
    app.state.config = config

    # ── 2. Set up logging ─────────────────────────────────────
    setup_logging(config.logging)
    logger.info("lucid_starting", version=__version__, mode=config.scheduler.mode)

    # ── 3. Explainability provider ────────────────────────────
    # Without a provider every analysis is heuristic.
    provider: ExplainabilityProvider | None
    try:
        provider = create_provider(config.llm)
    except ValueError as exc:
        logger.warning("llm_provider_unavailable", error=str(exc))
        provider = None

    # ── 4. Audit pipeline ─────────────────────────────────────
    audit = AuditService(config=config, provider=provider)
    await audit.initialize()
    app.state.audit = audit

    logger.info("lucid_ready")

    yield

    # ── Shutdown ──────────────────────────────────────────────
    logger.info("lucid_shutting_down")
    await audit.shutdown()


app = FastAPI(
    title="Lucid",
    description="Decision explainability and audit pipeline",
    version=__version__,
    lifespan=lifespan,
)
app.state.audit = None

# CORS for frontend
_cors_origins = ["http://localhost:3000"]
# Allow additional origins via env var (comma-separated)
if _extra := os.environ.get("LUCID_CORS_ORIGINS"):
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(audit_router)


@app.get("/health")
async def health() -> dict[str, object]:
    audit = app.state.audit
    return {
        "status": "ok" if audit is not None else "starting",
        "version": __version__,
        "mode": audit.scheduler.mode.value if audit is not None else None,
    }


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    config = load_config(os.environ.get("LUCID_CONFIG_PATH", "config/default.yaml"))
    uvicorn.run("lucid.main:app", host=config.server.host, port=config.server.port)
