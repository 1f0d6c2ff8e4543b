"""
Lucid — Audit REST Router

Control surface for the dashboard: decision state, manual edits,
on-demand analysis, scheduler configuration, and history views.

Endpoints:
  GET  /api/v1/audit/state            — Decision triple + scheduler status
  PUT  /api/v1/audit/decision         — Manual editor submission (JSON text)
  POST /api/v1/audit/analyze          — Analyze the current decision now
  GET  /api/v1/audit/analysis/latest  — Most recent analysis result
  GET  /api/v1/audit/history/drift    — Drift series, oldest first
  GET  /api/v1/audit/history/audits   — Audit log, newest first
  PUT  /api/v1/audit/config           — Change mode and/or interval
  GET  /api/v1/audit/stats            — Engine and scheduler counters
"""

from __future__ import annotations

from typing import Any, Literal

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

logger = structlog.get_logger("lucid.api.audit")

router = APIRouter(prefix="/api/v1/audit")


class DecisionEdit(BaseModel):
    input: str
    output: str
    confidence: float


class ConfigUpdate(BaseModel):
    mode: Literal["manual", "live", "simulation"] | None = None
    simulation_interval: int | None = Field(default=None, gt=0)


def _unavailable() -> dict[str, Any]:
    return {"status": "unavailable", "error": "Audit service not initialized"}


@router.get("/state")
async def get_state(request: Request) -> dict[str, Any]:
    """Return the current decision and scheduler status."""
    audit = request.app.state.audit
    if audit is None:
        return _unavailable()

    scheduler = audit.scheduler
    return {
        "status": "ok",
        "data": {
            "decision": audit.decision.to_wire(),
            "mode": scheduler.mode.value,
            "simulationInterval": scheduler.interval_seconds,
            "tickCount": scheduler.tick_count,
            "timerRunning": scheduler.timer_running,
        },
    }


@router.put("/decision")
async def put_decision(request: Request, body: DecisionEdit) -> dict[str, Any]:
    """Apply a manual edit. A malformed part leaves the decision unchanged."""
    audit = request.app.state.audit
    if audit is None:
        return _unavailable()

    accepted, error = audit.edit_decision(body.input, body.output, body.confidence)
    if not accepted:
        return {
            "status": "rejected",
            "error": error,
            "data": audit.decision.to_wire(),
        }
    return {"status": "ok", "data": audit.decision.to_wire()}


@router.post("/analyze")
async def post_analyze(request: Request) -> dict[str, Any]:
    """Analyze the current decision and record it in the audit log."""
    audit = request.app.state.audit
    if audit is None:
        return _unavailable()

    record = await audit.run_analysis()
    return {"status": "ok", "data": record.to_wire()}


@router.get("/analysis/latest")
async def get_latest_analysis(request: Request) -> dict[str, Any]:
    audit = request.app.state.audit
    if audit is None:
        return _unavailable()

    result = audit.last_analysis
    return {"status": "ok", "data": result.to_wire() if result is not None else None}


@router.get("/history/drift")
async def get_drift_history(request: Request) -> dict[str, Any]:
    audit = request.app.state.audit
    if audit is None:
        return _unavailable()

    return {"status": "ok", "data": [p.to_wire() for p in audit.drift_history]}


@router.get("/history/audits")
async def get_audit_history(request: Request) -> dict[str, Any]:
    audit = request.app.state.audit
    if audit is None:
        return _unavailable()

    return {"status": "ok", "data": [r.to_wire() for r in audit.audit_log]}


@router.put("/config")
async def put_config(request: Request, body: ConfigUpdate) -> dict[str, Any]:
    """Reconfigure the scheduler. Pending ticks are cancelled, not deferred."""
    audit = request.app.state.audit
    if audit is None:
        return _unavailable()

    await audit.configure(mode=body.mode, simulation_interval=body.simulation_interval)
    logger.info(
        "audit_config_updated",
        mode=audit.scheduler.mode.value,
        simulation_interval=audit.scheduler.interval_seconds,
    )
    return {
        "status": "ok",
        "data": {
            "mode": audit.scheduler.mode.value,
            "simulationInterval": audit.scheduler.interval_seconds,
        },
    }


@router.get("/stats")
async def get_stats(request: Request) -> dict[str, Any]:
    audit = request.app.state.audit
    if audit is None:
        return _unavailable()

    return {"status": "ok", "data": audit.stats}
