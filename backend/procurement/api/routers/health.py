from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from procurement.core.runtime_state import snapshot_runtime_state
from procurement.db.db import SessionLocal
from procurement.security.authz import Identity
from procurement.security.deps import get_current_admin

router = APIRouter(tags=["ops"])
logger = logging.getLogger("procurement.api.health")

SWEEP_KEYS = ("sweep_enabled", "last_sweep_at", "last_sweep_cleaned", "last_sweep_failed", "last_sweep_error")


def _sweep_status(state: dict) -> dict:
    return {key.removeprefix("last_sweep_").removeprefix("sweep_"): state.get(key) for key in SWEEP_KEYS}


def _database_error() -> str | None:
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        return str(exc)
    return None


@router.get("/healthz")
def healthz():
    state = snapshot_runtime_state()
    return {
        "status": "ok",
        "is_shutting_down": bool(state["is_shutting_down"]),
        "permission_sweep": _sweep_status(state),
        "runtime": state,
    }


@router.get("/readyz")
def readyz(response: Response):
    state = snapshot_runtime_state()
    reason = None
    if state["is_shutting_down"]:
        reason = "shutdown_in_progress"
    else:
        error = _database_error()
        if error is not None:
            logger.warning("Readiness check failed: %s", error)
            reason = "database_unavailable"

    if reason:
        response.status_code = 503
        return {"status": "not_ready", "reason": reason, "runtime": state}
    return {"status": "ready", "runtime": state}


@router.get("/metrics/runtime")
def runtime_metrics(_: Identity = Depends(get_current_admin)):
    return snapshot_runtime_state()
