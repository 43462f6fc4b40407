from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


_state_lock = Lock()
_runtime_state: dict[str, object] = {
    "started_at": None,
    "shutdown_started_at": None,
    "is_shutting_down": False,
    "sweep_enabled": False,
    "last_sweep_at": None,
    "last_sweep_cleaned": None,
    "last_sweep_failed": None,
    "last_sweep_error": None,
    "sweep_runs": 0,
    "swept_total": 0,
}


def mark_startup(*, sweep_enabled: bool) -> None:
    with _state_lock:
        _runtime_state["started_at"] = _utcnow_iso()
        _runtime_state["shutdown_started_at"] = None
        _runtime_state["is_shutting_down"] = False
        _runtime_state["sweep_enabled"] = sweep_enabled


def mark_shutdown_started() -> str:
    with _state_lock:
        shutdown_started_at = _utcnow_iso()
        _runtime_state["shutdown_started_at"] = shutdown_started_at
        _runtime_state["is_shutting_down"] = True
        return shutdown_started_at


def record_sweep(*, cleaned: int, failed: int, error: str | None = None) -> None:
    with _state_lock:
        _runtime_state["last_sweep_at"] = _utcnow_iso()
        _runtime_state["last_sweep_cleaned"] = cleaned
        _runtime_state["last_sweep_failed"] = failed
        _runtime_state["last_sweep_error"] = error
        _runtime_state["sweep_runs"] = int(_runtime_state["sweep_runs"]) + 1
        _runtime_state["swept_total"] = int(_runtime_state["swept_total"]) + cleaned


def snapshot_runtime_state() -> dict[str, object]:
    with _state_lock:
        return dict(_runtime_state)
