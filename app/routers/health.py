"""Router exposing basic system endpoints."""
from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, HTTPException

from app.services.run_marker import RunMarkerStore


logger = logging.getLogger(__name__)


router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("/status")
async def get_status() -> dict[str, str]:
    """Return a minimal status payload."""
    return {"status": "online"}


@router.get("/run-status")
async def get_run_status() -> dict:
    """
    Report whether today's coaching run has completed.

    Returns:
        dict: {
            "ran_today": bool,
            "last_run_date": ISO date or None,
            "last_workout_type": str or None,
            "completed_at": ISO timestamp or None
        }
    """
    store = RunMarkerStore()
    try:
        ran_today = store.has_run_today(date.today())
        last = store.last_run()
    except Exception:
        logger.exception("Run status check failed")
        raise HTTPException(status_code=500, detail="Failed to check run status")

    return {
        "ran_today": ran_today,
        "last_run_date": last.run_date.isoformat() if last else None,
        "last_workout_type": last.workout_type if last else None,
        "completed_at": last.completed_at.isoformat() if last and last.completed_at else None,
    }
