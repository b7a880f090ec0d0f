"""Alert API endpoints."""
import asyncio
import logging
from datetime import date

from fastapi import APIRouter, HTTPException

from app.services.coach_pipeline import CoachPipeline
from app.services.intervals_service import UpstreamUnavailableError


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/alerts", tags=["alerts"])


@router.get("/active")
async def get_active_alerts() -> dict:
    """
    Run the detectors for today and list the advisories that fired.

    Returns:
        Dictionary with count and list of active advisories, most severe first
    """
    try:
        report = await asyncio.to_thread(CoachPipeline().run, date.today())
    except UpstreamUnavailableError as e:
        logger.warning("Fitness service unavailable: %s", e)
        raise HTTPException(status_code=503, detail="Fitness data service unavailable")
    except Exception:
        logger.exception("Alert detection failed")
        raise HTTPException(status_code=500, detail="Failed to detect alerts")

    active = report.advisories.active()
    return {
        "date": report.target_date.isoformat(),
        "count": len(active),
        "alerts": [
            {
                "alert_type": name,
                "severity": advisory.severity.value,
                "reasons": advisory.reasons,
                "recommendation": advisory.recommendation,
            }
            for name, advisory in active
        ],
    }
