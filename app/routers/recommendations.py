"""API endpoints for the daily coaching decision."""
from __future__ import annotations

import asyncio
import logging
from datetime import date

from fastapi import APIRouter, HTTPException

from app.services.coach_pipeline import CoachPipeline
from app.services.intervals_service import UpstreamUnavailableError


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/recommendations", tags=["recommendations"])


async def _generate(target_date: date) -> dict:
    """Run the pipeline off the event loop. Never touches the run marker."""

    pipeline = CoachPipeline()
    report = await asyncio.to_thread(pipeline.run, target_date)
    return report.model_dump(mode="json")


@router.get("/today")
async def get_today_recommendation():
    """
    Get today's workout decision with phase, load advice and advisories.

    Returns:
        dict: Serialized DailyCoachReport
    """

    try:
        logger.info("Handling recommendation request for today")
        return await _generate(date.today())
    except UpstreamUnavailableError as e:
        logger.warning("Fitness service unavailable: %s", e)
        raise HTTPException(status_code=503, detail="Fitness data service unavailable")
    except Exception as e:
        logger.exception("Failed to generate today's recommendation")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to generate recommendation: {str(e)}"
        )


@router.get("/{date_str}")
async def get_recommendation_for_date(date_str: str):
    """
    Get the workout decision for a specific date.

    Args:
        date_str: Date in YYYY-MM-DD format

    Returns:
        dict: Serialized DailyCoachReport
    """

    try:
        target_date = date.fromisoformat(date_str)
    except ValueError:
        logger.warning("Invalid recommendation request date: %s", date_str)
        raise HTTPException(
            status_code=400,
            detail="Invalid date format. Use YYYY-MM-DD"
        )

    try:
        logger.info("Handling recommendation request for %s", target_date.isoformat())
        return await _generate(target_date)
    except UpstreamUnavailableError as e:
        logger.warning("Fitness service unavailable: %s", e)
        raise HTTPException(status_code=503, detail="Fitness data service unavailable")
    except Exception as e:
        logger.exception("Failed to generate recommendation for %s", date_str)
        raise HTTPException(
            status_code=500,
            detail=f"Failed to generate recommendation: {str(e)}"
        )
