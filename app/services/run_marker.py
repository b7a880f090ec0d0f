"""Persistent "already ran today" marker for the scheduler."""
from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.database_models import RunMarker


logger = logging.getLogger(__name__)


class RunMarkerStore:
    """Idempotency-key store keyed by calendar day."""

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        if session_factory is None:
            from app.database import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    def has_run_today(self, day: date) -> bool:
        with self._session_factory() as session:
            marker = session.execute(select(RunMarker.id).where(RunMarker.run_date == day)).first()
            return marker is not None

    def last_run(self) -> RunMarker | None:
        with self._session_factory() as session:
            return session.execute(
                select(RunMarker).order_by(RunMarker.run_date.desc()).limit(1)
            ).scalar_one_or_none()

    def mark_run_complete(self, day: date, summary: dict[str, Any] | None = None) -> None:
        """
        Record a successful run for ``day``.

        Marking the same day twice updates the stored summary.
        """
        payload = json.dumps(summary, default=str) if summary is not None else None
        workout_type = (summary or {}).get("workout_type")

        with self._session_factory() as session:
            try:
                marker = session.execute(
                    select(RunMarker).where(RunMarker.run_date == day)
                ).scalar_one_or_none()
                if marker is None:
                    session.add(RunMarker(run_date=day, workout_type=workout_type, summary=payload))
                else:
                    marker.workout_type = workout_type
                    marker.summary = payload
                session.commit()
            except Exception:
                session.rollback()
                logger.exception("Failed to store run marker for %s", day.isoformat())
                raise
        logger.info("Marked coach run complete for %s", day.isoformat())
