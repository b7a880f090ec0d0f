"""Tests for the persistent run marker."""
from __future__ import annotations

import json
from datetime import date

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models.database_models import RunMarker
from app.services.run_marker import RunMarkerStore


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, future=True)
    engine.dispose()


def test_marker_round_trip(session_factory):
    store = RunMarkerStore(session_factory)
    day = date(2025, 10, 19)

    assert store.has_run_today(day) is False
    assert store.last_run() is None

    store.mark_run_complete(day, {"workout_type": "Tempo", "max_intensity": 3})

    assert store.has_run_today(day) is True
    assert store.has_run_today(date(2025, 10, 20)) is False
    last = store.last_run()
    assert last.run_date == day
    assert last.workout_type == "Tempo"
    assert json.loads(last.summary)["max_intensity"] == 3
    assert last.completed_at.date() >= day


def test_marking_twice_updates_single_row(session_factory):
    store = RunMarkerStore(session_factory)
    day = date(2025, 10, 19)

    store.mark_run_complete(day, {"workout_type": "Tempo"})
    store.mark_run_complete(day, {"workout_type": "Recovery_Easy"})

    with session_factory() as session:
        assert session.execute(select(func.count(RunMarker.id))).scalar_one() == 1
    assert store.last_run().workout_type == "Recovery_Easy"


def test_last_run_is_most_recent_day(session_factory):
    store = RunMarkerStore(session_factory)

    store.mark_run_complete(date(2025, 10, 18))
    store.mark_run_complete(date(2025, 10, 19), {"workout_type": "SweetSpot"})

    assert store.last_run().run_date == date(2025, 10, 19)
