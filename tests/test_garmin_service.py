"""Tests for the optional Garmin recovery source."""
from __future__ import annotations

from datetime import date
from typing import Any, Dict

import pytest

from app.config import Settings
from app.services.garmin_service import GarminService, parse_garmin_recovery


TARGET = date(2025, 10, 19)


class FakeGarmin:
    def __init__(self, payload: Dict[str, Any], fail: bool = False) -> None:
        self.payload = payload
        self.fail = fail

    def get_training_readiness(self, date_str: str) -> Any:
        if self.fail:
            raise ConnectionError("Garmin Connect unreachable")
        return self.payload["training_readiness"]

    def get_sleep_data(self, date_str: str) -> Any:
        return self.payload["sleep"]

    def get_hrv_data(self, date_str: str) -> Any:
        return self.payload["hrv"]

    def get_heart_rates(self, date_str: str) -> Any:
        return self.payload["heart_rates"]


@pytest.fixture
def settings() -> Settings:
    return Settings(intervals_api_key="secret", garmin_email=None, garmin_password=None, garmin_token_store=None)


def test_parse_full_payload(garmin_recovery_fixture):
    record = parse_garmin_recovery(
        TARGET,
        garmin_recovery_fixture["training_readiness"],
        garmin_recovery_fixture["sleep"],
        garmin_recovery_fixture["hrv"],
        garmin_recovery_fixture["heart_rates"],
    )

    assert record is not None
    assert record.sleep_hours == 8.0
    assert record.hrv == 64.0
    assert record.resting_hr == 47.0
    assert record.recovery_score == 81.0


def test_parse_empty_payload_is_none():
    assert parse_garmin_recovery(TARGET) is None
    assert parse_garmin_recovery(TARGET, readiness=[], sleep={"dailySleepDTO": {"sleepTimeSeconds": None}}) is None


def test_out_of_range_readiness_is_dropped():
    record = parse_garmin_recovery(TARGET, readiness={"score": 140}, heart_rates={"restingHeartRate": 50})

    assert record is not None
    assert record.recovery_score is None


def test_fetch_recovery_record_with_client(settings, garmin_recovery_fixture):
    service = GarminService(settings, client=FakeGarmin(garmin_recovery_fixture))

    record = service.fetch_recovery_record(TARGET)

    assert record is not None
    assert record.date == TARGET
    assert record.hrv == 64.0


def test_fetch_failure_returns_none(settings, garmin_recovery_fixture):
    service = GarminService(settings, client=FakeGarmin(garmin_recovery_fixture, fail=True))

    assert service.fetch_recovery_record(TARGET) is None


def test_unconfigured_service_returns_none(settings):
    service = GarminService(settings)

    assert service.configured is False
    assert service.has_token_cache is False
    assert service.fetch_recovery_record(TARGET) is None


def test_mfa_prompt_requires_code(settings):
    service = GarminService(settings)

    with pytest.raises(RuntimeError):
        service._prompt_mfa()
