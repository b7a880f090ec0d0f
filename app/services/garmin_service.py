"""Optional wearable-recovery source backed by the Garmin Connect API."""
import logging
from datetime import date
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from app.config import Settings, get_settings
from app.models.schemas import WellnessRecord


logger = logging.getLogger(__name__)


def _readiness_score(readiness: Any) -> float | None:
    # API returns a list, extract first item if available - uses "score" key
    if isinstance(readiness, list) and readiness:
        readiness = readiness[0]
    if isinstance(readiness, dict):
        score = readiness.get("score")
        if isinstance(score, (int, float)) and 0 <= score <= 100:
            return float(score)
    return None


def parse_garmin_recovery(
    target_date: date,
    readiness: Any = None,
    sleep: Any = None,
    hrv: Any = None,
    heart_rates: Any = None,
) -> WellnessRecord | None:
    """
    Build a WellnessRecord from raw Garmin payloads.

    Returns None when none of the payloads carries a usable reading.
    """
    sleep_hours = None
    if isinstance(sleep, dict) and isinstance(sleep.get("dailySleepDTO"), dict):
        seconds = sleep["dailySleepDTO"].get("sleepTimeSeconds")
        if isinstance(seconds, (int, float)) and seconds > 0:
            sleep_hours = round(seconds / 3600, 2)

    hrv_value = None
    if isinstance(hrv, dict) and isinstance(hrv.get("hrvSummary"), dict):
        last_night = hrv["hrvSummary"].get("lastNightAvg")
        if isinstance(last_night, (int, float)) and last_night > 0:
            hrv_value = float(last_night)

    resting_hr = None
    if isinstance(heart_rates, dict):
        rhr = heart_rates.get("restingHeartRate")
        if isinstance(rhr, (int, float)) and rhr > 0:
            resting_hr = float(rhr)

    try:
        record = WellnessRecord(
            date=target_date,
            sleep_hours=sleep_hours,
            hrv=hrv_value,
            resting_hr=resting_hr,
            recovery_score=_readiness_score(readiness),
        )
    except ValidationError:
        logger.warning("Garmin payload for %s failed validation", target_date, exc_info=True)
        return None

    if not record.has_physiological_data and record.resting_hr is None:
        return None
    return record


class GarminService:
    """Thin wrapper around the garminconnect client with authentication helpers."""

    def __init__(self, settings: Settings | None = None, client: Any | None = None) -> None:
        settings = settings or get_settings()
        self._email = settings.garmin_email
        self._password = settings.garmin_password
        self._pending_mfa_code: str | None = None
        self._token_store = (
            Path(settings.garmin_token_store)
            if settings.garmin_token_store
            else None
        )
        self._client = client
        self._logged_in = client is not None

    @property
    def configured(self) -> bool:
        return bool(self._client is not None or (self._email and self._password))

    def _build_client(self) -> Any:
        # Imported here so an unconfigured wearable never loads garth
        from garminconnect import Garmin

        return Garmin(self._email, self._password, prompt_mfa=self._prompt_mfa)

    def login(self, mfa_code: str | None = None) -> None:
        """Authenticate with Garmin Connect, reusing cached tokens when present."""

        from garth.exc import GarthHTTPError

        if self._client is None:
            self._client = self._build_client()

        self._pending_mfa_code = mfa_code
        try:
            logger.info("Attempting Garmin login (token cache: %s)", self.has_token_cache)
            if self.has_token_cache:
                self._client.login(tokenstore=str(self._token_store))
            else:
                self._client.login()
                self._persist_tokens()
            self._logged_in = True
            logger.info("Garmin login successful")
        except GarthHTTPError as err:
            logger.exception("Garmin login failed with HTTP error")
            raise RuntimeError(f"Garmin login failed: {err}") from err

    def _persist_tokens(self) -> None:
        if self._token_store:
            self._token_store.parent.mkdir(parents=True, exist_ok=True)
            self._client.garth.dump(str(self._token_store))

    @property
    def has_token_cache(self) -> bool:
        return bool(self._token_store and self._token_store.exists())

    def logout(self) -> None:
        """Terminate the Garmin session."""

        if self._client is not None and self._logged_in:
            self._client.logout()
        self._logged_in = False

    def _prompt_mfa(self) -> str:
        """Return the MFA code supplied to login(); the scheduler cannot prompt."""

        if self._pending_mfa_code:
            code = self._pending_mfa_code
            self._pending_mfa_code = None
            return code
        raise RuntimeError(
            "Garmin MFA code required. Run an interactive login once to cache tokens."
        )

    def fetch_recovery_record(self, target_date: date) -> WellnessRecord | None:
        """
        Fetch today's readiness, sleep, HRV and resting HR as one record.

        Never raises: an unconfigured wearable, login failures and API errors
        all return None so the primary wellness feed is used unchanged.
        """
        if not self.configured:
            return None

        date_str = target_date.isoformat()
        try:
            if not self._logged_in:
                self.login()
            readiness = self._client.get_training_readiness(date_str)
            sleep = self._client.get_sleep_data(date_str)
            hrv = self._client.get_hrv_data(date_str)
            heart_rates = self._client.get_heart_rates(date_str)
        except Exception:
            logger.warning("Garmin recovery fetch for %s failed", date_str, exc_info=True)
            return None

        record = parse_garmin_recovery(target_date, readiness, sleep, hrv, heart_rates)
        logger.info("Garmin recovery for %s: %s", date_str, "found" if record else "no data yet")
        return record
