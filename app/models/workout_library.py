"""Static workout catalog the selector is allowed to choose from."""
import re
from typing import Dict, List


WORKOUT_LIBRARY: Dict[str, List[dict]] = {
    "cycling": [
        {
            "name": "Recovery_Easy",
            "intensity": 1,
            "zone": "Z1",
            "description": "Spin easy, 45-60 min below 55% FTP",
        },
        {
            "name": "Endurance_Z2",
            "intensity": 2,
            "zone": "Z2",
            "description": "Steady aerobic ride at 56-75% FTP",
        },
        {
            "name": "Race_Openers",
            "intensity": 2,
            "zone": "Z2",
            "description": "Endurance ride with 3-4 short efforts to prime the legs",
        },
        {
            "name": "Endurance_Tempo",
            "intensity": 3,
            "zone": "Z2-Z3",
            "description": "Endurance ride with 2x15 min tempo blocks",
        },
        {
            "name": "Tempo",
            "intensity": 3,
            "zone": "Z3",
            "description": "Sustained tempo, 2-3x20 min at 76-90% FTP",
        },
        {
            "name": "SweetSpot",
            "intensity": 3,
            "zone": "Z3-Z4",
            "description": "3x12-15 min at 88-94% FTP",
        },
        {
            "name": "Threshold",
            "intensity": 4,
            "zone": "Z4",
            "description": "2x20 min or 4x10 min at 95-105% FTP",
        },
        {
            "name": "Over_Unders",
            "intensity": 4,
            "zone": "Z4",
            "description": "Alternating 95% and 105% FTP blocks",
        },
        {
            "name": "VO2max",
            "intensity": 5,
            "zone": "Z5",
            "description": "5x4 min at 106-120% FTP with equal recovery",
        },
        {
            "name": "Anaerobic",
            "intensity": 5,
            "zone": "Z6",
            "description": "Short maximal efforts, 30 s to 1 min",
        },
    ],
    "running": [
        {
            "name": "Run_Recovery",
            "intensity": 1,
            "zone": "Z1",
            "description": "20-40 min very easy jog",
        },
        {
            "name": "Run_Easy",
            "intensity": 2,
            "zone": "Z2",
            "description": "30-60 min conversational pace",
        },
        {
            "name": "Run_Strides",
            "intensity": 2,
            "zone": "Z2",
            "description": "Easy run finished with 6x20 s strides",
        },
        {
            "name": "Run_Long",
            "intensity": 2,
            "zone": "Z2",
            "description": "Long aerobic run",
        },
        {
            "name": "Run_Steady",
            "intensity": 3,
            "zone": "Z2-Z3",
            "description": "Easy run with a steady middle third",
        },
        {
            "name": "Run_Tempo",
            "intensity": 3,
            "zone": "Z3",
            "description": "20-30 min continuous tempo",
        },
        {
            "name": "Run_Threshold",
            "intensity": 4,
            "zone": "Z4",
            "description": "Cruise intervals at threshold pace",
        },
        {
            "name": "Run_Intervals",
            "intensity": 5,
            "zone": "Z5",
            "description": "5-6x3 min at 5k pace",
        },
    ],
}


def catalog_for(sport: str) -> List[dict]:
    """Return the catalog entries for a sport (cycling when unknown)."""

    return WORKOUT_LIBRARY.get(sport, WORKOUT_LIBRARY["cycling"])


def find_workout(sport: str, name: str | None) -> dict | None:
    """Look up a catalog entry by exact name (case-insensitive)."""

    if not name:
        return None
    wanted = name.strip().lower()
    for entry in catalog_for(sport):
        if entry["name"].lower() == wanted:
            return entry
    return None


def _squash(text: str) -> str:
    return re.sub(r"[^a-z0-9]", "", text.lower())


def match_workout(sport: str, activity_name: str | None) -> dict | None:
    """
    Map a free-text activity name to a catalog entry.

    Exact names win; otherwise the longest catalog name contained in the
    activity name (ignoring case, spaces and punctuation) is used.
    """
    exact = find_workout(sport, activity_name)
    if exact is not None or not activity_name:
        return exact
    squashed = _squash(activity_name)
    candidates = [entry for entry in catalog_for(sport) if _squash(entry["name"]) in squashed]
    return max(candidates, key=lambda entry: len(entry["name"]), default=None)


def easiest_workout(sport: str) -> dict:
    return min(catalog_for(sport), key=lambda entry: entry["intensity"])
