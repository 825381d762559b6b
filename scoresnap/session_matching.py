"""Decide whether a new upload belongs to an existing bowling session.

A session is a candidate when it was created by the same user within the time
window and matches on bowling alley, GPS proximity or location text. Among the
candidates the one sharing the most bowlers wins. When no candidate shares any
bowler, the most recent one is used so that several teams bowling at the same
place and time end up in one session.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional, Sequence

from scoresnap.settings import GPS_MATCH_DEGREES, SESSION_MATCH_WINDOW
from scoresnap.store import Store

logger = logging.getLogger(__name__)


def generate_session_name(date_time: datetime) -> str:
    """Human-readable name such as ``"Sunday Nov 16 session"``."""
    return f"{date_time:%A} {date_time:%b} {date_time.day} session"


def _gps_close(
    session: dict,
    gps_lat: Optional[float],
    gps_lng: Optional[float],
    degrees: float,
) -> bool:
    if gps_lat is None or gps_lng is None:
        return False
    session_lat = session.get("gps_latitude")
    session_lng = session.get("gps_longitude")
    if session_lat is None or session_lng is None:
        return False
    return abs(session_lat - gps_lat) < degrees and abs(session_lng - gps_lng) < degrees


def session_matches_location(
    session: dict,
    bowling_alley_id: Optional[str],
    location: Optional[str],
    gps_lat: Optional[float],
    gps_lng: Optional[float],
    gps_degrees: float = GPS_MATCH_DEGREES,
) -> bool:
    if bowling_alley_id and session.get("bowling_alley_id") == bowling_alley_id:
        return True
    if _gps_close(session, gps_lat, gps_lng, gps_degrees):
        return True
    return bool(location) and session.get("location") == location


def roster_overlap(bowler_names: Sequence[str], session_names: Sequence[str]) -> int:
    known = {name.lower() for name in session_names if name}
    return sum(1 for name in bowler_names if name.lower() in known)


def pick_session(candidates: list[dict], bowler_names: Sequence[str]) -> Optional[str]:
    """Choose among location-matched candidates by roster overlap.

    Returns the id of the candidate with the largest positive overlap, else the
    most recently dated candidate, else ``None``.
    """
    best_with_overlap: Optional[tuple[str, int]] = None
    most_recent_without: Optional[tuple[str, datetime]] = None

    for session in candidates:
        overlap = roster_overlap(bowler_names, session.get("bowler_names") or [])
        logger.debug(
            "Session %s: %d/%d bowlers overlap",
            session["id"],
            overlap,
            len(bowler_names),
        )
        if overlap > 0:
            if best_with_overlap is None or overlap > best_with_overlap[1]:
                best_with_overlap = (session["id"], overlap)
        elif most_recent_without is None or session["date_time"] > most_recent_without[1]:
            most_recent_without = (session["id"], session["date_time"])

    if best_with_overlap:
        logger.info(
            "Matched session %s with %d overlapping bowler(s)",
            best_with_overlap[0],
            best_with_overlap[1],
        )
        return best_with_overlap[0]
    if most_recent_without:
        logger.info("Merging into session %s as a different team", most_recent_without[0])
        return most_recent_without[0]
    return None


def find_matching_session(
    store: Store,
    session_date_time: datetime,
    bowling_alley_id: Optional[str],
    location: Optional[str],
    gps_lat: Optional[float],
    gps_lng: Optional[float],
    bowler_names: Sequence[str],
    user_id: str,
    window: timedelta = SESSION_MATCH_WINDOW,
    gps_degrees: float = GPS_MATCH_DEGREES,
) -> Optional[str]:
    start = session_date_time - window
    end = session_date_time + window
    sessions = store.fetch_sessions_in_window(user_id, start, end)
    if not sessions:
        logger.info("No sessions between %s and %s", start.isoformat(), end.isoformat())
        return None

    candidates = [
        session
        for session in sessions
        if session_matches_location(
            session, bowling_alley_id, location, gps_lat, gps_lng, gps_degrees
        )
    ]
    if not candidates:
        logger.info("%d session(s) in window, none at this location", len(sessions))
        return None
    return pick_session(candidates, bowler_names)
