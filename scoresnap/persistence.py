"""Turn a cleaned scoreboard into sessions, bowlers, series, games and frames.

The flow for one upload is:

1. ``analyze_name_resolution`` decides which parsed names need a human to pick
   a bowler; the caller collects those answers into ``resolved_mappings``.
2. ``persist_parsed_scoreboard_with_resolution`` finds or creates the session,
   teams, bowlers and series and inserts the games that are not recorded yet.

Writes are not transactional: if a later step fails the earlier rows stay.
"""

from __future__ import annotations

import logging
import string
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from scoresnap.bowler_matching import BowlerMatch, create_new_bowler, resolve_bowler_name
from scoresnap.parsing import ParsedBowler, ParsedScoreboard, parse_datetime
from scoresnap.series import find_or_create_series
from scoresnap.session_matching import find_matching_session, generate_session_name
from scoresnap.settings import (
    DEFAULT_POLICY,
    GPS_MATCH_DEGREES,
    SESSION_MATCH_WINDOW,
    MatchingPolicy,
)
from scoresnap.store import Store, StoreError

logger = logging.getLogger(__name__)

# (latitude, longitude, user_id) -> bowling alley id
AlleyLocator = Callable[[float, float, str], Optional[str]]

DEFAULT_TEAM_NAME = "Team A"


class PersistenceError(Exception):
    pass


@dataclass(frozen=True)
class UnresolvedName:
    parsed_name: str
    suggestions: list[BowlerMatch]
    bowler_index: int

    def to_dict(self) -> dict:
        return {
            "parsed_name": self.parsed_name,
            "suggestions": [match.to_dict() for match in self.suggestions],
            "bowler_index": self.bowler_index,
        }


@dataclass(frozen=True)
class NameResolutionAnalysis:
    needs_resolution: bool
    unresolved_names: list[UnresolvedName] = field(default_factory=list)
    resolved_mappings: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "needs_resolution": self.needs_resolution,
            "unresolved_names": [entry.to_dict() for entry in self.unresolved_names],
            "resolved_mappings": dict(self.resolved_mappings),
        }


@dataclass
class PersistResult:
    success: bool
    session_id: Optional[str] = None
    bowler_ids: list[str] = field(default_factory=list)
    series_ids: list[str] = field(default_factory=list)
    game_ids: list[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def analyze_name_resolution(
    store: Store,
    parsed: ParsedScoreboard,
    policy: MatchingPolicy = DEFAULT_POLICY,
) -> NameResolutionAnalysis:
    unresolved: list[UnresolvedName] = []
    mappings: dict[str, str] = {}
    for index, bowler in enumerate(parsed.bowlers):
        resolution = resolve_bowler_name(store, bowler.name, policy)
        if resolution.needs_user_input:
            unresolved.append(
                UnresolvedName(
                    parsed_name=bowler.name,
                    suggestions=resolution.suggestions,
                    bowler_index=index,
                )
            )
        elif resolution.resolved_bowler_id:
            mappings[bowler.name] = resolution.resolved_bowler_id
    return NameResolutionAnalysis(
        needs_resolution=bool(unresolved),
        unresolved_names=unresolved,
        resolved_mappings=mappings,
    )


def _session_date_time(upload: dict, parsed: ParsedScoreboard) -> datetime:
    for candidate in (upload.get("exif_datetime"), parsed.session.date_time):
        value = parse_datetime(candidate)
        if value:
            return value
    return datetime.now(timezone.utc)


def _locate_alley(
    locate_alley: Optional[AlleyLocator],
    latitude: Optional[float],
    longitude: Optional[float],
    user_id: str,
) -> Optional[str]:
    if latitude is None or longitude is None:
        logger.info("Upload has no GPS coordinates, skipping alley identification")
        return None
    if locate_alley is None:
        return None
    try:
        return locate_alley(latitude, longitude, user_id)
    except Exception:  # noqa: BLE001
        # Alley lookup is best effort; the upload still persists without it.
        logger.exception("Could not identify bowling alley at %s,%s", latitude, longitude)
        return None


def _next_team_name(existing: set[str]) -> str:
    for letter in string.ascii_uppercase[1:]:
        candidate = f"Team {letter}"
        if candidate not in existing:
            return candidate
    raise PersistenceError("No free team letter left in session")


def _ensure_teams(
    store: Store, session_id: str, parsed: ParsedScoreboard, user_id: str
) -> dict[str, str]:
    """Map each parsed team name to a team id in the session."""
    if not parsed.teams:
        return {}
    try:
        current = {team["name"]: team["id"] for team in store.fetch_teams(session_id)}
    except StoreError:
        logger.exception("Could not load teams for session %s", session_id)
        current = {}

    team_ids: dict[str, str] = {}
    for team in parsed.teams:
        team_name = team.name
        # A merged upload reads its own team as "Team A" again.
        if team_name == DEFAULT_TEAM_NAME and DEFAULT_TEAM_NAME in current:
            team_name = _next_team_name(set(current))
            logger.info("%s already in session %s, using %s", DEFAULT_TEAM_NAME, session_id, team_name)

        if team_name in current:
            team_ids[team.name] = current[team_name]
            continue
        try:
            current[team_name] = store.insert_team(session_id, team_name, user_id)
        except StoreError as exc:
            raise PersistenceError(f"Failed to create team {team_name}: {exc}") from exc
        team_ids[team.name] = current[team_name]
    return team_ids


def _associate_team(
    store: Store, team_id: Optional[str], bowler: ParsedBowler, bowler_id: str
) -> None:
    if not team_id:
        return
    try:
        if store.team_bowler_exists(team_id, bowler_id):
            return
        store.insert_team_bowler(team_id, bowler_id)
    except StoreError:
        logger.exception("Could not add %s to team %s", bowler.name, team_id)


def _bowler_id_for(
    store: Store, bowler: ParsedBowler, resolved_mappings: dict[str, str], user_id: str
) -> str:
    mapped = resolved_mappings.get(bowler.name)
    if mapped:
        return mapped
    bowler_id = create_new_bowler(store, bowler.name, user_id)
    if not bowler_id:
        raise PersistenceError(f"Failed to create bowler: {bowler.name}")
    return bowler_id


def _create_session(
    store: Store,
    parsed: ParsedScoreboard,
    session_date_time: datetime,
    bowling_alley_id: Optional[str],
    upload: dict,
    user_id: str,
) -> str:
    session = {
        "name": generate_session_name(session_date_time),
        "date_time": session_date_time,
        "location": parsed.session.location,
        "lane": parsed.session.lane,
        "bowling_alley_id": bowling_alley_id,
        "bowling_alley_name": parsed.session.bowling_alley_name,
        "gps_latitude": upload.get("exif_location_lat"),
        "gps_longitude": upload.get("exif_location_lng"),
        "created_by_user_id": user_id,
    }
    try:
        return store.insert_session(session)
    except StoreError as exc:
        raise PersistenceError(f"Failed to create session: {exc}") from exc


def persist_parsed_scoreboard_with_resolution(
    store: Store,
    upload_id: str,
    parsed: ParsedScoreboard,
    resolved_mappings: dict[str, str],
    user_id: str,
    locate_alley: Optional[AlleyLocator] = None,
    window: timedelta = SESSION_MATCH_WINDOW,
    gps_degrees: float = GPS_MATCH_DEGREES,
) -> PersistResult:
    logger.info(
        "Persisting upload %s: %d bowler(s), %d resolved mapping(s)",
        upload_id,
        len(parsed.bowlers),
        len(resolved_mappings),
    )
    result = PersistResult(success=False)
    try:
        upload = store.fetch_upload(upload_id)
        if not upload:
            raise PersistenceError(f"Failed to fetch upload data: upload {upload_id} not found")

        session_date_time = _session_date_time(upload, parsed)
        gps_lat = upload.get("exif_location_lat")
        gps_lng = upload.get("exif_location_lng")
        bowling_alley_id = _locate_alley(locate_alley, gps_lat, gps_lng, user_id)

        session_id = find_matching_session(
            store,
            session_date_time,
            bowling_alley_id,
            parsed.session.location,
            gps_lat,
            gps_lng,
            parsed.bowler_names,
            user_id,
            window=window,
            gps_degrees=gps_degrees,
        )
        if session_id:
            logger.info("Using existing session %s", session_id)
        else:
            session_id = _create_session(
                store, parsed, session_date_time, bowling_alley_id, upload, user_id
            )
            logger.info("Created session %s", session_id)
        result.session_id = session_id

        store.update_upload_session(upload_id, session_id)
        team_ids = _ensure_teams(store, session_id, parsed, user_id)

        for bowler in parsed.bowlers:
            bowler_id = _bowler_id_for(store, bowler, resolved_mappings, user_id)
            result.bowler_ids.append(bowler_id)

            team_name = parsed.team_for(bowler)
            _associate_team(store, team_ids.get(team_name) if team_name else None, bowler, bowler_id)

            plan = find_or_create_series(store, session_id, bowler_id, bowler.games)
            result.series_ids.append(plan.series_id)

            for game in plan.new_games(bowler.games):
                game_id = store.insert_game(
                    plan.series_id,
                    bowler_id,
                    game.game_number,
                    game.total_score,
                    game.is_partial,
                )
                result.game_ids.append(game_id)
                if game.frames:
                    store.insert_frames(game_id, [asdict(frame) for frame in game.frames])

            if plan.should_append:
                try:
                    store.update_series_games_count(plan.series_id, plan.total_games(bowler.games))
                except StoreError:
                    logger.warning("Could not update games_count for series %s", plan.series_id)

        result.success = True
        return result
    except Exception as exc:  # noqa: BLE001
        logger.exception("Persisting upload %s failed", upload_id)
        result.success = False
        result.error = str(exc) or exc.__class__.__name__
        return result
