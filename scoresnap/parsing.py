"""Typed scoreboard structure and cleanup of the JSON returned by the vision parser.

The parser output is untrusted: numbers arrive as strings (``"G3"``, ``"X"``),
series totals show up as game scores and frames go missing. Everything is
normalized here once so that the persistence code can rely on the types.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from scoresnap.settings import FRAMES_PER_GAME, MAX_GAME_SCORE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedFrame:
    frame_number: int
    roll_1: Optional[int] = None
    roll_2: Optional[int] = None
    roll_3: Optional[int] = None
    notation: Optional[str] = None


@dataclass(frozen=True)
class ParsedGame:
    game_number: int
    total_score: Optional[int] = None
    frames: Optional[list[ParsedFrame]] = None

    @property
    def is_partial(self) -> bool:
        return not self.frames


@dataclass(frozen=True)
class ParsedBowler:
    name: str
    team: Optional[str] = None
    games: list[ParsedGame] = field(default_factory=list)


@dataclass(frozen=True)
class ParsedTeam:
    name: str
    bowlers: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ParsedSession:
    date_time: Optional[str] = None
    location: Optional[str] = None
    lane: Optional[int] = None
    bowling_alley_name: Optional[str] = None


@dataclass(frozen=True)
class ParsedScoreboard:
    session: ParsedSession = field(default_factory=ParsedSession)
    teams: list[ParsedTeam] = field(default_factory=list)
    bowlers: list[ParsedBowler] = field(default_factory=list)

    @property
    def bowler_names(self) -> list[str]:
        return [bowler.name for bowler in self.bowlers]

    def team_for(self, bowler: ParsedBowler) -> Optional[str]:
        if bowler.team:
            return bowler.team
        for team in self.teams:
            if bowler.name in team.bowlers:
                return team.name
        return None

    def to_dict(self) -> dict:
        return asdict(self)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 value; naive times are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _positive_number(value: Any) -> Optional[int]:
    """Accept ``3``, ``3.0`` or strings like ``"G3"``; anything non-positive is dropped."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        number = int(value)
    elif isinstance(value, str):
        digits = re.sub(r"\D", "", value)
        if not digits:
            return None
        number = int(digits)
    else:
        return None
    return number if number > 0 else None


def _list_of(value: Any) -> list:
    return value if isinstance(value, list) else []


def _clean_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def clean_lane_number(value: Any) -> Optional[int]:
    return _positive_number(value)


def convert_roll(value: Any, previous_roll: Optional[int] = None) -> Optional[int]:
    """Convert scoreboard notation to pins: ``X`` is 10, ``-`` is 0, ``/`` completes a spare."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None
    symbol = value.strip()
    if symbol in ("X", "x"):
        return 10
    if symbol == "-":
        return 0
    if symbol == "/":
        return 10 - previous_roll if previous_roll is not None else None
    match = re.match(r"^-?\d+", symbol)
    return int(match.group()) if match else None


def _clean_frame(raw: dict) -> Optional[ParsedFrame]:
    frame_number = _positive_number(raw.get("frame_number"))
    if frame_number is None or frame_number > FRAMES_PER_GAME:
        return None
    roll_1 = convert_roll(raw.get("roll_1"))
    roll_2 = convert_roll(raw.get("roll_2"), roll_1)
    roll_3 = convert_roll(raw.get("roll_3"), roll_2)
    return ParsedFrame(
        frame_number=frame_number,
        roll_1=roll_1,
        roll_2=roll_2,
        roll_3=roll_3,
        notation=_clean_text(raw.get("notation")),
    )


def _clean_score(value: Any, bowler_name: str, game_number: int) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        logger.warning("Dropping non-numeric score for %s game %d", bowler_name, game_number)
        return None
    if value > MAX_GAME_SCORE or value < 0:
        # usually a series total read into the game column
        logger.warning(
            "Dropping score %s for %s game %d (outside 0-%d)",
            value,
            bowler_name,
            game_number,
            MAX_GAME_SCORE,
        )
        return None
    return int(value)


def _clean_game(raw: dict, bowler_name: str) -> Optional[ParsedGame]:
    game_number = _positive_number(raw.get("game_number"))
    if game_number is None:
        return None
    total_score = _clean_score(raw.get("total_score"), bowler_name, game_number)

    raw_frames = raw.get("frames")
    if not isinstance(raw_frames, list):
        return ParsedGame(game_number=game_number, total_score=total_score)

    frames = [
        frame
        for frame in (_clean_frame(item) for item in raw_frames if isinstance(item, dict))
        if frame is not None
    ][:FRAMES_PER_GAME]

    frame_numbers = {frame.frame_number for frame in frames}
    if FRAMES_PER_GAME in frame_numbers:
        missing = [n for n in range(1, FRAMES_PER_GAME + 1) if n not in frame_numbers]
        if missing:
            logger.error(
                "Rejecting frames for %s game %d: complete game is missing frame(s) %s",
                bowler_name,
                game_number,
                ", ".join(str(n) for n in missing),
            )
            return ParsedGame(game_number=game_number, total_score=None, frames=None)
    return ParsedGame(game_number=game_number, total_score=total_score, frames=frames)


def validate_and_clean_parsed_data(data: Any) -> ParsedScoreboard:
    if not isinstance(data, dict):
        return ParsedScoreboard()

    raw_session = data.get("session") if isinstance(data.get("session"), dict) else {}
    session = ParsedSession(
        date_time=_clean_text(raw_session.get("date_time")),
        location=_clean_text(raw_session.get("location")),
        lane=clean_lane_number(raw_session.get("lane")),
        bowling_alley_name=_clean_text(raw_session.get("bowling_alley_name")),
    )

    teams: list[ParsedTeam] = []
    for raw_team in _list_of(data.get("teams")):
        if not isinstance(raw_team, dict):
            continue
        name = raw_team.get("name")
        members = raw_team.get("bowlers")
        if not isinstance(name, str) or not name.strip() or not isinstance(members, list):
            continue
        teams.append(
            ParsedTeam(
                name=name.strip(),
                bowlers=[member.strip() for member in members if isinstance(member, str)],
            )
        )

    team_by_bowler = {
        member.lower(): team.name for team in teams for member in team.bowlers
    }

    bowlers: list[ParsedBowler] = []
    for raw_bowler in _list_of(data.get("bowlers")):
        if not isinstance(raw_bowler, dict):
            continue
        name = raw_bowler.get("name")
        if not isinstance(name, str) or not name.strip():
            continue
        name = name.strip()
        team = _clean_text(raw_bowler.get("team")) or team_by_bowler.get(name.lower())
        games = [
            game
            for game in (
                _clean_game(raw_game, name)
                for raw_game in _list_of(raw_bowler.get("games"))
                if isinstance(raw_game, dict)
            )
            if game is not None
        ]
        bowlers.append(ParsedBowler(name=name, team=team, games=games))

    return ParsedScoreboard(session=session, teams=teams, bowlers=bowlers)
