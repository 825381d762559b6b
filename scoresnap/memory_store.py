"""In-process store so the service and its tests can run without Postgres."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from scoresnap.store import StoreError


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryStore:
    def __init__(self) -> None:
        self.api_tokens: dict[str, str] = {}
        self.bowlers: dict[str, dict] = {}
        self.bowler_aliases: list[dict] = []
        self.bowling_alleys: dict[str, dict] = {}
        self.uploads: dict[str, dict] = {}
        self.sessions: dict[str, dict] = {}
        self.teams: dict[str, dict] = {}
        self.team_bowlers: list[dict] = []
        self.series: dict[str, dict] = {}
        self.games: dict[str, dict] = {}
        self.frames: list[dict] = []

    def _require(self, table: dict[str, dict], key: str, label: str) -> dict:
        row = table.get(key)
        if row is None:
            raise StoreError(f"{label} {key} does not exist")
        return row

    def ensure_schema(self) -> None:
        return None

    def add_api_token(self, token: str, user_id: str) -> None:
        self.api_tokens[token] = user_id

    def fetch_user_id_for_token(self, token: str) -> Optional[str]:
        return self.api_tokens.get(token)

    def fetch_bowlers_with_aliases(self) -> list[dict]:
        return [
            {
                "id": bowler["id"],
                "canonical_name": bowler["canonical_name"],
                "primary_user_id": bowler["primary_user_id"],
                "aliases": self.fetch_bowler_aliases(bowler["id"]),
            }
            for bowler in self.bowlers.values()
        ]

    def fetch_bowler(self, bowler_id: str) -> Optional[dict]:
        bowler = self.bowlers.get(bowler_id)
        return dict(bowler) if bowler else None

    def insert_bowler(
        self,
        canonical_name: str,
        created_by_user_id: str,
        primary_user_id: Optional[str] = None,
    ) -> str:
        bowler_id = _new_id()
        self.bowlers[bowler_id] = {
            "id": bowler_id,
            "canonical_name": canonical_name,
            "primary_user_id": primary_user_id,
            "created_by_user_id": created_by_user_id,
        }
        return bowler_id

    def insert_bowler_alias(
        self, bowler_id: str, alias: str, source: str, confidence_score: float
    ) -> str:
        self._require(self.bowlers, bowler_id, "bowler")
        if source not in ("manual", "auto_vision"):
            raise StoreError(f"invalid alias source {source!r}")
        alias_id = _new_id()
        self.bowler_aliases.append(
            {
                "id": alias_id,
                "bowler_id": bowler_id,
                "alias": alias,
                "source": source,
                "confidence_score": confidence_score,
            }
        )
        return alias_id

    def fetch_bowler_aliases(self, bowler_id: str) -> list[dict]:
        return [
            {"alias": row["alias"], "confidence_score": row["confidence_score"]}
            for row in self.bowler_aliases
            if row["bowler_id"] == bowler_id
        ]

    def search_bowlers(self, term: str, limit: int) -> list[dict]:
        needle = term.lower()
        matches = [
            {"id": bowler["id"], "canonical_name": bowler["canonical_name"]}
            for bowler in self.bowlers.values()
            if needle in bowler["canonical_name"].lower()
        ]
        matches.sort(key=lambda entry: entry["canonical_name"])
        return matches[:limit]

    def insert_upload(
        self,
        user_id: str,
        original_filename: str,
        exif_datetime: Optional[datetime],
        exif_location_lat: Optional[float],
        exif_location_lng: Optional[float],
    ) -> str:
        upload_id = _new_id()
        self.uploads[upload_id] = {
            "id": upload_id,
            "user_id": user_id,
            "session_id": None,
            "original_filename": original_filename,
            "exif_datetime": exif_datetime,
            "exif_location_lat": exif_location_lat,
            "exif_location_lng": exif_location_lng,
        }
        return upload_id

    def fetch_upload(self, upload_id: str) -> Optional[dict]:
        upload = self.uploads.get(upload_id)
        return dict(upload) if upload else None

    def update_upload_session(self, upload_id: str, session_id: str) -> None:
        self._require(self.uploads, upload_id, "upload")["session_id"] = session_id

    def fetch_sessions_in_window(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[dict]:
        rows = []
        for session in self.sessions.values():
            if session["created_by_user_id"] != user_id:
                continue
            if not start <= session["date_time"] <= end:
                continue
            bowler_names = [
                self.bowlers[series["bowler_id"]]["canonical_name"]
                for series in self.series.values()
                if series["session_id"] == session["id"]
            ]
            rows.append(
                {
                    "id": session["id"],
                    "date_time": session["date_time"],
                    "bowling_alley_id": session["bowling_alley_id"],
                    "location": session["location"],
                    "gps_latitude": session["gps_latitude"],
                    "gps_longitude": session["gps_longitude"],
                    "bowler_names": bowler_names,
                }
            )
        return sorted(rows, key=lambda row: row["date_time"])

    def insert_session(self, session: dict[str, Any]) -> str:
        session_id = _new_id()
        self.sessions[session_id] = {
            "id": session_id,
            "name": session.get("name"),
            "date_time": session["date_time"],
            "location": session.get("location"),
            "lane": session.get("lane"),
            "bowling_alley_id": session.get("bowling_alley_id"),
            "bowling_alley_name": session.get("bowling_alley_name"),
            "gps_latitude": session.get("gps_latitude"),
            "gps_longitude": session.get("gps_longitude"),
            "created_by_user_id": session["created_by_user_id"],
        }
        return session_id

    def fetch_session(self, session_id: str) -> Optional[dict]:
        session = self.sessions.get(session_id)
        return dict(session) if session else None

    def fetch_teams(self, session_id: str) -> list[dict]:
        return [
            {"id": team["id"], "name": team["name"]}
            for team in self.teams.values()
            if team["session_id"] == session_id
        ]

    def insert_team(self, session_id: str, name: str, created_by_user_id: str) -> str:
        self._require(self.sessions, session_id, "session")
        team_id = _new_id()
        self.teams[team_id] = {
            "id": team_id,
            "session_id": session_id,
            "name": name,
            "created_by_user_id": created_by_user_id,
        }
        return team_id

    def team_bowler_exists(self, team_id: str, bowler_id: str) -> bool:
        return any(
            row["team_id"] == team_id and row["bowler_id"] == bowler_id
            for row in self.team_bowlers
        )

    def insert_team_bowler(self, team_id: str, bowler_id: str) -> str:
        self._require(self.teams, team_id, "team")
        self._require(self.bowlers, bowler_id, "bowler")
        association_id = _new_id()
        self.team_bowlers.append(
            {"id": association_id, "team_id": team_id, "bowler_id": bowler_id}
        )
        return association_id

    def fetch_series(self, session_id: str, bowler_id: str) -> Optional[dict]:
        for series in self.series.values():
            if series["session_id"] == session_id and series["bowler_id"] == bowler_id:
                games = sorted(
                    (
                        {"game_number": game["game_number"], "is_partial": game["is_partial"]}
                        for game in self.games.values()
                        if game["series_id"] == series["id"]
                    ),
                    key=lambda game: game["game_number"],
                )
                return {"id": series["id"], "games_count": series["games_count"], "games": games}
        return None

    def fetch_session_series(self, session_id: str) -> list[dict]:
        return [
            {
                "id": series["id"],
                "bowler_id": series["bowler_id"],
                "games_count": series["games_count"],
                "canonical_name": self.bowlers[series["bowler_id"]]["canonical_name"],
            }
            for series in self.series.values()
            if series["session_id"] == session_id
        ]

    def insert_series(self, session_id: str, bowler_id: str, games_count: int) -> str:
        self._require(self.sessions, session_id, "session")
        self._require(self.bowlers, bowler_id, "bowler")
        series_id = _new_id()
        self.series[series_id] = {
            "id": series_id,
            "session_id": session_id,
            "bowler_id": bowler_id,
            "games_count": games_count,
        }
        return series_id

    def update_series_games_count(self, series_id: str, games_count: int) -> None:
        self._require(self.series, series_id, "series")["games_count"] = games_count

    def insert_game(
        self,
        series_id: str,
        bowler_id: str,
        game_number: int,
        total_score: Optional[int],
        is_partial: bool,
    ) -> str:
        self._require(self.series, series_id, "series")
        game_id = _new_id()
        self.games[game_id] = {
            "id": game_id,
            "series_id": series_id,
            "bowler_id": bowler_id,
            "game_number": game_number,
            "total_score": total_score,
            "is_partial": is_partial,
            "created_at": _now(),
        }
        return game_id

    def insert_frames(self, game_id: str, frames: list[dict]) -> None:
        self._require(self.games, game_id, "game")
        for frame in frames:
            number = frame["frame_number"]
            if not 1 <= number <= 10:
                raise StoreError(f"frame_number {number} out of range")
        for frame in frames:
            self.frames.append(
                {
                    "game_id": game_id,
                    "frame_number": frame["frame_number"],
                    "roll_1": frame.get("roll_1"),
                    "roll_2": frame.get("roll_2"),
                    "roll_3": frame.get("roll_3"),
                    "notation": frame.get("notation"),
                }
            )

    def fetch_games(self, series_ids: list[str]) -> list[dict]:
        wanted = set(series_ids)
        games = [game for game in self.games.values() if game["series_id"] in wanted]
        games.sort(key=lambda game: (game["game_number"], game["created_at"]))
        result = []
        for game in games:
            frames = sorted(
                (
                    {key: value for key, value in frame.items() if key != "game_id"}
                    for frame in self.frames
                    if frame["game_id"] == game["id"]
                ),
                key=lambda frame: frame["frame_number"],
            )
            entry = {key: value for key, value in game.items() if key != "created_at"}
            result.append({**entry, "frames": frames})
        return result

    def fetch_bowler_games(self, bowler_id: str) -> list[dict]:
        return [
            {
                "id": game["id"],
                "series_id": game["series_id"],
                "game_number": game["game_number"],
                "total_score": game["total_score"],
                "is_partial": game["is_partial"],
            }
            for game in self.games.values()
            if game["bowler_id"] == bowler_id
        ]

    def find_bowling_alley_by_place_id(self, place_id: str) -> Optional[dict]:
        for alley in self.bowling_alleys.values():
            if alley.get("google_place_id") == place_id:
                return dict(alley)
        return None

    def find_bowling_alleys_near(
        self, latitude: float, longitude: float, degrees: float
    ) -> list[dict]:
        return [
            dict(alley)
            for alley in self.bowling_alleys.values()
            if alley.get("latitude") is not None
            and alley.get("longitude") is not None
            and abs(alley["latitude"] - latitude) <= degrees
            and abs(alley["longitude"] - longitude) <= degrees
        ]

    def insert_bowling_alley(self, alley: dict[str, Any], created_by_user_id: str) -> str:
        place_id = alley.get("google_place_id")
        if place_id and self.find_bowling_alley_by_place_id(place_id):
            raise StoreError(f"bowling alley with place id {place_id} already exists")
        alley_id = _new_id()
        self.bowling_alleys[alley_id] = {
            **alley,
            "id": alley_id,
            "created_by_user_id": created_by_user_id,
        }
        return alley_id
