"""The data-access surface shared by the Postgres and in-memory stores.

Every matching and persistence function takes a store explicitly, so the same
logic runs against Postgres in production and against ``MemoryStore`` in tests.
Rows are plain dicts keyed by column name.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol


class StoreError(Exception):
    pass


class Store(Protocol):
    def ensure_schema(self) -> None: ...

    def fetch_user_id_for_token(self, token: str) -> Optional[str]: ...

    # bowlers
    def fetch_bowlers_with_aliases(self) -> list[dict]: ...

    def fetch_bowler(self, bowler_id: str) -> Optional[dict]: ...

    def insert_bowler(self, canonical_name: str, created_by_user_id: str) -> str: ...

    def insert_bowler_alias(
        self, bowler_id: str, alias: str, source: str, confidence_score: float
    ) -> str: ...

    def fetch_bowler_aliases(self, bowler_id: str) -> list[dict]: ...

    def search_bowlers(self, term: str, limit: int) -> list[dict]: ...

    # uploads
    def insert_upload(
        self,
        user_id: str,
        original_filename: str,
        exif_datetime: Optional[datetime],
        exif_location_lat: Optional[float],
        exif_location_lng: Optional[float],
    ) -> str: ...

    def fetch_upload(self, upload_id: str) -> Optional[dict]: ...

    def update_upload_session(self, upload_id: str, session_id: str) -> None: ...

    # sessions and teams
    def fetch_sessions_in_window(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[dict]: ...

    def insert_session(self, session: dict[str, Any]) -> str: ...

    def fetch_session(self, session_id: str) -> Optional[dict]: ...

    def fetch_teams(self, session_id: str) -> list[dict]: ...

    def insert_team(self, session_id: str, name: str, created_by_user_id: str) -> str: ...

    def team_bowler_exists(self, team_id: str, bowler_id: str) -> bool: ...

    def insert_team_bowler(self, team_id: str, bowler_id: str) -> str: ...

    # series, games, frames
    def fetch_series(self, session_id: str, bowler_id: str) -> Optional[dict]: ...

    def fetch_session_series(self, session_id: str) -> list[dict]: ...

    def insert_series(self, session_id: str, bowler_id: str, games_count: int) -> str: ...

    def update_series_games_count(self, series_id: str, games_count: int) -> None: ...

    def insert_game(
        self,
        series_id: str,
        bowler_id: str,
        game_number: int,
        total_score: Optional[int],
        is_partial: bool,
    ) -> str: ...

    def insert_frames(self, game_id: str, frames: list[dict]) -> None: ...

    def fetch_games(self, series_ids: list[str]) -> list[dict]: ...

    def fetch_bowler_games(self, bowler_id: str) -> list[dict]: ...

    # bowling alleys
    def find_bowling_alley_by_place_id(self, place_id: str) -> Optional[dict]: ...

    def find_bowling_alleys_near(
        self, latitude: float, longitude: float, degrees: float
    ) -> list[dict]: ...

    def insert_bowling_alley(self, alley: dict[str, Any], created_by_user_id: str) -> str: ...
