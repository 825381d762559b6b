from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Optional

import psycopg
from psycopg.rows import dict_row

from scoresnap.memory_store import MemoryStore
from scoresnap.settings import MEMORY_DATABASE_URL
from scoresnap.store import Store, StoreError

SCHEMA_STATEMENTS = [
    """
    create table if not exists api_tokens (
        token text primary key,
        user_id text not null,
        created_at timestamptz not null default now()
    );
    """,
    """
    create table if not exists bowlers (
        id text primary key default gen_random_uuid()::text,
        canonical_name text not null,
        primary_user_id text,
        created_by_user_id text not null,
        created_at timestamptz not null default now()
    );
    """,
    """
    create table if not exists bowler_aliases (
        id text primary key default gen_random_uuid()::text,
        bowler_id text not null references bowlers(id) on delete cascade,
        alias text not null,
        source text not null default 'auto_vision'
            check (source in ('manual', 'auto_vision')),
        confidence_score real,
        created_at timestamptz not null default now()
    );
    """,
    """
    create table if not exists bowling_alleys (
        id text primary key default gen_random_uuid()::text,
        name text not null,
        address text,
        city text,
        state text,
        zip_code text,
        phone text,
        website text,
        google_place_id text unique,
        latitude double precision,
        longitude double precision,
        created_by_user_id text,
        created_at timestamptz not null default now()
    );
    """,
    """
    create table if not exists sessions (
        id text primary key default gen_random_uuid()::text,
        name text,
        date_time timestamptz not null,
        location text,
        lane integer,
        bowling_alley_id text references bowling_alleys(id) on delete set null,
        bowling_alley_name text,
        gps_latitude double precision,
        gps_longitude double precision,
        created_by_user_id text not null,
        created_at timestamptz not null default now()
    );
    """,
    """
    create table if not exists uploads (
        id text primary key default gen_random_uuid()::text,
        user_id text not null,
        session_id text references sessions(id) on delete set null,
        original_filename text not null default '',
        exif_datetime timestamptz,
        exif_location_lat double precision,
        exif_location_lng double precision,
        created_at timestamptz not null default now()
    );
    """,
    """
    create table if not exists teams (
        id text primary key default gen_random_uuid()::text,
        session_id text not null references sessions(id) on delete cascade,
        name text not null,
        created_by_user_id text not null,
        created_at timestamptz not null default now()
    );
    """,
    """
    create table if not exists team_bowlers (
        id text primary key default gen_random_uuid()::text,
        team_id text not null references teams(id) on delete cascade,
        bowler_id text not null references bowlers(id) on delete cascade,
        created_at timestamptz not null default now()
    );
    """,
    """
    create table if not exists series (
        id text primary key default gen_random_uuid()::text,
        session_id text not null references sessions(id) on delete cascade,
        bowler_id text not null references bowlers(id) on delete cascade,
        games_count integer not null default 0,
        created_at timestamptz not null default now()
    );
    """,
    """
    create table if not exists games (
        id text primary key default gen_random_uuid()::text,
        series_id text not null references series(id) on delete cascade,
        bowler_id text not null references bowlers(id) on delete cascade,
        game_number integer not null,
        total_score integer,
        is_partial boolean not null default false,
        created_at timestamptz not null default now()
    );
    """,
    """
    create table if not exists frames (
        id text primary key default gen_random_uuid()::text,
        game_id text not null references games(id) on delete cascade,
        frame_number integer not null check (frame_number between 1 and 10),
        roll_1 integer,
        roll_2 integer,
        roll_3 integer,
        notation text
    );
    """,
]


def ensure_schema(database_url: str) -> None:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            for statement in SCHEMA_STATEMENTS:
                cur.execute(statement)


class PostgresStore:
    """Store backed by Postgres; one short-lived connection per call."""

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url

    @contextmanager
    def _cursor(self) -> Iterator[psycopg.Cursor]:
        try:
            with psycopg.connect(self.database_url, row_factory=dict_row) as conn:
                with conn.cursor() as cur:
                    yield cur
        except psycopg.Error as exc:
            raise StoreError(str(exc)) from exc

    def _insert_returning_id(self, query: str, params: tuple) -> str:
        with self._cursor() as cur:
            cur.execute(query, params)
            row = cur.fetchone()
        if not row:
            raise StoreError("insert returned no id")
        return row["id"]

    def ensure_schema(self) -> None:
        try:
            ensure_schema(self.database_url)
        except psycopg.Error as exc:
            raise StoreError(str(exc)) from exc

    def fetch_user_id_for_token(self, token: str) -> Optional[str]:
        with self._cursor() as cur:
            cur.execute("select user_id from api_tokens where token = %s;", (token,))
            row = cur.fetchone()
        return row["user_id"] if row else None

    def fetch_bowlers_with_aliases(self) -> list[dict]:
        with self._cursor() as cur:
            cur.execute(
                """
                select id, canonical_name, primary_user_id
                from bowlers
                order by created_at;
                """
            )
            bowlers = cur.fetchall()
            cur.execute(
                """
                select bowler_id, alias, confidence_score
                from bowler_aliases
                order by created_at;
                """
            )
            alias_rows = cur.fetchall()
        aliases: dict[str, list[dict]] = defaultdict(list)
        for row in alias_rows:
            aliases[row["bowler_id"]].append(
                {"alias": row["alias"], "confidence_score": row["confidence_score"]}
            )
        return [{**bowler, "aliases": aliases.get(bowler["id"], [])} for bowler in bowlers]

    def fetch_bowler(self, bowler_id: str) -> Optional[dict]:
        with self._cursor() as cur:
            cur.execute(
                """
                select id, canonical_name, primary_user_id, created_by_user_id
                from bowlers
                where id = %s;
                """,
                (bowler_id,),
            )
            return cur.fetchone()

    def insert_bowler(self, canonical_name: str, created_by_user_id: str) -> str:
        return self._insert_returning_id(
            """
            insert into bowlers (canonical_name, created_by_user_id)
            values (%s, %s)
            returning id;
            """,
            (canonical_name, created_by_user_id),
        )

    def insert_bowler_alias(
        self, bowler_id: str, alias: str, source: str, confidence_score: float
    ) -> str:
        return self._insert_returning_id(
            """
            insert into bowler_aliases (bowler_id, alias, source, confidence_score)
            values (%s, %s, %s, %s)
            returning id;
            """,
            (bowler_id, alias, source, confidence_score),
        )

    def fetch_bowler_aliases(self, bowler_id: str) -> list[dict]:
        with self._cursor() as cur:
            cur.execute(
                """
                select alias, confidence_score
                from bowler_aliases
                where bowler_id = %s
                order by created_at;
                """,
                (bowler_id,),
            )
            return cur.fetchall()

    def search_bowlers(self, term: str, limit: int) -> list[dict]:
        with self._cursor() as cur:
            cur.execute(
                """
                select id, canonical_name
                from bowlers
                where canonical_name ilike %s
                order by canonical_name
                limit %s;
                """,
                (f"%{term}%", limit),
            )
            return cur.fetchall()

    def insert_upload(
        self,
        user_id: str,
        original_filename: str,
        exif_datetime: Optional[datetime],
        exif_location_lat: Optional[float],
        exif_location_lng: Optional[float],
    ) -> str:
        return self._insert_returning_id(
            """
            insert into uploads (
                user_id,
                original_filename,
                exif_datetime,
                exif_location_lat,
                exif_location_lng
            )
            values (%s, %s, %s, %s, %s)
            returning id;
            """,
            (user_id, original_filename, exif_datetime, exif_location_lat, exif_location_lng),
        )

    def fetch_upload(self, upload_id: str) -> Optional[dict]:
        with self._cursor() as cur:
            cur.execute(
                """
                select
                    id,
                    user_id,
                    session_id,
                    original_filename,
                    exif_datetime,
                    exif_location_lat,
                    exif_location_lng
                from uploads
                where id = %s;
                """,
                (upload_id,),
            )
            return cur.fetchone()

    def update_upload_session(self, upload_id: str, session_id: str) -> None:
        with self._cursor() as cur:
            cur.execute(
                "update uploads set session_id = %s where id = %s;",
                (session_id, upload_id),
            )

    def fetch_sessions_in_window(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[dict]:
        with self._cursor() as cur:
            cur.execute(
                """
                select
                    s.id,
                    s.date_time,
                    s.bowling_alley_id,
                    s.location,
                    s.gps_latitude,
                    s.gps_longitude,
                    coalesce(
                        array_agg(b.canonical_name) filter (where b.canonical_name is not null),
                        '{}'
                    ) as bowler_names
                from sessions s
                left join series sr on sr.session_id = s.id
                left join bowlers b on b.id = sr.bowler_id
                where s.created_by_user_id = %s
                  and s.date_time >= %s
                  and s.date_time <= %s
                group by s.id
                order by s.date_time;
                """,
                (user_id, start, end),
            )
            return cur.fetchall()

    def insert_session(self, session: dict[str, Any]) -> str:
        return self._insert_returning_id(
            """
            insert into sessions (
                name,
                date_time,
                location,
                lane,
                bowling_alley_id,
                bowling_alley_name,
                gps_latitude,
                gps_longitude,
                created_by_user_id
            )
            values (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            returning id;
            """,
            (
                session.get("name"),
                session["date_time"],
                session.get("location"),
                session.get("lane"),
                session.get("bowling_alley_id"),
                session.get("bowling_alley_name"),
                session.get("gps_latitude"),
                session.get("gps_longitude"),
                session["created_by_user_id"],
            ),
        )

    def fetch_session(self, session_id: str) -> Optional[dict]:
        with self._cursor() as cur:
            cur.execute(
                """
                select
                    id,
                    name,
                    date_time,
                    location,
                    lane,
                    bowling_alley_id,
                    bowling_alley_name,
                    gps_latitude,
                    gps_longitude,
                    created_by_user_id
                from sessions
                where id = %s;
                """,
                (session_id,),
            )
            return cur.fetchone()

    def fetch_teams(self, session_id: str) -> list[dict]:
        with self._cursor() as cur:
            cur.execute(
                """
                select id, name
                from teams
                where session_id = %s
                order by created_at;
                """,
                (session_id,),
            )
            return cur.fetchall()

    def insert_team(self, session_id: str, name: str, created_by_user_id: str) -> str:
        return self._insert_returning_id(
            """
            insert into teams (session_id, name, created_by_user_id)
            values (%s, %s, %s)
            returning id;
            """,
            (session_id, name, created_by_user_id),
        )

    def team_bowler_exists(self, team_id: str, bowler_id: str) -> bool:
        with self._cursor() as cur:
            cur.execute(
                "select 1 from team_bowlers where team_id = %s and bowler_id = %s limit 1;",
                (team_id, bowler_id),
            )
            return cur.fetchone() is not None

    def insert_team_bowler(self, team_id: str, bowler_id: str) -> str:
        return self._insert_returning_id(
            """
            insert into team_bowlers (team_id, bowler_id)
            values (%s, %s)
            returning id;
            """,
            (team_id, bowler_id),
        )

    def fetch_series(self, session_id: str, bowler_id: str) -> Optional[dict]:
        with self._cursor() as cur:
            cur.execute(
                """
                select id, games_count
                from series
                where session_id = %s and bowler_id = %s
                order by created_at
                limit 1;
                """,
                (session_id, bowler_id),
            )
            series = cur.fetchone()
            if not series:
                return None
            cur.execute(
                """
                select game_number, is_partial
                from games
                where series_id = %s
                order by game_number;
                """,
                (series["id"],),
            )
            return {**series, "games": cur.fetchall()}

    def fetch_session_series(self, session_id: str) -> list[dict]:
        with self._cursor() as cur:
            cur.execute(
                """
                select sr.id, sr.bowler_id, sr.games_count, b.canonical_name
                from series sr
                join bowlers b on b.id = sr.bowler_id
                where sr.session_id = %s
                order by sr.created_at;
                """,
                (session_id,),
            )
            return cur.fetchall()

    def insert_series(self, session_id: str, bowler_id: str, games_count: int) -> str:
        return self._insert_returning_id(
            """
            insert into series (session_id, bowler_id, games_count)
            values (%s, %s, %s)
            returning id;
            """,
            (session_id, bowler_id, games_count),
        )

    def update_series_games_count(self, series_id: str, games_count: int) -> None:
        with self._cursor() as cur:
            cur.execute(
                "update series set games_count = %s where id = %s;",
                (games_count, series_id),
            )

    def insert_game(
        self,
        series_id: str,
        bowler_id: str,
        game_number: int,
        total_score: Optional[int],
        is_partial: bool,
    ) -> str:
        return self._insert_returning_id(
            """
            insert into games (series_id, bowler_id, game_number, total_score, is_partial)
            values (%s, %s, %s, %s, %s)
            returning id;
            """,
            (series_id, bowler_id, game_number, total_score, is_partial),
        )

    def insert_frames(self, game_id: str, frames: list[dict]) -> None:
        with self._cursor() as cur:
            cur.executemany(
                """
                insert into frames (game_id, frame_number, roll_1, roll_2, roll_3, notation)
                values (%s, %s, %s, %s, %s, %s);
                """,
                [
                    (
                        game_id,
                        frame["frame_number"],
                        frame.get("roll_1"),
                        frame.get("roll_2"),
                        frame.get("roll_3"),
                        frame.get("notation"),
                    )
                    for frame in frames
                ],
            )

    def fetch_games(self, series_ids: list[str]) -> list[dict]:
        if not series_ids:
            return []
        with self._cursor() as cur:
            cur.execute(
                """
                select id, series_id, bowler_id, game_number, total_score, is_partial
                from games
                where series_id = any(%s)
                order by game_number, created_at;
                """,
                (series_ids,),
            )
            games = cur.fetchall()
            game_ids = [game["id"] for game in games]
            cur.execute(
                """
                select game_id, frame_number, roll_1, roll_2, roll_3, notation
                from frames
                where game_id = any(%s)
                order by frame_number;
                """,
                (game_ids,),
            )
            frame_rows = cur.fetchall()
        frames: dict[str, list[dict]] = defaultdict(list)
        for row in frame_rows:
            game_id = row.pop("game_id")
            frames[game_id].append(row)
        return [{**game, "frames": frames.get(game["id"], [])} for game in games]

    def fetch_bowler_games(self, bowler_id: str) -> list[dict]:
        with self._cursor() as cur:
            cur.execute(
                """
                select id, series_id, game_number, total_score, is_partial
                from games
                where bowler_id = %s
                order by created_at;
                """,
                (bowler_id,),
            )
            return cur.fetchall()

    def find_bowling_alley_by_place_id(self, place_id: str) -> Optional[dict]:
        with self._cursor() as cur:
            cur.execute(
                """
                select id, name, latitude, longitude
                from bowling_alleys
                where google_place_id = %s
                limit 1;
                """,
                (place_id,),
            )
            return cur.fetchone()

    def find_bowling_alleys_near(
        self, latitude: float, longitude: float, degrees: float
    ) -> list[dict]:
        with self._cursor() as cur:
            cur.execute(
                """
                select id, name, latitude, longitude
                from bowling_alleys
                where latitude between %s and %s
                  and longitude between %s and %s;
                """,
                (
                    latitude - degrees,
                    latitude + degrees,
                    longitude - degrees,
                    longitude + degrees,
                ),
            )
            return cur.fetchall()

    def insert_bowling_alley(self, alley: dict[str, Any], created_by_user_id: str) -> str:
        return self._insert_returning_id(
            """
            insert into bowling_alleys (
                name,
                address,
                city,
                state,
                zip_code,
                phone,
                website,
                google_place_id,
                latitude,
                longitude,
                created_by_user_id
            )
            values (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            returning id;
            """,
            (
                alley["name"],
                alley.get("address"),
                alley.get("city"),
                alley.get("state"),
                alley.get("zip_code"),
                alley.get("phone"),
                alley.get("website"),
                alley.get("google_place_id"),
                alley.get("latitude"),
                alley.get("longitude"),
                created_by_user_id,
            ),
        )


def open_store(database_url: str) -> Store:
    if database_url == MEMORY_DATABASE_URL:
        return MemoryStore()
    return PostgresStore(database_url)
