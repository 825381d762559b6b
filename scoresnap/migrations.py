from typing import Callable, Tuple

import psycopg

MigrationTask = Tuple[str, str, Callable[[psycopg.Cursor], None]]


def _backfill_series_games_count(cursor: psycopg.Cursor) -> None:
    cursor.execute(
        """
        select s.id, s.games_count, count(g.id)
        from series s
        left join games g on g.series_id = s.id
        group by s.id, s.games_count
        order by s.id;
        """
    )
    for series_id, games_count, recorded in cursor.fetchall():
        if games_count == recorded:
            continue
        cursor.execute(
            """
            update series
            set games_count = %s
            where id = %s;
            """,
            (recorded, series_id),
        )


def _normalize_alias_sources(cursor: psycopg.Cursor) -> None:
    cursor.execute(
        """
        update bowler_aliases
        set source = 'auto_vision'
        where source is null or source not in ('manual', 'auto_vision');
        """
    )


def _ensure_migrations_table(cursor: psycopg.Cursor) -> None:
    cursor.execute(
        """
        create table if not exists schema_migrations (
            id text primary key,
            description text not null,
            applied_at timestamptz not null default now()
        );
        """
    )


MIGRATIONS: list[MigrationTask] = [
    (
        "20251101_series_games_count",
        "Recount series.games_count from the games recorded for each series",
        _backfill_series_games_count,
    ),
    (
        "20251115_alias_sources",
        "Default unknown bowler alias sources to auto_vision",
        _normalize_alias_sources,
    ),
]


def apply_migrations(database_url: str) -> list[str]:
    """Run pending migrations in order; returns the ids that were applied."""
    applied: list[str] = []
    with psycopg.connect(database_url) as connection:
        with connection.cursor() as cursor:
            _ensure_migrations_table(cursor)
        connection.commit()
        for migration_id, description, task in MIGRATIONS:
            with connection.cursor() as cursor:
                cursor.execute(
                    "select 1 from schema_migrations where id = %s;",
                    (migration_id,),
                )
                if cursor.fetchone():
                    continue
                task(cursor)
                cursor.execute(
                    """
                    insert into schema_migrations (id, description)
                    values (%s, %s);
                    """,
                    (migration_id, description),
                )
            connection.commit()
            applied.append(migration_id)
    return applied


if __name__ == "__main__":
    from scoresnap.settings import load_settings

    apply_migrations(load_settings().database_url)
