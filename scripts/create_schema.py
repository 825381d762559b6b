#!/usr/bin/env python3
"""Ensure the Postgres schema and data migrations are applied, then echo the DDL."""

import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from scoresnap.db import SCHEMA_STATEMENTS, ensure_schema
from scoresnap.migrations import apply_migrations
from scoresnap.settings import MEMORY_DATABASE_URL, load_settings


def main() -> None:
    settings = load_settings()
    if settings.database_url == MEMORY_DATABASE_URL:
        raise SystemExit("DATABASE_URL points at the in-memory store; nothing to create.")

    ensure_schema(settings.database_url)
    applied = apply_migrations(settings.database_url)
    print("Postgres schema ensured.")
    print(f"Database url: {settings.database_url}")
    if applied:
        print("Applied migrations: " + ", ".join(applied))

    print("\nSchema DDL dump:")
    for statement in SCHEMA_STATEMENTS:
        print(statement.strip())


if __name__ == "__main__":
    main()
