import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

MEMORY_DATABASE_URL = "memory://"
DEFAULT_DATABASE_URL = "postgresql://localhost:5432/scoresnap"

SESSION_MATCH_WINDOW = timedelta(hours=3)
# ~100 m in both latitude and longitude
GPS_MATCH_DEGREES = 0.001
MAX_GAME_SCORE = 300
FRAMES_PER_GAME = 10


@dataclass(frozen=True)
class Settings:
    database_url: str
    google_places_api_key: str
    log_level: str = "INFO"


@dataclass(frozen=True)
class MatchingPolicy:
    exact_threshold: float = 0.8
    alias_threshold: float = 0.7
    fuzzy_threshold: float = 0.6
    auto_resolve_threshold: float = 0.8
    resolved_suggestion_limit: int = 3
    ambiguous_suggestion_limit: int = 5
    alias_confidence: float = 0.8


DEFAULT_POLICY = MatchingPolicy()


def _normalize_database_url(value: Optional[str]) -> str:
    if not value:
        return DEFAULT_DATABASE_URL
    normalized = value.strip()
    if normalized.lower() in ("memory", MEMORY_DATABASE_URL):
        return MEMORY_DATABASE_URL
    # Supabase and Heroku hand out postgres://, libpq accepts both
    if normalized.startswith("postgres://"):
        return "postgresql://" + normalized[len("postgres://"):]
    return normalized


def load_settings() -> Settings:
    database_url = _normalize_database_url(os.getenv("DATABASE_URL"))
    google_places_api_key = os.getenv("GOOGLE_PLACES_API_KEY", "")
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        google_places_api_key=google_places_api_key,
        log_level=log_level,
    )
