import logging
from dataclasses import dataclass, field
from typing import Protocol, Sequence

from scoresnap.store import Store

logger = logging.getLogger(__name__)


class NumberedGame(Protocol):
    game_number: int


def _first_per_number(games: Sequence[NumberedGame]) -> list:
    seen: set[int] = set()
    unique = []
    for game in games:
        if game.game_number in seen:
            continue
        seen.add(game.game_number)
        unique.append(game)
    return unique


@dataclass(frozen=True)
class SeriesPlan:
    series_id: str
    existing_games: list[int] = field(default_factory=list)
    conflicts: list[int] = field(default_factory=list)
    should_append: bool = False

    def new_games(self, games: Sequence[NumberedGame]) -> list:
        """Games to insert: one per game number, none already recorded."""
        recorded = set(self.existing_games)
        return [game for game in _first_per_number(games) if game.game_number not in recorded]

    def total_games(self, games: Sequence[NumberedGame]) -> int:
        return len(set(self.existing_games)) + len(self.new_games(games))


def find_or_create_series(
    store: Store,
    session_id: str,
    bowler_id: str,
    new_games: Sequence[NumberedGame],
) -> SeriesPlan:
    """Find the bowler's series in the session, or create it.

    Game numbers already recorded in an existing series, and repeats of a
    number within ``new_games``, are reported as conflicts; the caller skips
    them rather than overwriting.
    """
    unique = _first_per_number(new_games)
    seen: set[int] = set()
    repeated: set[int] = set()
    for game in new_games:
        (repeated if game.game_number in seen else seen).add(game.game_number)
    if repeated:
        logger.warning(
            "Parsed game number(s) %s appear more than once, keeping the first",
            ", ".join(str(number) for number in sorted(repeated)),
        )

    existing = store.fetch_series(session_id, bowler_id)
    if existing:
        existing_numbers = [game["game_number"] for game in existing.get("games") or []]
        recorded = set(existing_numbers)
        already = {game.game_number for game in unique if game.game_number in recorded}
        if already:
            logger.info(
                "Series %s already has game(s) %s, skipping them",
                existing["id"],
                ", ".join(str(number) for number in sorted(already)),
            )
        return SeriesPlan(
            series_id=existing["id"],
            existing_games=existing_numbers,
            conflicts=sorted(already | repeated),
            should_append=True,
        )

    series_id = store.insert_series(session_id, bowler_id, len(unique))
    logger.info("Created series %s for bowler %s", series_id, bowler_id)
    return SeriesPlan(series_id=series_id, conflicts=sorted(repeated))
