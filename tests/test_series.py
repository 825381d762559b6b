from datetime import datetime, timezone

from scoresnap.parsing import ParsedGame
from scoresnap.series import find_or_create_series


def _session_with_bowler(store):
    session_id = store.insert_session(
        {"date_time": datetime(2024, 1, 1, 20, 0, tzinfo=timezone.utc), "created_by_user_id": "user-1"}
    )
    bowler_id = store.insert_bowler("Alice", "user-1")
    return session_id, bowler_id


def test_existing_series_skips_recorded_games(store):
    session_id, bowler_id = _session_with_bowler(store)
    series_id = store.insert_series(session_id, bowler_id, 2)
    store.insert_game(series_id, bowler_id, 1, 180, True)
    store.insert_game(series_id, bowler_id, 2, 201, True)

    new_games = [ParsedGame(game_number=2, total_score=201), ParsedGame(game_number=3, total_score=167)]
    plan = find_or_create_series(store, session_id, bowler_id, new_games)

    assert plan.series_id == series_id
    assert plan.should_append is True
    assert plan.existing_games == [1, 2]
    assert plan.conflicts == [2]
    assert [game.game_number for game in plan.new_games(new_games)] == [3]
    assert plan.total_games(new_games) == 3


def test_new_series_counts_parsed_games(store):
    session_id, bowler_id = _session_with_bowler(store)
    new_games = [ParsedGame(game_number=1), ParsedGame(game_number=2)]

    plan = find_or_create_series(store, session_id, bowler_id, new_games)

    assert plan.should_append is False
    assert plan.conflicts == []
    assert store.series[plan.series_id]["games_count"] == 2
    assert plan.new_games(new_games) == new_games


def test_repeated_game_number_kept_once_in_new_series(store):
    session_id, bowler_id = _session_with_bowler(store)
    first = ParsedGame(game_number=1, total_score=180)
    new_games = [first, ParsedGame(game_number=1, total_score=181), ParsedGame(game_number=2)]

    plan = find_or_create_series(store, session_id, bowler_id, new_games)

    assert store.series[plan.series_id]["games_count"] == 2
    assert plan.conflicts == [1]
    assert [game.game_number for game in plan.new_games(new_games)] == [1, 2]
    assert plan.new_games(new_games)[0] is first


def test_repeated_game_number_counted_once_when_appending(store):
    session_id, bowler_id = _session_with_bowler(store)
    series_id = store.insert_series(session_id, bowler_id, 1)
    store.insert_game(series_id, bowler_id, 1, 180, True)
    new_games = [ParsedGame(game_number=2), ParsedGame(game_number=2), ParsedGame(game_number=3)]

    plan = find_or_create_series(store, session_id, bowler_id, new_games)

    assert plan.conflicts == [2]
    assert [game.game_number for game in plan.new_games(new_games)] == [2, 3]
    assert plan.total_games(new_games) == 3
