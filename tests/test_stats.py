from datetime import datetime, timezone

from scoresnap.stats import bowler_stats, session_details


def _seed(store):
    session_id = store.insert_session(
        {"date_time": datetime(2024, 1, 1, 20, 0, tzinfo=timezone.utc), "created_by_user_id": "user-1"}
    )
    alice = store.insert_bowler("alice", "user-1")
    bob = store.insert_bowler("Bob", "user-1")
    alice_series = store.insert_series(session_id, alice, 3)
    bob_series = store.insert_series(session_id, bob, 1)
    store.insert_game(alice_series, alice, 2, 200, True)
    game_id = store.insert_game(alice_series, alice, 1, 150, False)
    store.insert_frames(game_id, [{"frame_number": 2, "roll_1": 3}, {"frame_number": 1, "roll_1": 10}])
    store.insert_game(alice_series, alice, 3, None, True)
    store.insert_game(bob_series, bob, 1, 120, True)
    return session_id, alice, bob


def test_bowler_stats(store):
    _, alice, _ = _seed(store)
    second_session = store.insert_session(
        {"date_time": datetime(2024, 1, 8, 20, 0, tzinfo=timezone.utc), "created_by_user_id": "user-1"}
    )
    series_id = store.insert_series(second_session, alice, 1)
    store.insert_game(series_id, alice, 1, 280, True)

    stats = bowler_stats(store, alice)

    assert stats["canonical_name"] == "alice"
    assert stats["total_games"] == 4
    assert stats["scored_games"] == 3
    assert stats["total_score"] == 630
    assert stats["average_score"] == 210.0
    assert stats["high_game"] == 280
    assert stats["high_series"] == 350


def test_bowler_stats_without_scores(store):
    bowler_id = store.insert_bowler("Zed", "user-1")
    stats = bowler_stats(store, bowler_id)
    assert stats["total_games"] == 0
    assert stats["average_score"] is None
    assert stats["high_game"] is None
    assert stats["high_series"] is None


def test_bowler_stats_unknown(store):
    assert bowler_stats(store, "missing") is None


def test_session_details(store):
    session_id, alice, bob = _seed(store)

    details = session_details(store, session_id)

    assert details["session"]["id"] == session_id
    assert [row["canonical_name"] for row in details["series"]] == ["alice", "Bob"]
    assert [row["series_total"] for row in details["series"]] == [350, 120]
    assert [game["game_number"] for game in details["games"]] == [1, 1, 2, 3]
    first = next(game for game in details["games"] if game["bowler_id"] == alice and game["game_number"] == 1)
    assert [frame["frame_number"] for frame in first["frames"]] == [1, 2]
    assert details["teams"] == []


def test_session_details_unknown(store):
    assert session_details(store, "missing") is None
