from datetime import datetime, timedelta, timezone

from scoresnap.session_matching import (
    find_matching_session,
    generate_session_name,
    pick_session,
    roster_overlap,
    session_matches_location,
)

SESSION_TIME = datetime(2024, 1, 1, 20, 0, tzinfo=timezone.utc)
UPLOAD_TIME = datetime(2024, 1, 1, 21, 30, tzinfo=timezone.utc)


def _seed_session(store, bowler_names, date_time=SESSION_TIME, user_id="user-1", **fields):
    session_id = store.insert_session(
        {"date_time": date_time, "created_by_user_id": user_id, **fields}
    )
    for name in bowler_names:
        bowler_id = store.insert_bowler(name, user_id)
        store.insert_series(session_id, bowler_id, 1)
    return session_id


def test_overlapping_roster_joins_session(store):
    session_id = _seed_session(store, ["Alice", "Bob"], bowling_alley_id="alley-1")
    matched = find_matching_session(
        store, UPLOAD_TIME, "alley-1", None, None, None, ["Alice", "Carol"], "user-1"
    )
    assert matched == session_id


def test_zero_overlap_falls_back_to_existing_session(store):
    session_id = _seed_session(store, ["Alice", "Bob"], bowling_alley_id="alley-1")
    matched = find_matching_session(
        store, UPLOAD_TIME, "alley-1", None, None, None, ["Dave", "Eve"], "user-1"
    )
    assert matched == session_id


def test_outside_window_creates_new(store):
    _seed_session(store, ["Alice"], bowling_alley_id="alley-1")
    later = SESSION_TIME + timedelta(hours=3, minutes=1)
    assert find_matching_session(store, later, "alley-1", None, None, None, ["Alice"], "user-1") is None


def test_other_users_sessions_are_ignored(store):
    _seed_session(store, ["Alice"], user_id="user-2", bowling_alley_id="alley-1")
    assert find_matching_session(store, UPLOAD_TIME, "alley-1", None, None, None, ["Alice"], "user-1") is None


def test_different_place_is_not_a_candidate(store):
    _seed_session(store, ["Alice"], bowling_alley_id="alley-1", location="Sunset Lanes")
    assert (
        find_matching_session(store, UPLOAD_TIME, "alley-2", "Bowlero", None, None, ["Alice"], "user-1")
        is None
    )


def test_location_text_match(store):
    session_id = _seed_session(store, ["Alice"], location="Sunset Lanes")
    matched = find_matching_session(
        store, UPLOAD_TIME, None, "Sunset Lanes", None, None, ["Alice"], "user-1"
    )
    assert matched == session_id


def test_gps_proximity_match(store):
    session_id = _seed_session(store, ["Alice"], gps_latitude=40.0, gps_longitude=-75.0)
    near = find_matching_session(store, UPLOAD_TIME, None, None, 40.0005, -75.0005, ["Alice"], "user-1")
    far = find_matching_session(store, UPLOAD_TIME, None, None, 40.002, -75.0, ["Alice"], "user-1")
    assert near == session_id
    assert far is None


def test_zero_coordinates_count_as_present():
    session = {"id": "s1", "gps_latitude": 0.0, "gps_longitude": 0.0}
    assert session_matches_location(session, None, None, 0.0, 0.0)


def test_overlap_beats_recency():
    candidates = [
        {"id": "older", "date_time": SESSION_TIME, "bowler_names": ["Alice", "Bob"]},
        {"id": "newer", "date_time": UPLOAD_TIME, "bowler_names": ["Carol"]},
    ]
    assert pick_session(candidates, ["alice", "BOB"]) == "older"


def test_largest_overlap_wins():
    candidates = [
        {"id": "one", "date_time": SESSION_TIME, "bowler_names": ["Alice"]},
        {"id": "two", "date_time": SESSION_TIME, "bowler_names": ["Alice", "Bob"]},
    ]
    assert pick_session(candidates, ["Alice", "Bob"]) == "two"


def test_most_recent_zero_overlap_candidate():
    candidates = [
        {"id": "older", "date_time": SESSION_TIME, "bowler_names": ["Alice"]},
        {"id": "newer", "date_time": UPLOAD_TIME, "bowler_names": ["Bob"]},
    ]
    assert pick_session(candidates, ["Dave"]) == "newer"
    assert pick_session([], ["Dave"]) is None


def test_roster_overlap_is_case_insensitive():
    assert roster_overlap(["ALICE", "Carol"], ["alice", "Bob"]) == 1


def test_generate_session_name():
    assert generate_session_name(datetime(2025, 11, 16, 19, 0)) == "Sunday Nov 16 session"
    assert generate_session_name(SESSION_TIME) == "Monday Jan 1 session"
