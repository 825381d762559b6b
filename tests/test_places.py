import pytest

from scoresnap import places
from scoresnap.places import (
    PlacesError,
    confidence_for_distance,
    distance_miles,
    find_nearest_bowling_alley,
    get_or_create_bowling_alley,
)

LAT, LNG = 40.0, -75.0
PLACE = {
    "place_id": "place-1",
    "name": "Sunset Lanes",
    "geometry": {"location": {"lat": 40.005, "lng": -75.0}},
}
FAR_PLACE = {
    "place_id": "place-2",
    "name": "Bowlero",
    "geometry": {"location": {"lat": 40.01, "lng": -75.0}},
}
DETAILS = {
    "name": "Sunset Lanes",
    "formatted_phone_number": "(555) 010-2000",
    "address_components": [
        {"long_name": "12", "short_name": "12", "types": ["street_number"]},
        {"long_name": "Main Street", "short_name": "Main St", "types": ["route"]},
        {"long_name": "Springfield", "short_name": "Springfield", "types": ["locality"]},
        {"long_name": "Pennsylvania", "short_name": "PA", "types": ["administrative_area_level_1"]},
        {"long_name": "19064", "short_name": "19064", "types": ["postal_code"]},
    ],
    "geometry": {"location": {"lat": 40.005, "lng": -75.0}},
}


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code
        self.text = str(payload)

    def json(self):
        return self.payload


@pytest.fixture
def places_api(monkeypatch):
    calls = []

    def fake_get(url, params=None, timeout=None):
        calls.append((url, dict(params or {})))
        if url.endswith("/nearbysearch/json"):
            if params["radius"] < 1609:
                return FakeResponse({"status": "ZERO_RESULTS", "results": []})
            return FakeResponse({"status": "OK", "results": [FAR_PLACE, PLACE]})
        return FakeResponse({"status": "OK", "result": DETAILS})

    monkeypatch.setattr(places.requests, "get", fake_get)
    return calls


def test_distance_miles():
    assert distance_miles(LAT, LNG, LAT, LNG) == 0
    # one degree of latitude is about 69 miles
    assert distance_miles(40.0, -75.0, 41.0, -75.0) == pytest.approx(69.09, abs=0.05)


@pytest.mark.parametrize("miles, expected", [(0.2, 95), (0.5, 95), (0.9, 80), (1.5, 60), (3, 40)])
def test_confidence_for_distance(miles, expected):
    assert confidence_for_distance(miles) == expected


def test_find_nearest_widens_radius_and_picks_closest(places_api):
    alley = find_nearest_bowling_alley(LAT, LNG, "key")

    radii = [params["radius"] for url, params in places_api if url.endswith("/nearbysearch/json")]
    assert radii == [805, 1609]
    assert alley["google_place_id"] == "place-1"
    assert alley["address"] == "12 Main Street"
    assert (alley["city"], alley["state"], alley["zip_code"]) == ("Springfield", "PA", "19064")
    assert alley["phone"] == "(555) 010-2000"
    assert alley["website"] is None
    assert alley["confidence"] == 95


def test_find_nearest_none_within_two_miles(monkeypatch):
    monkeypatch.setattr(
        places.requests, "get", lambda url, params=None, timeout=None: FakeResponse({"status": "ZERO_RESULTS"})
    )
    assert find_nearest_bowling_alley(LAT, LNG, "key") is None


def test_api_error_status_raises(monkeypatch):
    monkeypatch.setattr(
        places.requests,
        "get",
        lambda url, params=None, timeout=None: FakeResponse({"status": "REQUEST_DENIED", "error_message": "bad key"}),
    )
    with pytest.raises(PlacesError, match="REQUEST_DENIED"):
        find_nearest_bowling_alley(LAT, LNG, "key")


def test_missing_key_and_bad_coordinates(monkeypatch):
    monkeypatch.delenv("GOOGLE_PLACES_API_KEY", raising=False)
    with pytest.raises(PlacesError, match="API key"):
        find_nearest_bowling_alley(LAT, LNG, "")
    with pytest.raises(PlacesError, match="Invalid coordinates"):
        find_nearest_bowling_alley(95.0, LNG, "key")


def test_get_or_create_reuses_saved_alley(store, places_api):
    first = get_or_create_bowling_alley(store, LAT, LNG, "user-1", "key")
    second = get_or_create_bowling_alley(store, LAT, LNG, "user-1", "key")

    assert first == second
    assert len(store.bowling_alleys) == 1
    saved = store.bowling_alleys[first]
    assert saved["name"] == "Sunset Lanes"
    assert "confidence" not in saved


def test_get_or_create_matches_nearby_alley_by_coordinates(store, places_api):
    existing = store.insert_bowling_alley(
        {"name": "Sunset Lanes (old)", "latitude": 40.0051, "longitude": -75.0001}, "user-1"
    )
    assert get_or_create_bowling_alley(store, LAT, LNG, "user-1", "key") == existing
