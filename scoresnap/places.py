import logging
import math
import os
from typing import Any, Optional

import requests

from scoresnap.store import Store

logger = logging.getLogger(__name__)

API_BASE = "https://maps.googleapis.com/maps/api/place"
DETAIL_FIELDS = "name,formatted_address,formatted_phone_number,website,address_components,geometry"
SEARCH_RADII_MILES = (0.5, 1, 2)
METERS_PER_MILE = 1609.34
EARTH_RADIUS_MILES = 3958.8
# about 50 m
EXISTING_ALLEY_DEGREES = 0.0005
EXISTING_ALLEY_MILES = 0.03


class PlacesError(Exception):
    pass


def _api_key(api_key: Optional[str]) -> str:
    key = api_key or os.getenv("GOOGLE_PLACES_API_KEY", "")
    if not key:
        raise PlacesError("Missing Google Places API key.")
    return key


def distance_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance between two coordinates."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def confidence_for_distance(miles: float) -> int:
    if miles <= 0.5:
        return 95
    if miles <= 1:
        return 80
    if miles <= 2:
        return 60
    return 40


def _get(endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
    response = requests.get(f"{API_BASE}/{endpoint}/json", params=params, timeout=15)
    if response.status_code != 200:
        raise PlacesError(f"{endpoint} failed: {response.status_code} {response.text}")
    payload = response.json()
    if not isinstance(payload, dict):
        raise PlacesError(f"{endpoint} returned unexpected payload: {response.text}")
    return payload


def nearby_search(latitude: float, longitude: float, radius_meters: int, api_key: str) -> list[dict]:
    payload = _get(
        "nearbysearch",
        {
            "location": f"{latitude},{longitude}",
            "radius": radius_meters,
            "type": "bowling_alley",
            "key": api_key,
        },
    )
    status = payload.get("status")
    if status not in ("OK", "ZERO_RESULTS"):
        raise PlacesError(f"Google Places error: {status} {payload.get('error_message', '')}".strip())
    return payload.get("results") or []


def place_details(place_id: str, api_key: str) -> dict[str, Any]:
    payload = _get("details", {"place_id": place_id, "fields": DETAIL_FIELDS, "key": api_key})
    if payload.get("status") != "OK" or not isinstance(payload.get("result"), dict):
        raise PlacesError(f"Google Places details error for {place_id}: {payload.get('status')}")
    return payload["result"]


def _address_parts(components: list[dict]) -> dict[str, str]:
    parts = {"street_number": "", "route": "", "city": "", "state": "", "zip_code": ""}
    for component in components:
        types = component.get("types") or []
        if "street_number" in types:
            parts["street_number"] = component.get("long_name", "")
        if "route" in types:
            parts["route"] = component.get("long_name", "")
        if "locality" in types:
            parts["city"] = component.get("long_name", "")
        if "administrative_area_level_1" in types:
            parts["state"] = component.get("short_name", "")
        if "postal_code" in types:
            parts["zip_code"] = component.get("long_name", "")
    street = parts.pop("street_number")
    route = parts.pop("route")
    parts["address"] = f"{street} {route}" if street and route else route
    return parts


def find_nearest_bowling_alley(
    latitude: float, longitude: float, api_key: Optional[str] = None
) -> Optional[dict[str, Any]]:
    """Nearest bowling alley within two miles, widening the search radius as needed.

    Returns a dict shaped like a ``bowling_alleys`` row plus ``distance_miles``
    and ``confidence``, or ``None`` when nothing is found.
    """
    if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
        raise PlacesError(f"Invalid coordinates {latitude},{longitude}")
    key = _api_key(api_key)

    results: list[dict] = []
    for miles in SEARCH_RADII_MILES:
        results = nearby_search(latitude, longitude, round(miles * METERS_PER_MILE), key)
        if results:
            logger.info("Found %d bowling alley(s) within %s mile(s)", len(results), miles)
            break
    if not results:
        logger.info("No bowling alley within %s miles of %s,%s", SEARCH_RADII_MILES[-1], latitude, longitude)
        return None

    def _distance(result: dict) -> float:
        location = result["geometry"]["location"]
        return distance_miles(latitude, longitude, location["lat"], location["lng"])

    nearest = min(results, key=_distance)
    distance = _distance(nearest)
    details = place_details(nearest["place_id"], key)
    location = details["geometry"]["location"]
    return {
        "name": details.get("name") or nearest.get("name"),
        **_address_parts(details.get("address_components") or []),
        "phone": details.get("formatted_phone_number"),
        "website": details.get("website"),
        "google_place_id": nearest["place_id"],
        "latitude": location["lat"],
        "longitude": location["lng"],
        "distance_miles": distance,
        "confidence": confidence_for_distance(distance),
    }


def find_existing_bowling_alley(
    store: Store, place_id: str, latitude: float, longitude: float
) -> Optional[dict]:
    by_place_id = store.find_bowling_alley_by_place_id(place_id)
    if by_place_id:
        return by_place_id

    nearby = [
        (distance_miles(latitude, longitude, alley["latitude"], alley["longitude"]), alley)
        for alley in store.find_bowling_alleys_near(latitude, longitude, EXISTING_ALLEY_DEGREES)
    ]
    if not nearby:
        return None
    distance, closest = min(nearby, key=lambda entry: entry[0])
    return closest if distance < EXISTING_ALLEY_MILES else None


def get_or_create_bowling_alley(
    store: Store,
    latitude: float,
    longitude: float,
    user_id: str,
    api_key: Optional[str] = None,
) -> Optional[str]:
    found = find_nearest_bowling_alley(latitude, longitude, api_key)
    if not found:
        return None
    existing = find_existing_bowling_alley(
        store, found["google_place_id"], found["latitude"], found["longitude"]
    )
    if existing:
        logger.info("Using existing bowling alley %s (%s)", existing["id"], existing.get("name"))
        return existing["id"]

    alley = {
        key: value
        for key, value in found.items()
        if key not in ("distance_miles", "confidence")
    }
    alley_id = store.insert_bowling_alley(alley, user_id)
    logger.info("Saved bowling alley %s (%s)", alley_id, alley["name"])
    return alley_id
