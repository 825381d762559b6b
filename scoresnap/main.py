import logging
from datetime import datetime
from functools import partial
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from scoresnap.bowler_matching import (
    add_bowler_alias,
    create_new_bowler,
    resolve_bowler_name,
    search_bowlers,
)
from scoresnap.db import open_store
from scoresnap.error_handlers import register_error_handlers
from scoresnap.middleware_logging import configure_logging, register_request_logging
from scoresnap.parsing import validate_and_clean_parsed_data
from scoresnap.persistence import (
    analyze_name_resolution,
    persist_parsed_scoreboard_with_resolution,
)
from scoresnap.places import get_or_create_bowling_alley
from scoresnap.settings import load_settings
from scoresnap.stats import bowler_stats, session_details
from scoresnap.store import Store

settings = load_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="ScoreSnap")
register_request_logging(app)
register_error_handlers(app)

store = open_store(settings.database_url)


def get_store() -> Store:
    return store


def current_user_id(
    authorization: str | None = Header(None),
    store: Store = Depends(get_store),
) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized - No token provided")
    token = authorization[len("Bearer "):].strip()
    user_id = store.fetch_user_id_for_token(token) if token else None
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized - Invalid token")
    return user_id


class ResolvePayload(BaseModel):
    action: str = "resolve"
    parsed_name: str | None = None
    bowler_id: str | None = None
    alias: str | None = None


class UploadPayload(BaseModel):
    original_filename: str = ""
    exif_datetime: datetime | None = None
    exif_location_lat: float | None = Field(default=None, ge=-90, le=90)
    exif_location_lng: float | None = Field(default=None, ge=-180, le=180)


class ParsedPayload(BaseModel):
    parsed_data: dict[str, Any]


class PersistPayload(ParsedPayload):
    resolved_mappings: dict[str, str] = Field(default_factory=dict)


def _owned_upload(store: Store, upload_id: str, user_id: str) -> dict:
    upload = store.fetch_upload(upload_id)
    if not upload or upload.get("user_id") != user_id:
        raise HTTPException(status_code=404, detail="Upload not found")
    return upload


@app.on_event("startup")
def startup() -> None:
    store.ensure_schema()


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/api/bowlers/resolve")
def api_bowlers_resolve(
    payload: ResolvePayload,
    user_id: str = Depends(current_user_id),
    store: Store = Depends(get_store),
):
    if payload.action == "resolve":
        if not payload.parsed_name:
            raise HTTPException(status_code=400, detail="Missing parsed_name")
        return resolve_bowler_name(store, payload.parsed_name).to_dict()

    if payload.action == "create":
        if not payload.parsed_name:
            raise HTTPException(status_code=400, detail="Missing parsed_name")
        bowler_id = create_new_bowler(store, payload.parsed_name, user_id)
        if not bowler_id:
            raise HTTPException(status_code=500, detail="Failed to create bowler")
        return {"bowler_id": bowler_id}

    if payload.action == "add_alias":
        if not payload.bowler_id or not payload.alias:
            raise HTTPException(status_code=400, detail="Missing bowler_id or alias")
        if not add_bowler_alias(store, payload.bowler_id, payload.alias, "manual"):
            raise HTTPException(status_code=500, detail="Failed to add alias")
        return {"success": True}

    raise HTTPException(status_code=400, detail="Invalid action")


@app.get("/api/bowlers/resolve")
def api_bowlers_search(
    q: str | None = None,
    user_id: str = Depends(current_user_id),
    store: Store = Depends(get_store),
):
    if not q:
        raise HTTPException(status_code=400, detail="Missing search term")
    return {"bowlers": search_bowlers(store, q)}


@app.get("/api/bowlers/{bowler_id}/stats")
def api_bowler_stats(
    bowler_id: str,
    user_id: str = Depends(current_user_id),
    store: Store = Depends(get_store),
):
    stats = bowler_stats(store, bowler_id)
    if not stats:
        raise HTTPException(status_code=404, detail="Bowler not found")
    return stats


@app.post("/api/uploads", status_code=201)
def api_create_upload(
    payload: UploadPayload,
    user_id: str = Depends(current_user_id),
    store: Store = Depends(get_store),
):
    upload_id = store.insert_upload(
        user_id,
        payload.original_filename,
        payload.exif_datetime,
        payload.exif_location_lat,
        payload.exif_location_lng,
    )
    logger.info("Registered upload %s for user %s", upload_id, user_id)
    return {"upload_id": upload_id}


@app.post("/api/uploads/{upload_id}/analyze")
def api_analyze_upload(
    upload_id: str,
    payload: ParsedPayload,
    user_id: str = Depends(current_user_id),
    store: Store = Depends(get_store),
):
    _owned_upload(store, upload_id, user_id)
    parsed = validate_and_clean_parsed_data(payload.parsed_data)
    analysis = analyze_name_resolution(store, parsed)
    return {"upload_id": upload_id, "parsed": parsed.to_dict(), **analysis.to_dict()}


@app.post("/api/uploads/{upload_id}/persist")
def api_persist_upload(
    upload_id: str,
    payload: PersistPayload,
    user_id: str = Depends(current_user_id),
    store: Store = Depends(get_store),
):
    _owned_upload(store, upload_id, user_id)
    parsed = validate_and_clean_parsed_data(payload.parsed_data)
    if not parsed.bowlers:
        raise HTTPException(status_code=400, detail="Parsed data contains no bowlers")

    locate_alley = None
    if settings.google_places_api_key:
        locate_alley = partial(
            get_or_create_bowling_alley, store, api_key=settings.google_places_api_key
        )
    result = persist_parsed_scoreboard_with_resolution(
        store,
        upload_id,
        parsed,
        payload.resolved_mappings,
        user_id,
        locate_alley=locate_alley,
    )
    if not result.success:
        return JSONResponse(result.to_dict(), status_code=500)
    return result.to_dict()


@app.get("/api/sessions/{session_id}")
def api_session_details(
    session_id: str,
    user_id: str = Depends(current_user_id),
    store: Store = Depends(get_store),
):
    details = session_details(store, session_id)
    if not details or details["session"].get("created_by_user_id") != user_id:
        raise HTTPException(status_code=404, detail="Session not found")
    return details
