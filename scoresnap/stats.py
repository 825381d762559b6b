from typing import Optional

from scoresnap.store import Store


def bowler_stats(store: Store, bowler_id: str) -> Optional[dict]:
    bowler = store.fetch_bowler(bowler_id)
    if not bowler:
        return None

    games = store.fetch_bowler_games(bowler_id)
    scored = [game for game in games if game.get("total_score") is not None]
    scores = [game["total_score"] for game in scored]

    series_totals: dict[str, int] = {}
    for game in scored:
        series_totals[game["series_id"]] = series_totals.get(game["series_id"], 0) + game["total_score"]

    total_score = sum(scores)
    return {
        "bowler_id": bowler_id,
        "canonical_name": bowler["canonical_name"],
        "total_games": len(games),
        "scored_games": len(scored),
        "total_score": total_score,
        "average_score": round(total_score / len(scores), 2) if scores else None,
        "high_game": max(scores) if scores else None,
        "high_series": max(series_totals.values()) if series_totals else None,
    }


def session_details(store: Store, session_id: str) -> Optional[dict]:
    """Session row with its teams, per-bowler series and the games of those series."""
    session = store.fetch_session(session_id)
    if not session:
        return None

    series_rows = store.fetch_session_series(session_id)
    games = store.fetch_games([row["id"] for row in series_rows]) if series_rows else []

    totals: dict[str, int] = {}
    for game in games:
        if game.get("total_score") is not None:
            totals[game["series_id"]] = totals.get(game["series_id"], 0) + game["total_score"]

    series = sorted(
        ({**row, "series_total": totals.get(row["id"], 0)} for row in series_rows),
        key=lambda entry: entry["canonical_name"].lower(),
    )
    return {
        "session": session,
        "teams": store.fetch_teams(session_id),
        "series": series,
        "games": games,
    }
