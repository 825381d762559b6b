import argparse
import json
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from scoresnap.db import open_store
from scoresnap.settings import load_settings
from scoresnap.stats import bowler_stats, session_details
from scoresnap.store import Store


def export_snapshot(store: Store, session_id: str) -> dict | None:
    details = session_details(store, session_id)
    if not details:
        return None
    bowler_ids = sorted({row["bowler_id"] for row in details["series"]})
    return {
        **details,
        "bowlers": [stats for stats in (bowler_stats(store, bowler_id) for bowler_id in bowler_ids) if stats],
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Dump a bowling session with its series, games and bowler stats.")
    parser.add_argument("session_id", help="Session ID to snapshot.")
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        help="Path to write the JSON export (defaults to stdout).",
    )
    args = parser.parse_args()

    store = open_store(load_settings().database_url)
    snapshot = export_snapshot(store, args.session_id)
    if not snapshot:
        raise SystemExit(f"Session {args.session_id} not found.")
    payload = json.dumps(snapshot, default=str, indent=2)

    if args.output:
        args.output.write_text(payload, encoding="utf-8")
        print(f"Snapshot saved to {args.output}")
    else:
        print(payload)


if __name__ == "__main__":
    main()
