"""Lightweight REST client for the gridfantasy API."""

from __future__ import annotations

import argparse
import json

import httpx


def _print(resp: httpx.Response) -> None:
    if resp.status_code >= 400:
        detail = resp.json().get("detail") if resp.headers.get("content-type", "").startswith("application/json") else resp.text
        raise SystemExit(f"{resp.status_code}: {detail}")
    print(json.dumps(resp.json(), indent=2))


def main() -> None:
    parser = argparse.ArgumentParser(description="Interact with the gridfantasy REST API")
    parser.add_argument("base_url", help="Base URL of the API, e.g. http://localhost:8000")
    parser.add_argument("--token", default=None, help="Bearer token for callable endpoints")
    parser.add_argument("--calculate-points", metavar="RACE_ID", help="Re-trigger points calculation for a race")
    parser.add_argument("--lock-status", metavar="RACE_ID", help="Show lock timing for a race")
    parser.add_argument("--team", default=None, help="Team id for --lock-status, --lock, --season-lock or --early-unlock")
    parser.add_argument("--lock", action="store_true", help="Lock --team")
    parser.add_argument("--season-lock", type=int, metavar="RACES", help="Season lock --team for RACES races")
    parser.add_argument("--early-unlock", action="store_true", help="Release the season lock on --team")
    parser.add_argument("--standings", metavar="LEAGUE_ID", help="Fetch league standings")
    parser.add_argument("--price-history", metavar="ENTITY_ID", help="Fetch price history for a driver or constructor")
    parser.add_argument("--entity-type", choices=("driver", "constructor"), default="driver", help="Entity type for --price-history")
    parser.add_argument("--list-runs", action="store_true", help="List recent pipeline runs")
    args = parser.parse_args()

    headers = {"Authorization": f"Bearer {args.token}"} if args.token else {}
    team_actions = args.lock or args.season_lock is not None or args.early_unlock
    if team_actions and not args.team:
        raise SystemExit("--team is required for lock actions")

    with httpx.Client(base_url=args.base_url, headers=headers) as client:
        if args.calculate_points:
            _print(client.post(f"/races/{args.calculate_points}/calculate-points"))
        if args.lock_status:
            params = {"team_id": args.team} if args.team else None
            _print(client.get(f"/races/{args.lock_status}/lock-status", params=params))
        if args.lock:
            _print(client.post(f"/teams/{args.team}/lock", json={}))
        if args.season_lock is not None:
            _print(client.post(f"/teams/{args.team}/season-lock", json={"races_remaining": args.season_lock}))
        if args.early_unlock:
            _print(client.post(f"/teams/{args.team}/early-unlock"))
        if args.standings:
            _print(client.get(f"/leagues/{args.standings}/standings"))
        if args.price_history:
            _print(client.get(f"/price-history/{args.price_history}", params={"entity_type": args.entity_type}))
        if args.list_runs:
            _print(client.get("/runs"))


if __name__ == "__main__":
    main()
