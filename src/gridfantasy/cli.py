"""Command-line interface for seeding data and driving the race pipeline."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from gridfantasy.config import Settings
from gridfantasy.errors import CallableError
from gridfantasy.persistence import DocumentStore
from gridfantasy.persistence.batching import BatchWriteCoordinator, WriteOp
from gridfantasy.pipeline import RaceCompletionPipeline, calculate_points_manually


def _parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fantasy F1 race completion pipeline")
    parser.add_argument("--db", type=Path, default=None, help="SQLite document store path")
    parser.add_argument("--log-level", default=None, help="Logging level (default from GRIDFANTASY_LOG_LEVEL)")
    sub = parser.add_subparsers(dest="command", required=True)

    seed = sub.add_parser("seed", help="Load documents from a JSON file keyed by document path")
    seed.add_argument("file", type=Path)

    complete = sub.add_parser("complete-race", help="Mark a race completed and run the pipeline")
    complete.add_argument("race_id")

    recalc = sub.add_parser("recalculate", help="Re-trigger points calculation for a race")
    recalc.add_argument("race_id")
    recalc.add_argument("--as", dest="caller", required=True, help="User id making the request")

    sub.add_parser("lock-teams", help="Lock teams for races whose qualifying starts within the hour")

    standings = sub.add_parser("standings", help="Print league standings")
    standings.add_argument("league_id")

    runs = sub.add_parser("runs", help="List recent pipeline runs")
    runs.add_argument("--race", dest="race_id", default=None)
    runs.add_argument("--limit", type=int, default=20)

    serve = sub.add_parser("serve", help="Serve the REST API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    return parser.parse_args(argv)


def _load_seed(path: Path) -> Dict[str, Dict[str, Any]]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Invalid seed JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise SystemExit("Seed file must be a JSON object keyed by document path")
    return payload


def _seed(store: DocumentStore, settings: Settings, path: Path) -> int:
    documents = _load_seed(path)
    ops = [WriteOp(store.doc(doc_path), data, kind="set") for doc_path, data in documents.items()]
    BatchWriteCoordinator(store, limit=settings.batch_op_limit).commit(ops, label="seed documents")
    return len(ops)


def main(argv: List[str] | None = None) -> None:
    args = _parse_args(argv)
    settings = Settings.from_env(db_path=args.db)
    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "serve":
        import uvicorn

        from gridfantasy.api import create_app

        uvicorn.run(create_app(settings), host=args.host, port=args.port)
        return

    store = DocumentStore(settings.db_path)
    pipeline = RaceCompletionPipeline(store, settings).attach()

    if args.command == "seed":
        count = _seed(store, settings, args.file)
        print(f"Seeded {count} documents into {settings.db_path}")
    elif args.command == "complete-race":
        race_ref = store.doc("races", args.race_id)
        if not store.get(race_ref).exists:
            raise SystemExit(f"race {args.race_id} not found")
        store.update(race_ref, {"status": "completed"})
        runs = pipeline.list_runs(race_id=args.race_id, limit=1)
        if runs:
            print(json.dumps({"runId": runs[0].run_id, "state": runs[0].state, "counts": runs[0].counts}, indent=2))
        else:
            print(f"No pipeline run recorded for race {args.race_id}")
    elif args.command == "recalculate":
        try:
            result = calculate_points_manually(store, args.race_id, caller=args.caller)
        except CallableError as exc:
            raise SystemExit(f"{exc.code}: {exc.message}") from exc
        print(result["message"])
    elif args.command == "lock-teams":
        locked = pipeline.locks.auto_lock_teams()
        print(f"Locked {locked} teams")
    elif args.command == "standings":
        members = pipeline.rankings.standings(args.league_id)
        if not members:
            raise SystemExit(f"league {args.league_id} has no members")
        for user_id, member in members:
            print(f"{member.rank or '-':>3}  {member.total_points:>6}  {member.display_name or user_id}")
    elif args.command == "runs":
        for run in pipeline.list_runs(race_id=args.race_id, limit=args.limit):
            started = run.started_at.isoformat() if run.started_at else "-"
            print(f"{run.run_id}  {run.race_id}  {run.state:<9}  {started}  {run.message or ''}")


if __name__ == "__main__":  # pragma: no cover
    main()
