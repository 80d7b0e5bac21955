"""Replay a task list and a CSV/JSON deposit history through the vice bank service."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from vice_bank.adapters import csv_adapter, json_adapter
from vice_bank.config import get_zone, load_settings
from vice_bank.errors import ViceBankError
from vice_bank.service import ViceBankService, build_service
from vice_bank.metrics import find_violations, summarize_deposits
from vice_bank.schema import ViceBankUser


def _load_deposits(path: Path, zone=None):
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return csv_adapter.parse(str(path), zone=zone)
    if suffix == ".json":
        return json_adapter.parse(str(path), zone=zone)
    raise ValueError("Unsupported input format, expected .csv or .json")


def replay(service: ViceBankService, tasks: list, deposits: list) -> dict:
    """Register owners and tasks, add every deposit in file order, and report the outcome."""

    owners = sorted({task.owner_id for task in tasks})
    for owner_id in owners:
        if service.balances.get_user(owner_id) is None:
            service.add_user(ViceBankUser(id=owner_id, name=owner_id))
    for task in tasks:
        if service.engine.tasks.get_task(task.id) is None:
            service.add_task(task)

    receipts = [service.add_task_deposit(deposit) for deposit in deposits]

    report: dict = {"owners": {}, "n_deposits": len(receipts)}
    for owner_id in owners:
        stored = service.get_task_deposits(owner_id, pagination=max(1, len(receipts)))
        report["owners"][owner_id] = {
            "current_tokens": service.get_user(owner_id).current_tokens,
            "summary": summarize_deposits(stored),
            "violations": find_violations(stored),
        }
    return report


def main() -> None:
    parser = argparse.ArgumentParser(description="Replay task deposits through the vice bank engine")
    parser.add_argument("--tasks", required=True, help="Path to JSON task list")
    parser.add_argument("--deposits", required=True, help="Path to CSV/JSON deposits file")
    parser.add_argument("--data-dir", help="Persist into a JSON file store in this directory")
    args = parser.parse_args()

    settings = load_settings()
    if args.data_dir:
        settings = replace(settings, store_type="file", file_path=Path(args.data_dir))

    try:
        tasks = json_adapter.parse_tasks(args.tasks)
        deposits = _load_deposits(Path(args.deposits), zone=get_zone(settings.timezone))
        report = replay(build_service(settings), tasks, deposits)
    except (ValueError, ViceBankError) as exc:
        print(f"Replay failed: {exc}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(report, indent=2))

    outputs_dir = Path("outputs")
    outputs_dir.mkdir(parents=True, exist_ok=True)
    out_path = outputs_dir / "replay_report.json"
    out_path.write_text(json.dumps(report, indent=2), encoding="utf-8")
    print(f"Saved replay report to {out_path}")


if __name__ == "__main__":
    main()
