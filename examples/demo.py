"""Demo script for the vice bank engine."""

import sys
from dataclasses import replace
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from vice_bank.adapters.csv_adapter import parse
from vice_bank.adapters.json_adapter import parse_tasks
from vice_bank.config import Settings
from vice_bank.service import build_service
from vice_bank.schema import ViceBankUser
from vice_bank.validation import parse_timestamp


def main() -> None:
    service = build_service(Settings())
    tasks = parse_tasks("examples/sample_tasks.json")
    for owner_id in sorted({task.owner_id for task in tasks}):
        service.add_user(ViceBankUser(id=owner_id, name=owner_id.title()))
    for task in tasks:
        service.add_task(task)

    receipts = [service.add_task_deposit(deposit) for deposit in parse("examples/sample_deposits.csv")]
    print("Balance after import:", service.get_user("alex").current_tokens)

    first_walk = receipts[0].task_deposit
    moved = service.update_task_deposit(replace(first_walk, timestamp=parse_timestamp("2024-01-03T08:00:00")))
    print("Moved first walk to Jan 3:", moved.tokens_added, "->", moved.current_tokens)

    removed = service.delete_task_deposit(receipts[3].task_deposit.id)
    print("Deleted first gym session:", removed.tokens_added, "->", removed.current_tokens)
    for change in removed.changes:
        print("  ", change.deposit.id, change.tokens_added, "(deleted)" if change.deleted else "")


if __name__ == "__main__":
    main()
