"""CSV adapter for task deposit histories."""

from __future__ import annotations

import csv
from zoneinfo import ZoneInfo

from vice_bank.schema import TaskDeposit
from vice_bank.validation import parse_task_deposit

_REQUIRED_FIELDS = {"owner_id", "task_id", "timestamp"}


def _parse_row(row: dict, row_number: int, zone: ZoneInfo | None = None) -> TaskDeposit:
    missing = sorted(field for field in _REQUIRED_FIELDS if not (row.get(field) or "").strip())
    if missing:
        raise ValueError(f"Row {row_number}: missing required fields {missing}")

    payload = {
        "id": (row.get("id") or "").strip(),
        "vbUserId": row["owner_id"],
        "taskId": row["task_id"],
        "date": row["timestamp"],
        "taskName": row.get("task_name") or "",
    }
    result = parse_task_deposit(payload, require_id=False, zone=zone)
    if not result.ok:
        raise ValueError(f"Row {row_number}: invalid fields {result.errors}")
    return result.value


def parse(file_path: str, zone: ZoneInfo | None = None) -> list[TaskDeposit]:
    """Parse CSV file into task deposits (without ids or token values)."""

    with open(file_path, newline="", encoding="utf-8") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames:
            return []

        deposits: list[TaskDeposit] = []
        for row_number, row in enumerate(reader, start=2):
            deposits.append(_parse_row(row, row_number, zone))
        return deposits
