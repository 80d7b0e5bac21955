"""JSON adapter for task lists and task deposit histories."""

from __future__ import annotations

import json
from zoneinfo import ZoneInfo

from vice_bank.schema import Task, TaskDeposit
from vice_bank.validation import parse_task, parse_task_deposit


def _load_list(file_path: str) -> list:
    with open(file_path, encoding="utf-8") as handle:
        payload = json.load(handle)

    if not isinstance(payload, list):
        raise ValueError("JSON payload must be a list of objects")
    return payload


def parse(file_path: str, zone: ZoneInfo | None = None) -> list[TaskDeposit]:
    """Parse JSON file of camelCase deposit objects; ids are optional."""

    deposits = []
    for index, item in enumerate(_load_list(file_path), start=1):
        result = parse_task_deposit(item, require_id=False, zone=zone)
        if not result.ok:
            raise ValueError(f"Item {index}: invalid fields {result.errors}")
        deposits.append(result.value)
    return deposits


def parse_tasks(file_path: str) -> list[Task]:
    """Parse JSON file of task objects. Ids are required so deposits can reference them."""

    tasks = []
    for index, item in enumerate(_load_list(file_path), start=1):
        result = parse_task(item, require_id=True)
        if not result.ok:
            raise ValueError(f"Item {index}: invalid fields {result.errors}")
        tasks.append(result.value)
    return tasks
