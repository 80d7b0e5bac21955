"""Token and window summaries over a set of task deposits."""

from __future__ import annotations

from collections import defaultdict

import numpy as np

from vice_bank.schema import TaskDeposit
from vice_bank.windows import window_for


def _window_key(deposit: TaskDeposit) -> str:
    window = window_for(deposit.timestamp, deposit.frequency)
    return f"{deposit.owner_id}|{deposit.task_id}|{window.start.isoformat()}"


def summarize_deposits(deposits: list[TaskDeposit]) -> dict:
    """Compute deposit counts, credited share, token totals and window occupancy."""

    if not deposits:
        return {
            "total_deposits": 0,
            "credited_deposits": 0,
            "credited_share": 0.0,
            "total_tokens": 0.0,
            "tokens_by_task": {},
            "windows": 0,
            "avg_window_occupancy": 0.0,
            "max_window_occupancy": 0,
        }

    tokens = np.asarray([deposit.tokens_earned for deposit in deposits], dtype=float)
    credited = tokens > 0

    tokens_by_task = defaultdict(float)
    for deposit, earned in zip(deposits, tokens):
        tokens_by_task[deposit.task_id] += float(earned)

    _, occupancy = np.unique(np.asarray([_window_key(d) for d in deposits]), return_counts=True)

    return {
        "total_deposits": len(deposits),
        "credited_deposits": int(credited.sum()),
        "credited_share": float(credited.mean()),
        "total_tokens": float(tokens.sum()),
        "tokens_by_task": dict(tokens_by_task),
        "windows": int(occupancy.size),
        "avg_window_occupancy": float(occupancy.mean()),
        "max_window_occupancy": int(occupancy.max()),
    }


def find_violations(deposits: list[TaskDeposit]) -> list[str]:
    """Return the window keys where the one-earner rule does not hold.

    A window is valid when it has at most one deposit with tokens, and that
    deposit's tokens equal its conversion rate snapshot.
    """

    by_window: dict[str, list[TaskDeposit]] = defaultdict(list)
    for deposit in deposits:
        by_window[_window_key(deposit)].append(deposit)

    violations = []
    for key, members in sorted(by_window.items()):
        earned = np.asarray([d.tokens_earned for d in members], dtype=float)
        rates = np.asarray([d.conversion_rate for d in members], dtype=float)
        earners = earned > 0
        if earners.sum() > 1 or not np.allclose(earned[earners], rates[earners]):
            violations.append(key)
    return violations
