"""Earner selection within a single frequency window."""

from __future__ import annotations

from collections.abc import Iterable

from vice_bank.schema import TaskDeposit


def reassign(deposits: Iterable[TaskDeposit]) -> list[TaskDeposit]:
    """Credit the earliest deposit with its conversion rate and zero the rest.

    All deposits must share one task and one window. Ties on timestamp are
    broken by id so repeated calls give the same result.
    """

    ordered = sorted(deposits, key=lambda deposit: (deposit.timestamp, deposit.id))
    return [
        deposit.with_tokens_earned(deposit.conversion_rate if index == 0 else 0.0)
        for index, deposit in enumerate(ordered)
    ]
