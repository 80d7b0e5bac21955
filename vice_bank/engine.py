"""Task-deposit reconciliation engine.

Within every frequency window of a task exactly one deposit (the earner) may
hold a non-zero ``tokens_earned``. Each operation below reads the affected
window(s), computes the complete set of records to write, commits it in one
store call and reports the signed token delta for the owner's balance.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import replace
from uuid import uuid4
from zoneinfo import ZoneInfo

from vice_bank.config import get_zone
from vice_bank.errors import InternalError, InvalidInputError, NotFoundError
from vice_bank.reassignment import reassign
from vice_bank.schema import DepositChange, Frequency, TaskDeposit, TaskDepositResult
from vice_bank.stores.base import DepositStore, TaskRegistry
from vice_bank.windows import Window, ensure_aware, window_for

logger = logging.getLogger(__name__)


def _total(deposits: Iterable[TaskDeposit]) -> float:
    return sum(deposit.tokens_earned for deposit in deposits)


def _changes(
    writes: Mapping[str, TaskDeposit],
    prior: Mapping[str, TaskDeposit],
    always: Iterable[str] = (),
) -> list[DepositChange]:
    keep = set(always)
    changes = []
    for deposit_id, deposit in writes.items():
        delta = deposit.tokens_earned - prior[deposit_id].tokens_earned
        if delta != 0 or deposit_id in keep:
            changes.append(DepositChange(deposit=deposit, tokens_added=delta))
    return changes


class ReconciliationEngine:
    """
    Windows are computed in ``zone``; every incoming timestamp is converted to
    it before windowing or persisting.
    """

    def __init__(self, tasks: TaskRegistry, deposits: DepositStore, zone: ZoneInfo | None = None) -> None:
        self.tasks = tasks
        self.deposits = deposits
        self.zone = zone or get_zone()

    def get_task_deposit(self, deposit_id: str) -> TaskDeposit:
        deposit = self.deposits.get_deposit(deposit_id)
        if deposit is None:
            raise NotFoundError(f"Deposit with ID {deposit_id} not found")
        return deposit

    def get_deposits_for_frequency(self, deposit: TaskDeposit, frequency: Frequency | str) -> list[TaskDeposit]:
        """Deposits of the same owner and task inside ``deposit``'s window, oldest first."""

        window = window_for(ensure_aware(deposit.timestamp, self.zone), frequency)
        found = self.deposits.deposits_in_window(deposit.owner_id, deposit.task_id, window.start, window.end)
        return sorted(found, key=lambda d: (d.timestamp, d.id))

    def _occupants(self, deposit: TaskDeposit, window: Window, exclude_id: str | None = None) -> list[TaskDeposit]:
        found = self.deposits.deposits_in_window(deposit.owner_id, deposit.task_id, window.start, window.end)
        return [d for d in found if d.id != exclude_id]

    def _commit(self, upserts: Iterable[TaskDeposit] = (), deletes: Iterable[str] = ()) -> None:
        try:
            self.deposits.commit(upserts=upserts, deletes=deletes)
        except OSError as exc:
            raise InternalError("Deposit store write failed") from exc

    def add_task_deposit(self, deposit: TaskDeposit) -> TaskDepositResult:
        timestamp = ensure_aware(deposit.timestamp, self.zone)
        task = self.tasks.get_task(deposit.task_id)
        if task is None:
            raise NotFoundError(f"Task with ID {deposit.task_id} not found")
        if task.owner_id != deposit.owner_id:
            raise InvalidInputError(
                f"Task with ID {task.id} does not belong to user {deposit.owner_id}", ["vbUserId"]
            )

        new_deposit = replace(
            deposit,
            id=str(uuid4()),
            timestamp=timestamp,
            task_name=deposit.task_name or task.name,
            conversion_rate=task.conversion_rate,
            frequency=task.frequency,
        )

        window = window_for(timestamp, task.frequency)
        occupants = self._occupants(new_deposit, window)
        new_deposit = new_deposit.with_tokens_earned(0.0 if occupants else task.conversion_rate)
        tokens = new_deposit.tokens_earned

        self._commit(upserts=[new_deposit])
        logger.info(
            "Added task deposit %s for task %s (%d other deposits in window, tokens %s)",
            new_deposit.id,
            task.id,
            len(occupants),
            tokens,
        )
        return TaskDepositResult(
            task_deposit=new_deposit,
            tokens_added=tokens,
            changes=[DepositChange(deposit=new_deposit, tokens_added=tokens)],
        )

    def update_task_deposit(self, deposit: TaskDeposit) -> TaskDepositResult:
        """Move or rename a deposit and re-credit every window it touches.

        Only the timestamp and task name are taken from ``deposit``. The
        returned ``task_deposit`` is the stored version from before the call.
        """

        existing = self.get_task_deposit(deposit.id)
        timestamp = ensure_aware(deposit.timestamp, self.zone)
        if deposit.owner_id != existing.owner_id or deposit.task_id != existing.task_id:
            raise InvalidInputError(
                f"Deposit with ID {existing.id} cannot change its owner or task", ["vbUserId", "taskId"]
            )

        updated = replace(existing, timestamp=timestamp, task_name=deposit.task_name or existing.task_name)
        prior = {existing.id: existing}
        writes: dict[str, TaskDeposit] = {}

        target = window_for(updated.timestamp, existing.frequency)
        occupants = self._occupants(updated, target, exclude_id=existing.id)
        prior.update((d.id, d) for d in occupants)

        if not occupants:
            writes[updated.id] = updated.with_tokens_earned(updated.conversion_rate)
        elif _total(occupants) > 0:
            writes[updated.id] = updated.with_tokens_earned(0.0)
        else:
            for reassigned in reassign([*occupants, updated]):
                writes[reassigned.id] = reassigned

        source = window_for(ensure_aware(existing.timestamp, self.zone), existing.frequency)
        if source != target:
            # the vacated window may have just lost its earner
            left_behind = self._occupants(existing, source, exclude_id=existing.id)
            if left_behind and _total(left_behind) == 0:
                prior.update((d.id, d) for d in left_behind)
                for reassigned in reassign(left_behind):
                    writes[reassigned.id] = reassigned

        changes = _changes(writes, prior, always=[existing.id])
        tokens_added = sum(change.tokens_added for change in changes)

        self._commit(upserts=writes.values())
        logger.info(
            "Updated task deposit %s (%d records written, tokens added %s)",
            existing.id,
            len(writes),
            tokens_added,
        )
        return TaskDepositResult(task_deposit=existing, tokens_added=tokens_added, changes=changes)

    def delete_task_deposit(self, deposit_id: str) -> TaskDepositResult:
        """Remove a deposit, promoting the earliest remaining one if the window lost its earner.

        ``tokens_added`` is the net change over the window, so deleting an
        earner that gets replaced reports 0; ``changes`` lists the deleted
        deposit and any promotion separately.
        """

        existing = self.get_task_deposit(deposit_id)
        window = window_for(ensure_aware(existing.timestamp, self.zone), existing.frequency)
        remaining = self._occupants(existing, window, exclude_id=existing.id)

        changes = [DepositChange(deposit=existing, tokens_added=0.0 - existing.tokens_earned, deleted=True)]
        upserts: list[TaskDeposit] = []
        if remaining and _total(remaining) == 0:
            upserts = reassign(remaining)
            changes.extend(
                _changes({d.id: d for d in upserts}, {d.id: d for d in remaining}),
            )

        tokens_added = sum(change.tokens_added for change in changes)

        self._commit(upserts=upserts, deletes=[existing.id])
        logger.info(
            "Deleted task deposit %s (%d remaining in window, tokens added %s)",
            existing.id,
            len(remaining),
            tokens_added,
        )
        return TaskDepositResult(task_deposit=existing, tokens_added=tokens_added, changes=changes)
