"""Flat JSON file backend holding tasks, task deposits, purchases and users in one file."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

from vice_bank.config import DATA_FILE_BASE_NAME, DATA_FILE_EXTENSION, DATA_FILE_NAME
from vice_bank.errors import InternalError
from vice_bank.schema import Purchase, PurchasePrice, Task, TaskDeposit, ViceBankUser
from vice_bank.stores.memory import (
    InMemoryBalanceStore,
    InMemoryDepositStore,
    InMemoryPurchaseStore,
    InMemoryTaskRegistry,
)
from vice_bank.validation import (
    parse_purchase,
    parse_purchase_price,
    parse_task,
    parse_task_deposit,
    parse_user,
)

logger = logging.getLogger(__name__)


def _atomic_write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("w", delete=False, dir=str(path.parent), encoding="utf-8") as tmp:
        tmp.write(content)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_path = Path(tmp.name)
    os.replace(tmp_path, path)


def _load_records(items: object, parser, kind: str) -> list:
    if not isinstance(items, list):
        return []
    records = []
    for index, item in enumerate(items, start=1):
        result = parser(item)
        if result.ok:
            records.append(result.value)
        else:
            logger.warning("Skipping invalid %s #%d in data file: %s", kind, index, ", ".join(result.errors))
    return records


class JsonFileStore(InMemoryTaskRegistry, InMemoryDepositStore, InMemoryBalanceStore, InMemoryPurchaseStore):
    """
    Memory stores that rewrite ``vice_bank_data.json`` after every mutation.

    A failed write rolls the in-memory state back and raises ``InternalError``,
    so memory and disk never disagree.
    """

    def __init__(
        self,
        directory: Path | str,
        tasks: Iterable[Task] | None = None,
        deposits: Iterable[TaskDeposit] | None = None,
        users: Iterable[ViceBankUser] | None = None,
        purchase_prices: Iterable[PurchasePrice] | None = None,
        purchases: Iterable[Purchase] | None = None,
    ) -> None:
        InMemoryTaskRegistry.__init__(self, tasks)
        InMemoryDepositStore.__init__(self, deposits)
        InMemoryBalanceStore.__init__(self, users)
        InMemoryPurchaseStore.__init__(self, purchase_prices, purchases)
        self.directory = Path(directory)

    @property
    def path(self) -> Path:
        return self.directory / DATA_FILE_NAME

    def to_json(self) -> str:
        return json.dumps(
            {
                "tasks": [task.to_dict() for task in self.tasks_list],
                "taskDeposits": [deposit.to_dict() for deposit in self.task_deposits_list],
                "users": [user.to_dict() for user in self._users.values()],
                "purchasePrices": [price.to_dict() for price in self.purchase_prices_list],
                "purchases": [purchase.to_dict() for purchase in self.purchases_list],
            },
            indent=2,
        )

    def _snapshot(self) -> tuple:
        return (
            dict(self._tasks),
            dict(self._deposits),
            {key: list(keys) for key, keys in self._index.items()},
            dict(self._users),
            dict(self._purchase_prices),
            dict(self._purchases),
        )

    def _restore(self, snapshot: tuple) -> None:
        tasks, deposits, index, users, purchase_prices, purchases = snapshot
        self._tasks = tasks
        self._deposits = deposits
        self._index.clear()
        self._index.update(index)
        self._users = users
        self._purchase_prices = purchase_prices
        self._purchases = purchases

    def _write_through(self, mutate):
        snapshot = self._snapshot()
        result = mutate()
        try:
            _atomic_write(self.path, self.to_json())
        except OSError as exc:
            self._restore(snapshot)
            logger.error("Unable to write vice bank data to %s: %s", self.path, exc)
            raise InternalError(f"Unable to write vice bank data to {self.path}") from exc
        return result

    def add_task(self, task: Task) -> Task:
        return self._write_through(lambda: InMemoryTaskRegistry.add_task(self, task))

    def update_task(self, task: Task) -> Task:
        return self._write_through(lambda: InMemoryTaskRegistry.update_task(self, task))

    def delete_task(self, task_id: str) -> Task:
        return self._write_through(lambda: InMemoryTaskRegistry.delete_task(self, task_id))

    def commit(self, upserts: Iterable[TaskDeposit] = (), deletes: Iterable[str] = ()) -> None:
        upserts = list(upserts)
        deletes = list(deletes)
        self._write_through(lambda: InMemoryDepositStore.commit(self, upserts, deletes))

    def add_user(self, user: ViceBankUser) -> ViceBankUser:
        return self._write_through(lambda: InMemoryBalanceStore.add_user(self, user))

    def set_balance(self, user_id: str, current_tokens: float) -> ViceBankUser:
        return self._write_through(lambda: InMemoryBalanceStore.set_balance(self, user_id, current_tokens))

    def add_purchase_price(self, price: PurchasePrice) -> PurchasePrice:
        return self._write_through(lambda: InMemoryPurchaseStore.add_purchase_price(self, price))

    def update_purchase_price(self, price: PurchasePrice) -> PurchasePrice:
        return self._write_through(lambda: InMemoryPurchaseStore.update_purchase_price(self, price))

    def delete_purchase_price(self, price_id: str) -> PurchasePrice:
        return self._write_through(lambda: InMemoryPurchaseStore.delete_purchase_price(self, price_id))

    def add_purchase(self, purchase: Purchase) -> Purchase:
        return self._write_through(lambda: InMemoryPurchaseStore.add_purchase(self, purchase))

    def delete_purchase(self, purchase_id: str) -> Purchase:
        return self._write_through(lambda: InMemoryPurchaseStore.delete_purchase(self, purchase_id))

    def write_backup(self, raw_data: str) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        backup_path = self.directory / f"{DATA_FILE_BASE_NAME}_backup_{stamp}.{DATA_FILE_EXTENSION}"
        _atomic_write(backup_path, raw_data)
        return backup_path

    @classmethod
    def open(cls, directory: Path | str, zone: ZoneInfo | None = None) -> JsonFileStore:
        """Load the store from ``directory``, creating an empty file if needed.

        Stored dates are converted to ``zone`` (the configured zone by
        default). Unreadable JSON is copied to a timestamped backup before the
        store starts over empty. Individual invalid records are skipped.
        """

        store = cls(directory)
        raw_data = ""
        try:
            raw_data = store.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("No vice bank data found at %s. Creating new file.", store.path)
        except OSError as exc:
            raise InternalError(f"Unable to read vice bank data from {store.path}") from exc

        payload = None
        if raw_data.strip():
            try:
                payload = json.loads(raw_data)
            except json.JSONDecodeError:
                payload = None
            if not isinstance(payload, dict):
                backup = store.write_backup(raw_data)
                logger.warning("Invalid vice bank data file %s, backed up to %s", store.path, backup)
                payload = None

        if payload is not None:
            store = cls(
                directory,
                tasks=_load_records(payload.get("tasks"), parse_task, "task"),
                deposits=_load_records(
                    payload.get("taskDeposits"),
                    lambda item: parse_task_deposit(item, zone=zone),
                    "task deposit",
                ),
                users=_load_records(payload.get("users"), parse_user, "user"),
                purchase_prices=_load_records(payload.get("purchasePrices"), parse_purchase_price, "purchase price"),
                purchases=_load_records(
                    payload.get("purchases"),
                    lambda item: parse_purchase(item, zone=zone),
                    "purchase",
                ),
            )

        try:
            _atomic_write(store.path, store.to_json())
        except OSError as exc:
            raise InternalError(f"Unable to write vice bank data to {store.path}") from exc
        return store
