"""In-memory stores. Records are frozen dataclasses, so handing them out is safe."""

from __future__ import annotations

import bisect
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from uuid import uuid4

from vice_bank.config import DEFAULT_PAGINATION
from vice_bank.errors import InvalidInputError, NotFoundError
from vice_bank.schema import Purchase, PurchasePrice, Task, TaskDeposit, ViceBankUser
from vice_bank.stores.base import BalanceStore, DepositStore, PurchaseStore, TaskRegistry


def _page(items: list, page: int, pagination: int) -> list:
    page = max(1, int(page))
    pagination = max(1, int(pagination))
    skip = pagination * (page - 1)
    return items[skip : skip + pagination]


class InMemoryTaskRegistry(TaskRegistry):
    def __init__(self, tasks: Iterable[Task] | None = None) -> None:
        self._tasks: dict[str, Task] = {}
        for task in tasks or ():
            self._tasks[task.id] = task

    @property
    def tasks(self) -> dict[str, Task]:
        return dict(self._tasks)

    @property
    def tasks_list(self) -> list[Task]:
        return sorted(self._tasks.values(), key=lambda task: (task.name, task.id))

    def get_task(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def list_tasks(self, owner_id: str, page: int = 1, pagination: int = DEFAULT_PAGINATION) -> list[Task]:
        owned = [task for task in self.tasks_list if task.owner_id == owner_id]
        return _page(owned, page, pagination)

    def add_task(self, task: Task) -> Task:
        if task.id and task.id in self._tasks:
            raise InvalidInputError(f"Task with ID {task.id} already exists", ["id"])
        if not task.id:
            task = Task(
                id=str(uuid4()),
                owner_id=task.owner_id,
                name=task.name,
                frequency=task.frequency,
                conversion_rate=task.conversion_rate,
            )
        self._tasks[task.id] = task
        return task

    def update_task(self, task: Task) -> Task:
        existing = self._tasks.get(task.id)
        if existing is None:
            raise NotFoundError(f"Task with ID {task.id} not found")
        self._tasks[task.id] = task
        return existing

    def delete_task(self, task_id: str) -> Task:
        existing = self._tasks.pop(task_id, None)
        if existing is None:
            raise NotFoundError(f"Task with ID {task_id} not found")
        return existing


class InMemoryDepositStore(DepositStore):
    """
    Deposits keyed by id, plus a per (owner, task) index sorted by timestamp
    so window queries only touch the window's own deposits.
    """

    def __init__(self, deposits: Iterable[TaskDeposit] | None = None) -> None:
        self._deposits: dict[str, TaskDeposit] = {}
        self._index: dict[tuple[str, str], list[tuple[datetime, str]]] = defaultdict(list)
        for deposit in deposits or ():
            self._put(deposit)

    @property
    def task_deposits(self) -> dict[str, TaskDeposit]:
        return dict(self._deposits)

    @property
    def task_deposits_list(self) -> list[TaskDeposit]:
        return sorted(self._deposits.values(), key=lambda deposit: (deposit.timestamp, deposit.id))

    def _put(self, deposit: TaskDeposit) -> None:
        self._remove(deposit.id)
        self._deposits[deposit.id] = deposit
        bisect.insort(self._index[(deposit.owner_id, deposit.task_id)], (deposit.timestamp, deposit.id))

    def _remove(self, deposit_id: str) -> TaskDeposit | None:
        existing = self._deposits.pop(deposit_id, None)
        if existing is not None:
            index_key = (existing.owner_id, existing.task_id)
            keys = self._index.get(index_key, [])
            keys.remove((existing.timestamp, existing.id))
            if not keys:
                self._index.pop(index_key, None)
        return existing

    def get_deposit(self, deposit_id: str) -> TaskDeposit | None:
        return self._deposits.get(deposit_id)

    def deposits_in_window(
        self,
        owner_id: str,
        task_id: str,
        start: datetime,
        end: datetime,
    ) -> list[TaskDeposit]:
        keys = self._index.get((owner_id, task_id), [])
        low = bisect.bisect_left(keys, start, key=lambda key: key[0])
        high = bisect.bisect_right(keys, end, key=lambda key: key[0])
        return [self._deposits[deposit_id] for _, deposit_id in keys[low:high]]

    def list_deposits(
        self,
        owner_id: str,
        task_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: int = 1,
        pagination: int = DEFAULT_PAGINATION,
    ) -> list[TaskDeposit]:
        matches = []
        for deposit in self.task_deposits_list:
            if deposit.owner_id != owner_id:
                continue
            if task_id and deposit.task_id != task_id:
                continue
            if start is not None and deposit.timestamp < start:
                continue
            if end is not None and deposit.timestamp > end:
                continue
            matches.append(deposit)
        return _page(matches, page, pagination)

    def commit(self, upserts: Iterable[TaskDeposit] = (), deletes: Iterable[str] = ()) -> None:
        upserts = list(upserts)
        deletes = list(deletes)
        missing = [deposit_id for deposit_id in deletes if deposit_id not in self._deposits]
        if missing:
            raise NotFoundError(f"Deposit with ID {missing[0]} not found")

        for deposit_id in deletes:
            self._remove(deposit_id)
        for deposit in upserts:
            self._put(deposit)


class InMemoryBalanceStore(BalanceStore):
    def __init__(self, users: Iterable[ViceBankUser] | None = None) -> None:
        self._users: dict[str, ViceBankUser] = {}
        for user in users or ():
            self._users[user.id] = user

    @property
    def users(self) -> dict[str, ViceBankUser]:
        return dict(self._users)

    def get_user(self, user_id: str) -> ViceBankUser | None:
        return self._users.get(user_id)

    def add_user(self, user: ViceBankUser) -> ViceBankUser:
        if user.id and user.id in self._users:
            raise InvalidInputError(f"User with ID {user.id} already exists", ["id"])
        if not user.id:
            user = ViceBankUser(id=str(uuid4()), name=user.name, current_tokens=user.current_tokens)
        self._users[user.id] = user
        return user

    def set_balance(self, user_id: str, current_tokens: float) -> ViceBankUser:
        user = self._users.get(user_id)
        if user is None:
            raise NotFoundError(f"User with ID {user_id} not found")
        updated = user.with_tokens(current_tokens)
        self._users[user_id] = updated
        return updated


class InMemoryPurchaseStore(PurchaseStore):
    def __init__(
        self,
        purchase_prices: Iterable[PurchasePrice] | None = None,
        purchases: Iterable[Purchase] | None = None,
    ) -> None:
        self._purchase_prices: dict[str, PurchasePrice] = {}
        self._purchases: dict[str, Purchase] = {}
        for price in purchase_prices or ():
            self._purchase_prices[price.id] = price
        for purchase in purchases or ():
            self._purchases[purchase.id] = purchase

    @property
    def purchase_prices(self) -> dict[str, PurchasePrice]:
        return dict(self._purchase_prices)

    @property
    def purchase_prices_list(self) -> list[PurchasePrice]:
        return sorted(self._purchase_prices.values(), key=lambda price: (price.name, price.id))

    @property
    def purchases(self) -> dict[str, Purchase]:
        return dict(self._purchases)

    @property
    def purchases_list(self) -> list[Purchase]:
        return sorted(self._purchases.values(), key=lambda purchase: (purchase.timestamp, purchase.id))

    def get_purchase_price(self, price_id: str) -> PurchasePrice | None:
        return self._purchase_prices.get(price_id)

    def list_purchase_prices(
        self, owner_id: str, page: int = 1, pagination: int = DEFAULT_PAGINATION
    ) -> list[PurchasePrice]:
        owned = [price for price in self.purchase_prices_list if price.owner_id == owner_id]
        return _page(owned, page, pagination)

    def add_purchase_price(self, price: PurchasePrice) -> PurchasePrice:
        if price.id and price.id in self._purchase_prices:
            raise InvalidInputError(f"Purchase price with ID {price.id} already exists", ["id"])
        if not price.id:
            price = replace(price, id=str(uuid4()))
        self._purchase_prices[price.id] = price
        return price

    def update_purchase_price(self, price: PurchasePrice) -> PurchasePrice:
        existing = self._purchase_prices.get(price.id)
        if existing is None:
            raise NotFoundError(f"Purchase price with ID {price.id} not found")
        self._purchase_prices[price.id] = price
        return existing

    def delete_purchase_price(self, price_id: str) -> PurchasePrice:
        existing = self._purchase_prices.pop(price_id, None)
        if existing is None:
            raise NotFoundError(f"Purchase price with ID {price_id} not found")
        return existing

    def get_purchase(self, purchase_id: str) -> Purchase | None:
        return self._purchases.get(purchase_id)

    def list_purchases(
        self,
        owner_id: str,
        purchase_price_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: int = 1,
        pagination: int = DEFAULT_PAGINATION,
    ) -> list[Purchase]:
        matches = [
            purchase
            for purchase in self.purchases_list
            if purchase.owner_id == owner_id
            and (not purchase_price_id or purchase.purchase_price_id == purchase_price_id)
            and (start is None or purchase.timestamp >= start)
            and (end is None or purchase.timestamp <= end)
        ]
        return _page(matches, page, pagination)

    def add_purchase(self, purchase: Purchase) -> Purchase:
        if purchase.id and purchase.id in self._purchases:
            raise InvalidInputError(f"Purchase with ID {purchase.id} already exists", ["id"])
        if not purchase.id:
            purchase = replace(purchase, id=str(uuid4()))
        self._purchases[purchase.id] = purchase
        return purchase

    def delete_purchase(self, purchase_id: str) -> Purchase:
        existing = self._purchases.pop(purchase_id, None)
        if existing is None:
            raise NotFoundError(f"Purchase with ID {purchase_id} not found")
        return existing
