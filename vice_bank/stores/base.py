"""Persistence contracts consumed by the engine and the service layer."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime

from vice_bank.config import DEFAULT_PAGINATION
from vice_bank.schema import Purchase, PurchasePrice, Task, TaskDeposit, ViceBankUser


class TaskRegistry(ABC):
    """Task definitions, looked up by id."""

    @abstractmethod
    def get_task(self, task_id: str) -> Task | None:
        ...

    @abstractmethod
    def list_tasks(self, owner_id: str, page: int = 1, pagination: int = DEFAULT_PAGINATION) -> list[Task]:
        ...

    @abstractmethod
    def add_task(self, task: Task) -> Task:
        ...

    @abstractmethod
    def update_task(self, task: Task) -> Task:
        """Replace a stored task and return the previous version."""

    @abstractmethod
    def delete_task(self, task_id: str) -> Task:
        ...


class DepositStore(ABC):
    """
    Ownership-keyed collection of task deposits.

    The store owns the canonical records; everything returned is a copy the
    caller may keep. ``commit`` is the only write entry point so that an
    operation's full write set reaches the backend in one call.
    """

    @abstractmethod
    def get_deposit(self, deposit_id: str) -> TaskDeposit | None:
        ...

    @abstractmethod
    def deposits_in_window(
        self,
        owner_id: str,
        task_id: str,
        start: datetime,
        end: datetime,
    ) -> list[TaskDeposit]:
        """All deposits of ``owner_id`` for ``task_id`` with start <= timestamp <= end."""

    @abstractmethod
    def list_deposits(
        self,
        owner_id: str,
        task_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: int = 1,
        pagination: int = DEFAULT_PAGINATION,
    ) -> list[TaskDeposit]:
        ...

    @abstractmethod
    def commit(self, upserts: Iterable[TaskDeposit] = (), deletes: Iterable[str] = ()) -> None:
        """Insert or replace ``upserts`` and remove ``deletes`` as one write."""


class BalanceStore(ABC):
    """Vice bank users and their token balances."""

    @abstractmethod
    def get_user(self, user_id: str) -> ViceBankUser | None:
        ...

    @abstractmethod
    def add_user(self, user: ViceBankUser) -> ViceBankUser:
        ...

    @abstractmethod
    def set_balance(self, user_id: str, current_tokens: float) -> ViceBankUser:
        ...

    def get_balance(self, user_id: str) -> float | None:
        user = self.get_user(user_id)
        return None if user is None else user.current_tokens


class PurchaseStore(ABC):
    """Purchase prices and the purchases made against them."""

    @abstractmethod
    def get_purchase_price(self, price_id: str) -> PurchasePrice | None:
        ...

    @abstractmethod
    def list_purchase_prices(
        self, owner_id: str, page: int = 1, pagination: int = DEFAULT_PAGINATION
    ) -> list[PurchasePrice]:
        ...

    @abstractmethod
    def add_purchase_price(self, price: PurchasePrice) -> PurchasePrice:
        ...

    @abstractmethod
    def update_purchase_price(self, price: PurchasePrice) -> PurchasePrice:
        """Replace a stored purchase price and return the previous version."""

    @abstractmethod
    def delete_purchase_price(self, price_id: str) -> PurchasePrice:
        ...

    @abstractmethod
    def get_purchase(self, purchase_id: str) -> Purchase | None:
        ...

    @abstractmethod
    def list_purchases(
        self,
        owner_id: str,
        purchase_price_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: int = 1,
        pagination: int = DEFAULT_PAGINATION,
    ) -> list[Purchase]:
        ...

    @abstractmethod
    def add_purchase(self, purchase: Purchase) -> Purchase:
        ...

    @abstractmethod
    def delete_purchase(self, purchase_id: str) -> Purchase:
        ...
