"""Service layer: engine and purchase calls followed by the owner's balance update.

Record writes and balance writes go to separate stores and are not atomic.
The deposit or purchase is committed first; if the balance write then fails
the error is logged with the unapplied delta and re-raised as
``InternalError``. No compensation is attempted.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime

from vice_bank.config import DEFAULT_PAGINATION, Settings, configure_logging, get_zone, load_settings
from vice_bank.engine import ReconciliationEngine
from vice_bank.errors import InternalError, InvalidInputError, NotFoundError
from vice_bank.schema import (
    DepositChange,
    Purchase,
    PurchasePrice,
    Task,
    TaskDeposit,
    ViceBankUser,
)
from vice_bank.stores.base import BalanceStore, PurchaseStore
from vice_bank.stores.json_file import JsonFileStore
from vice_bank.stores.memory import (
    InMemoryBalanceStore,
    InMemoryDepositStore,
    InMemoryPurchaseStore,
    InMemoryTaskRegistry,
)
from vice_bank.windows import ensure_aware

logger = logging.getLogger(__name__)


@dataclass
class DepositReceipt:
    """What a caller needs after a deposit operation.

    ``task_deposit`` is the deposit as now stored (or as deleted);
    ``previous`` is only set for updates.
    """

    task_deposit: TaskDeposit
    tokens_added: float
    current_tokens: float
    previous: TaskDeposit | None = None
    changes: list[DepositChange] = field(default_factory=list)


@dataclass
class PurchaseReceipt:
    """``tokens_spent`` is negative when a deleted purchase was refunded."""

    purchase: Purchase
    tokens_spent: float
    current_tokens: float


class ViceBankService:
    def __init__(
        self,
        engine: ReconciliationEngine,
        balances: BalanceStore,
        purchases: PurchaseStore | None = None,
        pagination: int = DEFAULT_PAGINATION,
    ) -> None:
        self.engine = engine
        self.balances = balances
        self.purchases = purchases if purchases is not None else InMemoryPurchaseStore()
        self.pagination = pagination
        self._lock = threading.Lock()

    # --- Users ---

    def add_user(self, user: ViceBankUser) -> ViceBankUser:
        with self._lock:
            return self.balances.add_user(user)

    def get_user(self, user_id: str) -> ViceBankUser:
        user = self.balances.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User with ID {user_id} not found")
        return user

    # --- Tasks ---

    def get_tasks(self, owner_id: str, page: int = 1, pagination: int | None = None) -> list[Task]:
        return self.engine.tasks.list_tasks(owner_id, page=page, pagination=pagination or self.pagination)

    def add_task(self, task: Task) -> Task:
        with self._lock:
            self.get_user(task.owner_id)
            return self.engine.tasks.add_task(task)

    def update_task(self, task: Task) -> Task:
        """Replace a task; existing deposits keep their rate and frequency snapshots."""

        with self._lock:
            return self.engine.tasks.update_task(task)

    def delete_task(self, task_id: str) -> Task:
        with self._lock:
            return self.engine.tasks.delete_task(task_id)

    # --- Task deposits ---

    def get_task_deposits(
        self,
        owner_id: str,
        task_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: int = 1,
        pagination: int | None = None,
    ) -> list[TaskDeposit]:
        return self.engine.deposits.list_deposits(
            owner_id,
            task_id=task_id,
            start=start,
            end=end,
            page=page,
            pagination=pagination or self.pagination,
        )

    def add_task_deposit(self, deposit: TaskDeposit) -> DepositReceipt:
        with self._lock:
            user = self.get_user(deposit.owner_id)
            result = self.engine.add_task_deposit(deposit)
            current_tokens = self._apply_delta(user, result.tokens_added, result.task_deposit.id)
        return DepositReceipt(
            task_deposit=result.task_deposit,
            tokens_added=result.tokens_added,
            current_tokens=current_tokens,
            changes=result.changes,
        )

    def update_task_deposit(self, deposit: TaskDeposit) -> DepositReceipt:
        with self._lock:
            user = self.get_user(deposit.owner_id)
            result = self.engine.update_task_deposit(deposit)
            current_tokens = self._apply_delta(user, result.tokens_added, result.task_deposit.id)

        stored = next(
            (change.deposit for change in result.changes if change.deposit.id == result.task_deposit.id),
            result.task_deposit,
        )
        return DepositReceipt(
            task_deposit=stored,
            tokens_added=result.tokens_added,
            current_tokens=current_tokens,
            previous=result.task_deposit,
            changes=result.changes,
        )

    def delete_task_deposit(self, deposit_id: str) -> DepositReceipt:
        with self._lock:
            existing = self.engine.get_task_deposit(deposit_id)
            user = self.get_user(existing.owner_id)
            result = self.engine.delete_task_deposit(deposit_id)
            current_tokens = self._apply_delta(user, result.tokens_added, result.task_deposit.id)
        return DepositReceipt(
            task_deposit=result.task_deposit,
            tokens_added=result.tokens_added,
            current_tokens=current_tokens,
            changes=result.changes,
        )

    # --- Purchase prices ---

    def get_purchase_prices(self, owner_id: str, page: int = 1, pagination: int | None = None) -> list[PurchasePrice]:
        return self.purchases.list_purchase_prices(owner_id, page=page, pagination=pagination or self.pagination)

    def add_purchase_price(self, price: PurchasePrice) -> PurchasePrice:
        with self._lock:
            self.get_user(price.owner_id)
            return self.purchases.add_purchase_price(price)

    def update_purchase_price(self, price: PurchasePrice) -> PurchasePrice:
        """Replace a purchase price; purchases already made keep what they spent."""

        with self._lock:
            return self.purchases.update_purchase_price(price)

    def delete_purchase_price(self, price_id: str) -> PurchasePrice:
        with self._lock:
            return self.purchases.delete_purchase_price(price_id)

    # --- Purchases ---

    def get_purchases(
        self,
        owner_id: str,
        purchase_price_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: int = 1,
        pagination: int | None = None,
    ) -> list[Purchase]:
        return self.purchases.list_purchases(
            owner_id,
            purchase_price_id=purchase_price_id,
            start=start,
            end=end,
            page=page,
            pagination=pagination or self.pagination,
        )

    def add_purchase(self, purchase: Purchase) -> PurchaseReceipt:
        """Spend ``price * purchased_quantity`` tokens.

        Raises ``InvalidInputError('Not enough tokens')`` when the owner's
        balance would drop below zero; nothing is stored in that case.
        """

        timestamp = ensure_aware(purchase.timestamp, self.engine.zone)
        if purchase.purchased_quantity <= 0:
            raise InvalidInputError("Purchased quantity must be positive", ["purchasedQuantity"])

        with self._lock:
            user = self.get_user(purchase.owner_id)
            price = self.purchases.get_purchase_price(purchase.purchase_price_id)
            if price is None:
                raise NotFoundError(f"Purchase price with ID {purchase.purchase_price_id} not found")
            if price.owner_id != purchase.owner_id:
                raise InvalidInputError(
                    f"Purchase price with ID {price.id} does not belong to user {purchase.owner_id}", ["vbUserId"]
                )

            tokens_spent = price.price * purchase.purchased_quantity
            if user.current_tokens - tokens_spent < 0:
                raise InvalidInputError("Not enough tokens", ["purchasedQuantity"])

            stored = self.purchases.add_purchase(
                replace(
                    purchase,
                    id="",
                    timestamp=timestamp,
                    purchased_name=purchase.purchased_name or price.name,
                    tokens_spent=tokens_spent,
                )
            )
            current_tokens = self._apply_delta(user, -tokens_spent, stored.id, "Purchase")

        logger.info("Added purchase %s for user %s (tokens spent %s)", stored.id, user.id, tokens_spent)
        return PurchaseReceipt(purchase=stored, tokens_spent=tokens_spent, current_tokens=current_tokens)

    def delete_purchase(self, purchase_id: str) -> PurchaseReceipt:
        """Remove a purchase and refund its tokens to the owner."""

        with self._lock:
            existing = self.purchases.get_purchase(purchase_id)
            if existing is None:
                raise NotFoundError(f"Purchase with ID {purchase_id} not found")
            user = self.get_user(existing.owner_id)
            removed = self.purchases.delete_purchase(purchase_id)
            current_tokens = self._apply_delta(user, removed.tokens_spent, removed.id, "Purchase")

        return PurchaseReceipt(purchase=removed, tokens_spent=-removed.tokens_spent, current_tokens=current_tokens)

    def _apply_delta(self, user: ViceBankUser, tokens_added: float, record_id: str, kind: str = "Deposit") -> float:
        current_tokens = user.current_tokens + tokens_added
        if tokens_added == 0:
            return current_tokens
        try:
            self.balances.set_balance(user.id, current_tokens)
        except (InternalError, NotFoundError, OSError) as exc:
            logger.error(
                "%s %s committed but balance of user %s was not updated (unapplied delta %s)",
                kind,
                record_id,
                user.id,
                tokens_added,
            )
            raise InternalError(f"Balance update failed for user {user.id}") from exc
        return current_tokens


def build_service(settings: Settings | None = None) -> ViceBankService:
    """Wire stores, engine and service from ``settings`` (environment by default).

    ``settings.timezone`` is the zone every deposit and purchase timestamp is
    converted to before windowing or storing.
    """

    settings = settings or load_settings()
    configure_logging(settings.log_level)
    zone = get_zone(settings.timezone)

    if settings.store_type == "file" and settings.file_path is not None:
        store = JsonFileStore.open(settings.file_path, zone=zone)
        engine = ReconciliationEngine(tasks=store, deposits=store, zone=zone)
        balances: BalanceStore = store
        purchases: PurchaseStore = store
    else:
        engine = ReconciliationEngine(tasks=InMemoryTaskRegistry(), deposits=InMemoryDepositStore(), zone=zone)
        balances = InMemoryBalanceStore()
        purchases = InMemoryPurchaseStore()

    logger.info("Vice bank service using %s store in zone %s", settings.store_type, zone.key)
    return ViceBankService(engine, balances, purchases=purchases, pagination=settings.pagination)
