"""Core data schema for tasks, task deposits, purchases and vice bank users."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from vice_bank.errors import InvalidInputError

_FREQUENCY_ALIASES = {
    "day": "daily",
    "daily": "daily",
    "week": "weekly",
    "weekly": "weekly",
    "month": "monthly",
    "monthly": "monthly",
}


class Frequency(str, Enum):
    """Length of the window in which a task can earn tokens once."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, value: object) -> Frequency:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str) or value.strip().lower() not in _FREQUENCY_ALIASES:
            raise InvalidInputError(f"Invalid frequency: {value!r}", ["frequency"])
        return cls(_FREQUENCY_ALIASES[value.strip().lower()])


@dataclass(frozen=True)
class Task:
    """Recurring activity definition owned by one user."""

    id: str
    owner_id: str
    name: str
    frequency: Frequency
    conversion_rate: float

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vbUserId": self.owner_id,
            "name": self.name,
            "frequency": self.frequency.value,
            "tokensPer": self.conversion_rate,
        }


@dataclass(frozen=True)
class TaskDeposit:
    """A single occurrence of a task.

    ``conversion_rate`` and ``frequency`` are snapshots of the task taken when
    the deposit was created. ``tokens_earned`` is either the snapshot rate or
    zero, and is rewritten by the reconciliation engine.
    """

    id: str
    owner_id: str
    task_id: str
    timestamp: datetime
    task_name: str = ""
    conversion_rate: float = 0.0
    frequency: Frequency = Frequency.DAILY
    tokens_earned: float = 0.0

    def with_tokens_earned(self, tokens_earned: float) -> TaskDeposit:
        return replace(self, tokens_earned=float(tokens_earned))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vbUserId": self.owner_id,
            "date": self.timestamp.isoformat(),
            "taskName": self.task_name,
            "taskId": self.task_id,
            "conversionRate": self.conversion_rate,
            "frequency": self.frequency.value,
            "tokensEarned": self.tokens_earned,
        }


@dataclass(frozen=True)
class ViceBankUser:
    """Owner of tasks and deposits, holding the current token balance."""

    id: str
    name: str
    current_tokens: float = 0.0

    def with_tokens(self, current_tokens: float) -> ViceBankUser:
        return replace(self, current_tokens=float(current_tokens))

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "currentTokens": self.current_tokens}


@dataclass
class DepositChange:
    """Token change applied to one deposit by an engine operation."""

    deposit: TaskDeposit
    tokens_added: float
    deleted: bool = False


@dataclass
class TaskDepositResult:
    """Outcome of an add, update or delete.

    For updates ``task_deposit`` is the deposit as it was before the call; for
    deletes it is the removed deposit. ``tokens_added`` is the net balance
    delta the caller should apply to the owner.
    """

    task_deposit: TaskDeposit
    tokens_added: float
    changes: list[DepositChange] = field(default_factory=list)


@dataclass(frozen=True)
class PurchasePrice:
    """Something a user can spend tokens on, priced per unit."""

    id: str
    owner_id: str
    name: str
    price: float

    def to_dict(self) -> dict:
        return {"id": self.id, "vbUserId": self.owner_id, "name": self.name, "price": self.price}


@dataclass(frozen=True)
class Purchase:
    """Tokens spent on ``purchased_quantity`` units of a purchase price.

    ``purchased_name`` and ``tokens_spent`` are filled from the purchase
    price when the purchase is added.
    """

    id: str
    owner_id: str
    purchase_price_id: str
    timestamp: datetime
    purchased_quantity: float
    purchased_name: str = ""
    tokens_spent: float = 0.0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vbUserId": self.owner_id,
            "purchasePriceId": self.purchase_price_id,
            "purchasedName": self.purchased_name,
            "date": self.timestamp.isoformat(),
            "purchasedQuantity": self.purchased_quantity,
            "tokensSpent": self.tokens_spent,
        }
