"""Parsing of loosely-typed payloads into schema records.

Every parser collects the names of all invalid fields instead of stopping at
the first one, and returns a ``ParseResult``. Callers that want an exception
use ``ParseResult.unwrap()``.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Generic, TypeVar
from zoneinfo import ZoneInfo

from vice_bank.config import get_zone
from vice_bank.errors import InvalidInputError
from vice_bank.schema import Frequency, Purchase, PurchasePrice, Task, TaskDeposit, ViceBankUser

T = TypeVar("T")


@dataclass
class ParseResult(Generic[T]):
    value: T | None = None
    errors: list[str] = field(default_factory=list)
    kind: str = "record"

    @property
    def ok(self) -> bool:
        return not self.errors

    def unwrap(self) -> T:
        if self.errors or self.value is None:
            raise InvalidInputError(f"Invalid {self.kind}: {', '.join(self.errors) or 'root'}", self.errors)
        return self.value


def parse_timestamp(value: object, zone: ZoneInfo | None = None) -> datetime:
    """Parse an ISO-8601 string or datetime into an aware datetime in ``zone``.

    Naive values are taken to be wall-clock times in ``zone``; aware values
    are converted to it.
    """

    zone = zone or get_zone()
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise InvalidInputError(f"Malformed timestamp: {value!r}", ["date"]) from exc
    else:
        raise InvalidInputError(f"Malformed timestamp: {value!r}", ["date"])

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=zone)
    return parsed.astimezone(zone)


def _is_text(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _as_amount(value: object) -> float | None:
    """Non-negative finite number, or None when ``value`` is not one."""

    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    amount = float(value)
    if math.isnan(amount) or math.isinf(amount) or amount < 0:
        return None
    return amount


def parse_task(payload: object, require_id: bool = True) -> ParseResult[Task]:
    if not isinstance(payload, Mapping):
        return ParseResult(errors=["root"], kind="task")

    errors = []
    if require_id and not _is_text(payload.get("id")):
        errors.append("id")
    if not _is_text(payload.get("vbUserId")):
        errors.append("vbUserId")
    if not _is_text(payload.get("name")):
        errors.append("name")

    frequency = None
    try:
        frequency = Frequency.parse(payload.get("frequency"))
    except InvalidInputError:
        errors.append("frequency")

    conversion_rate = _as_amount(payload.get("tokensPer"))
    if conversion_rate is None:
        errors.append("tokensPer")

    if errors:
        return ParseResult(errors=errors, kind="task")

    return ParseResult(
        value=Task(
            id=str(payload.get("id") or "").strip(),
            owner_id=str(payload["vbUserId"]).strip(),
            name=str(payload["name"]).strip(),
            frequency=frequency,
            conversion_rate=conversion_rate,
        ),
        kind="task",
    )


def parse_task_deposit(
    payload: object,
    require_id: bool = True,
    zone: ZoneInfo | None = None,
) -> ParseResult[TaskDeposit]:
    """Parse a deposit payload in the camelCase wire shape.

    Only ``vbUserId``, ``taskId`` and ``date`` are mandatory (plus ``id`` when
    ``require_id``); snapshot fields default to empty values and are filled
    from the task when a new deposit is added.
    """

    if not isinstance(payload, Mapping):
        return ParseResult(errors=["root"], kind="task deposit")

    errors = []
    if require_id and not _is_text(payload.get("id")):
        errors.append("id")
    if not _is_text(payload.get("vbUserId")):
        errors.append("vbUserId")
    if not _is_text(payload.get("taskId")):
        errors.append("taskId")

    timestamp = None
    try:
        timestamp = parse_timestamp(payload.get("date"), zone)
    except InvalidInputError:
        errors.append("date")

    task_name = payload.get("taskName")
    if task_name is not None and not isinstance(task_name, str):
        errors.append("taskName")

    frequency = Frequency.DAILY
    if payload.get("frequency") not in (None, ""):
        try:
            frequency = Frequency.parse(payload.get("frequency"))
        except InvalidInputError:
            errors.append("frequency")

    amounts = {}
    for key in ("conversionRate", "tokensEarned"):
        raw = payload.get(key)
        if raw in (None, ""):
            amounts[key] = 0.0
            continue
        amount = _as_amount(raw)
        if amount is None:
            errors.append(key)
        amounts[key] = amount

    if errors:
        return ParseResult(errors=errors, kind="task deposit")

    return ParseResult(
        value=TaskDeposit(
            id=str(payload.get("id") or "").strip(),
            owner_id=str(payload["vbUserId"]).strip(),
            task_id=str(payload["taskId"]).strip(),
            timestamp=timestamp,
            task_name=(task_name or "").strip(),
            conversion_rate=amounts["conversionRate"],
            frequency=frequency,
            tokens_earned=amounts["tokensEarned"],
        ),
        kind="task deposit",
    )


def parse_user(payload: object) -> ParseResult[ViceBankUser]:
    if not isinstance(payload, Mapping):
        return ParseResult(errors=["root"], kind="vice bank user")

    errors = []
    if not _is_text(payload.get("id")):
        errors.append("id")
    if not _is_text(payload.get("name")):
        errors.append("name")

    # balances may go negative through deletes, so only finiteness is checked
    raw_tokens = payload.get("currentTokens", 0)
    current_tokens = None
    if isinstance(raw_tokens, (int, float)) and not isinstance(raw_tokens, bool) and math.isfinite(raw_tokens):
        current_tokens = float(raw_tokens)
    else:
        errors.append("currentTokens")

    if errors:
        return ParseResult(errors=errors, kind="vice bank user")

    return ParseResult(
        value=ViceBankUser(
            id=str(payload["id"]).strip(),
            name=str(payload["name"]).strip(),
            current_tokens=current_tokens,
        ),
        kind="vice bank user",
    )


def parse_purchase_price(payload: object, require_id: bool = True) -> ParseResult[PurchasePrice]:
    if not isinstance(payload, Mapping):
        return ParseResult(errors=["root"], kind="purchase price")

    errors = []
    if require_id and not _is_text(payload.get("id")):
        errors.append("id")
    if not _is_text(payload.get("vbUserId")):
        errors.append("vbUserId")
    if not _is_text(payload.get("name")):
        errors.append("name")
    price = _as_amount(payload.get("price"))
    if price is None:
        errors.append("price")

    if errors:
        return ParseResult(errors=errors, kind="purchase price")

    return ParseResult(
        value=PurchasePrice(
            id=str(payload.get("id") or "").strip(),
            owner_id=str(payload["vbUserId"]).strip(),
            name=str(payload["name"]).strip(),
            price=price,
        ),
        kind="purchase price",
    )


def parse_purchase(
    payload: object,
    require_id: bool = True,
    zone: ZoneInfo | None = None,
) -> ParseResult[Purchase]:
    if not isinstance(payload, Mapping):
        return ParseResult(errors=["root"], kind="purchase")

    errors = []
    if require_id and not _is_text(payload.get("id")):
        errors.append("id")
    if not _is_text(payload.get("vbUserId")):
        errors.append("vbUserId")
    if not _is_text(payload.get("purchasePriceId")):
        errors.append("purchasePriceId")

    timestamp = None
    try:
        timestamp = parse_timestamp(payload.get("date"), zone)
    except InvalidInputError:
        errors.append("date")

    purchased_name = payload.get("purchasedName")
    if purchased_name is not None and not isinstance(purchased_name, str):
        errors.append("purchasedName")

    quantity = _as_amount(payload.get("purchasedQuantity"))
    if quantity is None:
        errors.append("purchasedQuantity")

    tokens_spent = 0.0
    if payload.get("tokensSpent") not in (None, ""):
        tokens_spent = _as_amount(payload.get("tokensSpent"))
        if tokens_spent is None:
            errors.append("tokensSpent")

    if errors:
        return ParseResult(errors=errors, kind="purchase")

    return ParseResult(
        value=Purchase(
            id=str(payload.get("id") or "").strip(),
            owner_id=str(payload["vbUserId"]).strip(),
            purchase_price_id=str(payload["purchasePriceId"]).strip(),
            timestamp=timestamp,
            purchased_quantity=quantity,
            purchased_name=(purchased_name or "").strip(),
            tokens_spent=tokens_spent,
        ),
        kind="purchase",
    )
