from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from vice_bank.adapters.csv_adapter import parse as parse_csv
from vice_bank.adapters.json_adapter import parse_tasks
from vice_bank.config import Settings
from vice_bank.engine import ReconciliationEngine
from vice_bank.errors import InternalError, InvalidInputError, NotFoundError
from vice_bank.metrics import find_violations
from vice_bank.schema import Frequency, Purchase, PurchasePrice, Task, TaskDeposit, ViceBankUser
from vice_bank.service import ViceBankService, build_service
from vice_bank.stores.json_file import JsonFileStore
from vice_bank.stores.memory import InMemoryBalanceStore, InMemoryDepositStore, InMemoryTaskRegistry

CHICAGO = ZoneInfo("America/Chicago")
EXAMPLES = Path(__file__).resolve().parents[1] / "examples"

WALK = Task("walk", "alex", "Morning walk", Frequency.DAILY, 1.0)


def request(when, task_id="walk", owner="alex"):
    return TaskDeposit(id="", owner_id=owner, task_id=task_id, timestamp=when)


def make_service():
    service = build_service(Settings())
    service.add_user(ViceBankUser("alex", "Alex"))
    service.add_task(WALK)
    return service


def test_add_credits_balance_once_per_window():
    service = make_service()

    first = service.add_task_deposit(request(datetime(2024, 1, 1, 8, tzinfo=CHICAGO)))
    second = service.add_task_deposit(request(datetime(2024, 1, 1, 20, tzinfo=CHICAGO)))

    assert (first.tokens_added, first.current_tokens) == (1, 1)
    assert (second.tokens_added, second.current_tokens) == (0, 1)
    assert service.get_user("alex").current_tokens == 1


def test_update_and_delete_keep_balance_equal_to_stored_tokens():
    service = make_service()
    d1 = service.add_task_deposit(request(datetime(2024, 1, 1, 8, tzinfo=CHICAGO))).task_deposit
    d2 = service.add_task_deposit(request(datetime(2024, 1, 1, 20, tzinfo=CHICAGO))).task_deposit

    moved = service.update_task_deposit(replace(d1, timestamp=datetime(2024, 1, 2, 8, tzinfo=CHICAGO)))
    assert moved.previous == d1
    assert moved.task_deposit.timestamp == datetime(2024, 1, 2, 8, tzinfo=CHICAGO)
    assert moved.current_tokens == 2

    removed = service.delete_task_deposit(d2.id)
    assert removed.tokens_added == -1
    assert removed.current_tokens == 1

    stored = service.get_task_deposits("alex")
    assert service.get_user("alex").current_tokens == sum(d.tokens_earned for d in stored)


def test_sample_replay_balances():
    service = build_service(Settings())
    tasks = parse_tasks(str(EXAMPLES / "sample_tasks.json"))
    for owner_id in {task.owner_id for task in tasks}:
        service.add_user(ViceBankUser(owner_id, owner_id))
    for task in tasks:
        service.add_task(task)
    for deposit in parse_csv(str(EXAMPLES / "sample_deposits.csv")):
        service.add_task_deposit(deposit)

    # walk 1+1, gym 5+5, budget 10+10
    assert service.get_user("alex").current_tokens == 32
    assert service.get_user("sam").current_tokens == 4


def test_unknown_user_is_not_found():
    service = make_service()
    with pytest.raises(NotFoundError):
        service.get_user("nobody")
    with pytest.raises(NotFoundError):
        service.add_task(Task("read", "nobody", "Read", Frequency.DAILY, 2))
    with pytest.raises(NotFoundError):
        service.add_task_deposit(request(datetime(2024, 1, 1, tzinfo=CHICAGO), owner="nobody"))


def test_tasks_and_deposits_are_paginated():
    service = make_service()
    service.add_task(Task("gym", "alex", "Gym", Frequency.WEEKLY, 5))
    for day in range(1, 6):
        service.add_task_deposit(request(datetime(2024, 1, day, tzinfo=CHICAGO)))

    assert [task.id for task in service.get_tasks("alex")] == ["gym", "walk"]
    page = service.get_task_deposits("alex", task_id="walk", page=2, pagination=2)
    assert [d.timestamp.day for d in page] == [3, 4]


def test_balance_write_failure_raises_internal_error_after_deposit_commit():
    class BrokenBalances(InMemoryBalanceStore):
        def set_balance(self, user_id, current_tokens):
            raise OSError("disk full")

    deposits = InMemoryDepositStore()
    engine = ReconciliationEngine(InMemoryTaskRegistry([WALK]), deposits)
    service = ViceBankService(engine, BrokenBalances([ViceBankUser("alex", "Alex")]))

    with pytest.raises(InternalError):
        service.add_task_deposit(request(datetime(2024, 1, 1, tzinfo=CHICAGO)))

    assert len(deposits.task_deposits) == 1
    assert service.get_user("alex").current_tokens == 0


def test_file_backed_service_survives_restart(tmp_path):
    settings = Settings(store_type="file", file_path=tmp_path)
    service = build_service(settings)
    service.add_user(ViceBankUser("alex", "Alex"))
    service.add_task(WALK)
    service.add_task_deposit(request(datetime(2024, 1, 1, 8, tzinfo=CHICAGO)))

    assert isinstance(service.balances, JsonFileStore)
    restarted = build_service(settings)
    assert restarted.get_user("alex").current_tokens == 1
    assert len(restarted.get_task_deposits("alex")) == 1


def test_file_backed_service_windows_mixed_zone_inputs_by_local_day(tmp_path):
    settings = Settings(store_type="file", file_path=tmp_path)
    service = build_service(settings)
    service.add_user(ViceBankUser("alex", "Alex"))
    service.add_task(WALK)
    service.add_task_deposit(request(datetime(2024, 1, 1, 20, tzinfo=CHICAGO)))

    restarted = build_service(settings)
    # 23:00 UTC is 17:00 in Chicago on the same day
    receipt = restarted.add_task_deposit(request(datetime(2024, 1, 1, 23, tzinfo=timezone.utc)))

    assert receipt.tokens_added == 0
    assert receipt.task_deposit.timestamp.tzinfo == CHICAGO
    assert restarted.get_user("alex").current_tokens == 1
    assert find_violations(restarted.get_task_deposits("alex")) == []


def test_build_service_uses_configured_timezone():
    utc = ZoneInfo("UTC")
    service = build_service(Settings(timezone="UTC"))
    service.add_user(ViceBankUser("alex", "Alex"))
    service.add_task(WALK)

    assert service.engine.zone == utc
    # 20:00 in Chicago is 02:00 UTC on Jan 2, so these land on different UTC days
    first = service.add_task_deposit(request(datetime(2024, 1, 1, 20, tzinfo=CHICAGO)))
    second = service.add_task_deposit(request(datetime(2024, 1, 1, 23, tzinfo=timezone.utc)))

    assert first.task_deposit.timestamp.tzinfo == utc
    assert (first.tokens_added, second.tokens_added) == (1, 1)
    assert service.get_user("alex").current_tokens == 2


# --- purchases ---

CANDY = PurchasePrice("candy", "alex", "Candy bar", 2.0)


def buy(quantity=1.0, price_id="candy", owner="alex", when=None):
    return Purchase(
        id="",
        owner_id=owner,
        purchase_price_id=price_id,
        timestamp=when or datetime(2024, 1, 3, 12, tzinfo=CHICAGO),
        purchased_quantity=quantity,
    )


def make_funded_service(tokens=5.0):
    service = build_service(Settings())
    service.add_user(ViceBankUser("alex", "Alex", current_tokens=tokens))
    service.add_purchase_price(CANDY)
    return service


def test_add_purchase_spends_price_times_quantity():
    service = make_funded_service()

    receipt = service.add_purchase(buy(quantity=2))

    assert receipt.tokens_spent == 4
    assert receipt.current_tokens == 1
    assert receipt.purchase.id
    assert receipt.purchase.purchased_name == "Candy bar"
    assert receipt.purchase.tokens_spent == 4
    assert service.get_user("alex").current_tokens == 1
    assert service.get_purchases("alex") == [receipt.purchase]


def test_add_purchase_converts_timestamp_to_configured_zone():
    service = make_funded_service()

    receipt = service.add_purchase(buy(when=datetime(2024, 1, 3, 18, tzinfo=timezone.utc)))

    assert receipt.purchase.timestamp.tzinfo == CHICAGO
    assert receipt.purchase.timestamp.hour == 12


def test_purchase_may_spend_the_whole_balance():
    service = make_funded_service(tokens=4.0)

    receipt = service.add_purchase(buy(quantity=2))

    assert receipt.current_tokens == 0


def test_purchase_without_enough_tokens_is_rejected():
    service = make_funded_service(tokens=3.0)

    with pytest.raises(InvalidInputError, match="Not enough tokens"):
        service.add_purchase(buy(quantity=2))

    assert service.get_purchases("alex") == []
    assert service.get_user("alex").current_tokens == 3


def test_delete_purchase_refunds_tokens():
    service = make_funded_service()
    bought = service.add_purchase(buy(quantity=2)).purchase

    receipt = service.delete_purchase(bought.id)

    assert receipt.purchase == bought
    assert receipt.tokens_spent == -4
    assert receipt.current_tokens == 5
    assert service.get_user("alex").current_tokens == 5
    assert service.get_purchases("alex") == []
    with pytest.raises(NotFoundError, match=f"Purchase with ID {bought.id} not found"):
        service.delete_purchase(bought.id)


def test_purchase_input_errors():
    service = make_funded_service()
    service.add_user(ViceBankUser("sam", "Sam", current_tokens=10))

    with pytest.raises(NotFoundError, match="Purchase price with ID soda not found"):
        service.add_purchase(buy(price_id="soda"))
    with pytest.raises(InvalidInputError):
        service.add_purchase(buy(owner="sam"))
    with pytest.raises(InvalidInputError):
        service.add_purchase(buy(quantity=0))
    with pytest.raises(NotFoundError):
        service.add_purchase(buy(owner="nobody"))
    with pytest.raises(NotFoundError):
        service.add_purchase_price(PurchasePrice("", "nobody", "Soda", 1))

    assert service.get_user("alex").current_tokens == 5
    assert service.get_user("sam").current_tokens == 10


def test_purchase_prices_are_managed_per_owner():
    service = make_funded_service()
    soda = service.add_purchase_price(PurchasePrice("", "alex", "Apple soda", 1.0))

    assert [price.name for price in service.get_purchase_prices("alex")] == ["Apple soda", "Candy bar"]
    service.update_purchase_price(PurchasePrice(soda.id, "alex", "Apple soda", 3.0))
    assert service.purchases.get_purchase_price(soda.id).price == 3.0
    assert service.delete_purchase_price(soda.id).price == 3.0
    assert service.get_purchase_prices("bob") == []


def test_file_backed_purchases_survive_restart(tmp_path):
    settings = Settings(store_type="file", file_path=tmp_path)
    service = build_service(settings)
    service.add_user(ViceBankUser("alex", "Alex", current_tokens=5))
    service.add_purchase_price(CANDY)
    bought = service.add_purchase(buy()).purchase

    restarted = build_service(settings)
    assert restarted.get_user("alex").current_tokens == 3
    assert restarted.get_purchases("alex") == [bought]

    restarted.delete_purchase(bought.id)
    assert build_service(settings).get_user("alex").current_tokens == 5
