from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from vice_bank.errors import InvalidInputError
from vice_bank.schema import Frequency
from vice_bank.validation import (
    parse_purchase,
    parse_purchase_price,
    parse_task,
    parse_task_deposit,
    parse_timestamp,
    parse_user,
)

CHICAGO = ZoneInfo("America/Chicago")
UTC_ZONE = ZoneInfo("UTC")


def test_parse_timestamp_attaches_zone_to_naive_values():
    parsed = parse_timestamp("2024-01-01T08:00:00", CHICAGO)
    assert parsed == datetime(2024, 1, 1, 8, 0, tzinfo=CHICAGO)


def test_parse_timestamp_converts_aware_values():
    parsed = parse_timestamp("2024-01-01T14:00:00+00:00", CHICAGO)
    assert parsed.tzinfo is CHICAGO
    assert (parsed.hour, parsed.utcoffset()) == (8, timedelta(hours=-6))

    from_datetime = parse_timestamp(datetime(2024, 1, 1, 14, tzinfo=timezone.utc), UTC_ZONE)
    assert from_datetime.hour == 14


@pytest.mark.parametrize("value", ["", "yesterday", None, 12])
def test_parse_timestamp_rejects_garbage(value):
    with pytest.raises(InvalidInputError) as info:
        parse_timestamp(value, CHICAGO)
    assert info.value.fields == ["date"]


def test_frequency_aliases():
    assert Frequency.parse("Week") is Frequency.WEEKLY
    assert Frequency.parse(" month ") is Frequency.MONTHLY
    assert Frequency.parse(Frequency.DAILY) is Frequency.DAILY
    with pytest.raises(InvalidInputError):
        Frequency.parse("yearly")


def test_parse_task_success():
    result = parse_task({"id": "walk", "vbUserId": "alex", "name": "Walk", "frequency": "day", "tokensPer": "1.5"})
    assert result.ok
    assert result.value.frequency is Frequency.DAILY
    assert result.value.conversion_rate == 1.5


def test_parse_task_collects_every_bad_field():
    result = parse_task({"vbUserId": "", "name": "Walk", "frequency": "hourly", "tokensPer": -1})
    assert not result.ok
    assert result.errors == ["id", "vbUserId", "frequency", "tokensPer"]
    with pytest.raises(InvalidInputError) as info:
        result.unwrap()
    assert info.value.fields == result.errors


@pytest.mark.parametrize("rate", [True, float("nan"), float("inf"), "lots", [1]])
def test_parse_task_rejects_bad_rates(rate):
    result = parse_task({"id": "walk", "vbUserId": "alex", "name": "Walk", "frequency": "daily", "tokensPer": rate})
    assert result.errors == ["tokensPer"]


def test_parse_task_without_id_when_not_required():
    result = parse_task({"vbUserId": "alex", "name": "Walk", "frequency": "daily", "tokensPer": 0}, require_id=False)
    assert result.ok
    assert result.value.id == ""


def test_parse_task_deposit_minimal_payload():
    result = parse_task_deposit(
        {"vbUserId": "alex", "taskId": "walk", "date": "2024-01-01T08:00:00"},
        require_id=False,
        zone=CHICAGO,
    )
    deposit = result.unwrap()
    assert deposit.id == ""
    assert deposit.task_name == ""
    assert deposit.tokens_earned == 0
    assert deposit.timestamp == datetime(2024, 1, 1, 8, tzinfo=CHICAGO)


def test_parse_task_deposit_reads_its_own_output():
    payload = {
        "id": "d1",
        "vbUserId": "alex",
        "taskId": "walk",
        "date": "2024-01-01T08:00:00-06:00",
        "taskName": "Walk",
        "conversionRate": 2,
        "frequency": "weekly",
        "tokensEarned": 2,
    }
    deposit = parse_task_deposit(payload, zone=CHICAGO).unwrap()
    assert deposit.to_dict() == {**payload, "conversionRate": 2.0, "tokensEarned": 2.0}


def test_parse_task_deposit_reports_bad_fields():
    result = parse_task_deposit(
        {"vbUserId": "alex", "date": "nope", "taskName": 3, "tokensEarned": -4},
        zone=CHICAGO,
    )
    assert result.errors == ["id", "taskId", "date", "taskName", "tokensEarned"]


def test_parse_rejects_non_mapping_payloads():
    assert parse_task([]).errors == ["root"]
    assert parse_task_deposit("x").errors == ["root"]
    assert parse_user(None).errors == ["root"]


def test_parse_user_allows_negative_balance():
    assert parse_user({"id": "alex", "name": "Alex", "currentTokens": -3}).unwrap().current_tokens == -3
    assert parse_user({"id": "alex", "name": "Alex"}).value.current_tokens == 0
    assert parse_user({"id": "alex", "name": "Alex", "currentTokens": "3"}).errors == ["currentTokens"]


def test_parse_purchase_price():
    price = parse_purchase_price({"id": "candy", "vbUserId": "alex", "name": " Candy ", "price": "2.5"}).unwrap()
    assert (price.id, price.owner_id, price.name, price.price) == ("candy", "alex", "Candy", 2.5)

    assert parse_purchase_price({"vbUserId": "alex", "name": "Candy", "price": 1}, require_id=False).value.id == ""
    assert parse_purchase_price({"name": "", "price": -1}).errors == ["id", "vbUserId", "name", "price"]
    with pytest.raises(InvalidInputError, match="Invalid purchase price: price"):
        parse_purchase_price({"id": "c", "vbUserId": "alex", "name": "Candy", "price": "free"}).unwrap()


def test_parse_purchase_converts_date_to_zone():
    payload = {
        "id": "p1",
        "vbUserId": "alex",
        "purchasePriceId": "candy",
        "date": "2024-01-03T18:00:00+00:00",
        "purchasedQuantity": 2,
    }

    purchase = parse_purchase(payload, zone=CHICAGO).unwrap()

    assert purchase.timestamp == datetime(2024, 1, 3, 12, tzinfo=CHICAGO)
    assert purchase.timestamp.tzinfo == CHICAGO
    assert purchase.purchased_quantity == 2
    assert purchase.purchased_name == ""
    assert purchase.tokens_spent == 0


def test_parse_purchase_reads_its_own_output():
    payload = {
        "id": "p1",
        "vbUserId": "alex",
        "purchasePriceId": "candy",
        "purchasedName": "Candy bar",
        "date": "2024-01-03T12:00:00-06:00",
        "purchasedQuantity": 2,
        "tokensSpent": 4,
    }
    purchase = parse_purchase(payload, zone=CHICAGO).unwrap()

    assert parse_purchase(purchase.to_dict(), zone=CHICAGO).unwrap() == purchase


def test_parse_purchase_reports_bad_fields():
    result = parse_purchase(
        {"vbUserId": "alex", "date": "later", "purchasedName": 5, "purchasedQuantity": "x", "tokensSpent": -1},
        require_id=False,
        zone=CHICAGO,
    )
    assert result.errors == ["purchasePriceId", "date", "purchasedName", "purchasedQuantity", "tokensSpent"]
    assert parse_purchase([]).errors == ["root"]
