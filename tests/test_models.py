from decimal import Decimal

import pytest

from sharetab.db.models import Event, Expense, Payment
from sharetab.exceptions import ExpenseInvalidError, SplitInvalidError, ValidationError
from sharetab.services.split import PercentageSplit, ShareSplit


def test_expense_from_record():
    expense = Expense.from_record(
        {
            "id": "e1",
            "eventId": "ev1",
            "description": "Court hire",
            "amount": "80.00",
            "payerId": "a",
            "date": "2025-12-25",
            "split": {"mode": "percentage", "weights": {"a": 50, "b": 50}},
        }
    )
    assert expense.amount_cents == 8000
    assert expense.amount == Decimal("80.00")
    assert isinstance(expense.split, PercentageSplit)
    assert expense.description == "Court hire"


def test_expense_from_legacy_record_prefers_shares():
    expense = Expense.from_record(
        {
            "id": "e1",
            "eventId": "ev1",
            "amount": 12.5,
            "payerId": "a",
            "splitShares": {"a": 2, "b": 1},
            "splitPercentage": {"a": 10, "b": 90},
        }
    )
    assert isinstance(expense.split, ShareSplit)
    assert expense.amount_cents == 1250


def test_expense_rejects_payer_outside_split():
    with pytest.raises(SplitInvalidError) as excinfo:
        Expense.from_record(
            {"id": "e1", "amount": 10, "payerId": "z", "split": {"mode": "shares", "weights": {"a": 1}}}
        )
    assert excinfo.value.field == "payerId"


def test_expense_requires_payer():
    with pytest.raises(ExpenseInvalidError):
        Expense.from_record({"id": "e1", "amount": 10, "split": {"mode": "shares", "weights": {"a": 1}}})


def test_payment_from_record():
    payment = Payment.from_record({"id": "p1", "participantId": "a", "amount": 5.1, "date": "2025-12-25"})
    assert payment.amount_cents == 510
    assert payment.event_id is None

    with pytest.raises(ValidationError):
        Payment.from_record({"id": "p2", "amount": 5})


def test_event_from_record():
    event = Event.from_record({"id": "ev1", "name": "Badminton", "participantIds": ["a", "b"]})
    assert event.participant_ids == ["a", "b"]
    assert Event.from_record({"id": "ev2"}).participant_ids == []
