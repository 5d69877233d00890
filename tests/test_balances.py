from decimal import Decimal

import pytest

from sharetab.db.models import Expense, Payment
from sharetab.services import balances
from sharetab.exceptions import DataIntegrityWarning, ExpenseInvalidError, SplitInvalidError
from sharetab.services.balances import (
    BalanceStatus,
    balance_status,
    calculate_all_user_balances,
    calculate_event_balance,
    calculate_event_statistics,
    calculate_expense_balances,
    calculate_user_balance,
    summarize_event,
)
from sharetab.services.integrity import check_event_integrity
from sharetab.services.split import PercentageSplit, RemainderPolicy, ShareSplit, SplitMode, create_equal_split

PARTICIPANTS = ["alice", "bob", "charlie", "diana"]


def badminton_expenses() -> list[Expense]:
    return [
        Expense(
            id="court",
            event_id="ev1",
            payer_id="alice",
            amount_cents=8000,
            split=create_equal_split(PARTICIPANTS),
        ),
        Expense(
            id="shuttles",
            event_id="ev1",
            payer_id="bob",
            amount_cents=3000,
            split=PercentageSplit({"alice": 33.33, "bob": 33.33, "charlie": 33.34, "diana": 0}),
        ),
        Expense(
            id="equipment",
            event_id="ev1",
            payer_id="charlie",
            amount_cents=4000,
            split=PercentageSplit({"alice": 25, "bob": 25, "charlie": 0, "diana": 50}),
        ),
    ]


def test_event_balance_matches_hand_computed_scenario():
    balances = calculate_event_balance("ev1", badminton_expenses(), [], PARTICIPANTS)

    expected = {
        "alice": Decimal("40.00"),
        "bob": Decimal("-10.00"),
        "charlie": Decimal("9.98"),
        "diana": Decimal("-40.00"),
    }
    for participant_id, net in expected.items():
        assert abs(balances[participant_id].net - net) <= Decimal("0.01")

    assert balances["diana"].owed == Decimal("40.00")
    assert balances["alice"].paid == Decimal("80.00")
    assert sum(balance.net for balance in balances.values()) == 0


def test_event_balance_includes_idle_participants():
    balances = calculate_event_balance("ev1", badminton_expenses(), [], PARTICIPANTS + ["erin"])
    erin = balances["erin"]
    assert (erin.owed, erin.paid, erin.net) == (Decimal("0.00"), Decimal("0.00"), Decimal("0.00"))
    assert erin.status == BalanceStatus.SETTLED


def test_event_balance_counts_only_this_event():
    expenses = badminton_expenses() + [
        Expense(id="other", event_id="ev2", payer_id="bob", amount_cents=5000, split=create_equal_split(["bob"])),
    ]
    payments = [
        Payment(id="p1", participant_id="diana", amount_cents=2500, event_id="ev1"),
        Payment(id="p2", participant_id="diana", amount_cents=1000, event_id="ev2"),
        Payment(id="p3", participant_id="diana", amount_cents=700),
    ]

    balances = calculate_event_balance("ev1", expenses, payments, PARTICIPANTS)

    assert balances["diana"].paid == Decimal("25.00")
    assert balances["diana"].net == Decimal("-15.00")
    assert balances["bob"].paid == Decimal("30.00")


def test_event_balance_skips_unknown_split_members():
    expenses = [
        Expense(
            id="x",
            event_id="ev1",
            payer_id="alice",
            amount_cents=900,
            split=create_equal_split(["alice", "bob", "mallory"]),
        )
    ]
    balances = calculate_event_balance("ev1", expenses, [], ["alice", "bob"])
    assert set(balances) == {"alice", "bob"}
    assert balances["alice"].net == Decimal("6.00")


def test_event_balance_is_idempotent():
    expenses = badminton_expenses()
    payments = [Payment(id="p1", participant_id="diana", amount_cents=2500, event_id="ev1")]
    first = calculate_event_balance("ev1", expenses, payments, PARTICIPANTS)
    second = calculate_event_balance("ev1", expenses, payments, PARTICIPANTS)
    assert first == second


def test_expense_balances_from_record():
    result = calculate_expense_balances(
        {
            "id": "e1",
            "eventId": "ev1",
            "amount": 10,
            "payerId": "a",
            "date": "2025-12-25",
            "split": {"mode": "shares", "weights": {"a": 1, "b": 1, "c": 1}},
        }
    )
    assert result.expense_id == "e1"
    assert result.payer_id == "a"
    assert result.total_amount == Decimal("10.00")
    assert result.split_mode == SplitMode.SHARES
    assert result.balances == {"a": Decimal("3.33"), "b": Decimal("3.33"), "c": Decimal("3.34")}


def test_expense_balances_payer_policy():
    expense = Expense(
        id="e1",
        event_id="ev1",
        payer_id="a",
        amount_cents=1001,
        split=ShareSplit({"a": 1, "b": 1, "c": 2}),
    )
    last = calculate_expense_balances(expense)
    payer = calculate_expense_balances(expense, RemainderPolicy.PAYER)
    assert last.balances["c"] == Decimal("5.01")
    assert payer.balances["a"] == Decimal("2.51")
    assert sum(payer.balances.values()) == Decimal("10.01")


@pytest.mark.parametrize(
    "record",
    [
        {"id": "e1", "amount": 0, "payerId": "a", "split": {"mode": "shares", "weights": {"a": 1}}},
        {"id": "e1", "amount": -5, "payerId": "a", "split": {"mode": "shares", "weights": {"a": 1}}},
        {"id": "e1", "amount": 10, "payerId": "a"},
        {"id": "e1", "amount": 10, "payerId": "a", "split": {}},
        {"id": "e1", "amount": 10, "payerId": "a", "split": {"mode": "shares"}},
        {"id": "e1", "amount": 10, "payerId": "a", "split": {"mode": "percentage", "weights": {}}},
        {"id": "e1", "amount": "ten", "payerId": "a", "split": {"mode": "shares", "weights": {"a": 1}}},
        {},
    ],
)
def test_expense_balances_rejects_invalid_expense(record):
    with pytest.raises(ExpenseInvalidError):
        calculate_expense_balances(record)


def test_expense_requires_payer_in_split():
    with pytest.raises(SplitInvalidError):
        Expense(id="e1", event_id="ev1", payer_id="zoe", amount_cents=1000, split=create_equal_split(["a", "b"]))

    # the payer may sit in the split with weight 0
    expense = Expense(
        id="e2",
        event_id="ev1",
        payer_id="zoe",
        amount_cents=1000,
        split=PercentageSplit({"a": 50, "b": 50, "zoe": 0}),
    )
    assert "zoe" not in calculate_expense_balances(expense).balances


@pytest.mark.parametrize(
    ("net", "status"),
    [
        (Decimal("0.005"), BalanceStatus.SETTLED),
        (Decimal("-0.005"), BalanceStatus.SETTLED),
        (0.01, BalanceStatus.SETTLED),
        (Decimal("0.02"), BalanceStatus.OWED),
        (-0.02, BalanceStatus.OWES),
    ],
)
def test_balance_status_thresholds(net, status):
    assert balance_status(net) == status


def _all_expenses() -> list[Expense]:
    return badminton_expenses() + [
        Expense(
            id="dinner",
            event_id="ev2",
            payer_id="diana",
            amount_cents=1200,
            split=ShareSplit({"alice": 1, "diana": 1}),
        )
    ]


def test_user_balance_across_events():
    expenses = _all_expenses()
    payments = [Payment(id="p1", participant_id="bob", amount_cents=999)]

    alice = calculate_user_balance(
        "alice",
        [expense for expense in expenses if "alice" in expense.split.weights],
        [expense for expense in expenses if expense.payer_id == "alice"],
        [],
    )
    assert alice.owed == Decimal("45.99")
    assert alice.paid == Decimal("80.00")
    assert alice.net == Decimal("34.01")
    assert alice.status == BalanceStatus.OWED
    assert alice.expense_count == 4

    bob = calculate_user_balance(
        "bob",
        [expense for expense in expenses if "bob" in expense.split.weights],
        [expense for expense in expenses if expense.payer_id == "bob"],
        payments,
    )
    assert bob.net == Decimal("0.00")
    assert bob.status == BalanceStatus.SETTLED
    assert bob.payment_count == 1


def test_user_balance_ignores_zero_weight_expenses():
    expenses = badminton_expenses()
    charlie = calculate_user_balance("charlie", [expenses[2]], [], [])
    assert charlie.owed == Decimal("0.00")
    assert charlie.status == BalanceStatus.SETTLED


def test_all_user_balances_sorted_by_net():
    payments = [{"id": "p1", "participantId": "bob", "amount": 9.99, "date": "2025-12-26", "eventId": None}]
    balances = calculate_all_user_balances(PARTICIPANTS, _all_expenses(), payments)

    assert [balance.participant_id for balance in balances] == ["alice", "charlie", "bob", "diana"]
    assert [balance.net for balance in balances] == [
        Decimal("34.01"),
        Decimal("9.98"),
        Decimal("0.00"),
        Decimal("-34.00"),
    ]
    # only the direct payment is new money in the group
    assert sum(balance.net for balance in balances) == Decimal("9.99")
    assert balances == calculate_all_user_balances(PARTICIPANTS, _all_expenses(), payments)


def test_summarize_event_totals():
    payments = [Payment(id="p1", participant_id="diana", amount_cents=2500, event_id="ev1")]
    summary = summarize_event("ev1", _all_expenses(), payments, PARTICIPANTS, name="Badminton")
    assert summary.total_costs == Decimal("150.00")
    assert summary.total_payments == Decimal("25.00")
    assert summary.name == "Badminton"
    assert summary.balances["diana"].net == Decimal("-15.00")


def test_event_statistics():
    stats = calculate_event_statistics("ev1", _all_expenses(), [], PARTICIPANTS)
    assert stats.expense_count == 3
    assert stats.payment_count == 0
    assert stats.total_amount == Decimal("150.00")
    assert stats.average_cost_per_expense == Decimal("50.00")
    assert stats.average_owed_per_participant == Decimal("37.50")
    assert (stats.participants.total, stats.participants.owing, stats.participants.owed) == (4, 2, 2)
    assert stats.participants.settled == 0


def test_check_event_integrity_warns():
    expenses = [
        Expense(
            id="x",
            event_id="ev1",
            payer_id="alice",
            amount_cents=900,
            split=create_equal_split(["alice", "bob", "mallory"]),
        ),
        Expense(
            id="y",
            event_id="ev2",
            payer_id="nobody",
            amount_cents=900,
            split=create_equal_split(["nobody"]),
        ),
    ]
    with pytest.warns(DataIntegrityWarning):
        issues = check_event_integrity("ev1", ["alice", "bob"], expenses)

    assert [(issue.expense_id, issue.participant_id, issue.role) for issue in issues] == [
        ("x", "mallory", "split member"),
    ]


def test_event_statistics_reads_each_record_once(monkeypatch):
    seen = []
    as_expense = balances._as_expense

    def counting(expense):
        seen.append(expense.id)
        return as_expense(expense)

    monkeypatch.setattr(balances, "_as_expense", counting)
    expenses = iter(_all_expenses())
    stats = calculate_event_statistics("ev1", expenses, [], PARTICIPANTS)

    assert sorted(seen) == ["court", "dinner", "equipment", "shuttles"]
    assert stats.expense_count == 3
    assert stats.total_amount == Decimal("150.00")
