from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from sharetab.db.models import Expense, Payment
from sharetab.exceptions import ExpenseInvalidError
from sharetab.money import TOLERANCE, Number, from_cents, to_decimal
from sharetab.services.split import RemainderPolicy, SplitMode, allocate_cents, resolve_absorber

ExpenseLike = Union[Expense, Mapping[str, Any]]
PaymentLike = Union[Payment, Mapping[str, Any]]


class BalanceStatus(str, Enum):
    OWED = "owed"
    OWES = "owes"
    SETTLED = "settled"


def balance_status(net: Number) -> BalanceStatus:
    value = to_decimal(net)
    if value > TOLERANCE:
        return BalanceStatus.OWED
    if value < -TOLERANCE:
        return BalanceStatus.OWES
    return BalanceStatus.SETTLED


@dataclass(slots=True)
class ExpenseBalanceResult:
    expense_id: Optional[str]
    payer_id: str
    total_amount: Decimal
    balances: dict[str, Decimal]
    split_mode: SplitMode


@dataclass(slots=True)
class Balance:
    owed: Decimal
    paid: Decimal
    net: Decimal

    @property
    def status(self) -> BalanceStatus:
        return balance_status(self.net)


@dataclass(slots=True)
class UserBalance:
    participant_id: str
    owed: Decimal
    paid: Decimal
    net: Decimal
    status: BalanceStatus
    expense_count: int = 0
    payment_count: int = 0


@dataclass(slots=True)
class EventSummary:
    event_id: str
    balances: dict[str, Balance]
    total_costs: Decimal
    total_payments: Decimal
    name: Optional[str] = None


@dataclass(slots=True)
class ParticipantStats:
    total: int = 0
    owing: int = 0
    owed: int = 0
    settled: int = 0


@dataclass(slots=True)
class EventStatistics:
    event_id: str
    expense_count: int
    payment_count: int
    total_amount: Decimal
    total_payments_amount: Decimal
    average_cost_per_expense: Decimal
    average_owed_per_participant: Decimal
    participants: ParticipantStats = field(default_factory=ParticipantStats)


def _as_expense(expense: ExpenseLike) -> Expense:
    if isinstance(expense, Expense):
        if expense.amount_cents <= 0:
            raise ExpenseInvalidError("amount must be greater than 0", field="amount")
        if not expense.split.weights:
            raise ExpenseInvalidError("at least one person must be included in the split", field="split")
        return expense
    if not expense:
        raise ExpenseInvalidError("invalid expense for balance calculation")
    return Expense.from_record(expense)


def _as_payment(payment: PaymentLike) -> Payment:
    if isinstance(payment, Payment):
        return payment
    return Payment.from_record(payment)


def _shares(expense: Expense, policy: RemainderPolicy) -> dict[str, int]:
    return allocate_cents(expense.amount_cents, expense.split, resolve_absorber(policy, expense.payer_id))


def _balance(owed_cents: int, paid_cents: int) -> Balance:
    return Balance(owed=from_cents(owed_cents), paid=from_cents(paid_cents), net=from_cents(paid_cents - owed_cents))


def calculate_expense_balances(
    expense: ExpenseLike,
    remainder_policy: RemainderPolicy = RemainderPolicy.LAST,
) -> ExpenseBalanceResult:
    """Each split member's share of one expense, regardless of who paid it."""
    expense = _as_expense(expense)
    shares = _shares(expense, remainder_policy)
    return ExpenseBalanceResult(
        expense_id=expense.id,
        payer_id=expense.payer_id,
        total_amount=expense.amount,
        balances={participant_id: from_cents(share) for participant_id, share in shares.items()},
        split_mode=expense.split.mode,
    )


def _event_rows(
    event_id: str,
    expenses: Iterable[ExpenseLike],
    payments: Iterable[PaymentLike],
) -> tuple[list[Expense], list[Payment]]:
    event_expenses = [expense for expense in map(_as_expense, expenses) if expense.event_id == event_id]
    event_payments = [payment for payment in map(_as_payment, payments) if payment.event_id == event_id]
    return event_expenses, event_payments


def _fold_event(
    expenses: Sequence[Expense],
    payments: Sequence[Payment],
    participant_ids: Sequence[str],
    remainder_policy: RemainderPolicy,
) -> dict[str, Balance]:
    owed = {participant_id: 0 for participant_id in participant_ids}
    paid = {participant_id: 0 for participant_id in participant_ids}

    for expense in expenses:
        for participant_id, share in _shares(expense, remainder_policy).items():
            if participant_id in owed:
                owed[participant_id] += share
        if expense.payer_id in paid:
            paid[expense.payer_id] += expense.amount_cents

    for payment in payments:
        if payment.participant_id in paid:
            paid[payment.participant_id] += payment.amount_cents

    return {participant_id: _balance(owed[participant_id], paid[participant_id]) for participant_id in owed}


def _summary(
    event_id: str,
    expenses: Sequence[Expense],
    payments: Sequence[Payment],
    participant_ids: Sequence[str],
    remainder_policy: RemainderPolicy,
    name: Optional[str] = None,
) -> EventSummary:
    return EventSummary(
        event_id=event_id,
        balances=_fold_event(expenses, payments, participant_ids, remainder_policy),
        total_costs=from_cents(sum(expense.amount_cents for expense in expenses)),
        total_payments=from_cents(sum(payment.amount_cents for payment in payments)),
        name=name,
    )


def calculate_event_balance(
    event_id: str,
    expenses: Iterable[ExpenseLike],
    payments: Iterable[PaymentLike],
    participant_ids: Sequence[str],
    remainder_policy: RemainderPolicy = RemainderPolicy.LAST,
) -> dict[str, Balance]:
    """Fold one event's expenses and payments into per-participant balances.

    Every id in ``participant_ids`` appears in the result. Split members and
    payers outside that list are skipped; callers report them through
    ``check_event_integrity``.
    """
    event_expenses, event_payments = _event_rows(event_id, expenses, payments)
    return _fold_event(event_expenses, event_payments, participant_ids, remainder_policy)


def summarize_event(
    event_id: str,
    expenses: Iterable[ExpenseLike],
    payments: Iterable[PaymentLike],
    participant_ids: Sequence[str],
    remainder_policy: RemainderPolicy = RemainderPolicy.LAST,
    name: Optional[str] = None,
) -> EventSummary:
    event_expenses, event_payments = _event_rows(event_id, expenses, payments)
    return _summary(event_id, event_expenses, event_payments, participant_ids, remainder_policy, name)


def _average(total_cents: int, count: int) -> Decimal:
    if count == 0:
        return from_cents(0)
    return from_cents(round(total_cents / count))


def calculate_event_statistics(
    event_id: str,
    expenses: Iterable[ExpenseLike],
    payments: Iterable[PaymentLike],
    participant_ids: Sequence[str],
    remainder_policy: RemainderPolicy = RemainderPolicy.LAST,
) -> EventStatistics:
    event_expenses, event_payments = _event_rows(event_id, expenses, payments)
    summary = _summary(event_id, event_expenses, event_payments, participant_ids, remainder_policy)

    stats = ParticipantStats(total=len(summary.balances))
    for balance in summary.balances.values():
        status = balance.status
        if status == BalanceStatus.OWES:
            stats.owing += 1
        elif status == BalanceStatus.OWED:
            stats.owed += 1
        else:
            stats.settled += 1

    total_cents = sum(expense.amount_cents for expense in event_expenses)
    return EventStatistics(
        event_id=event_id,
        expense_count=len(event_expenses),
        payment_count=len(event_payments),
        total_amount=summary.total_costs,
        total_payments_amount=summary.total_payments,
        average_cost_per_expense=_average(total_cents, len(event_expenses)),
        average_owed_per_participant=_average(total_cents, stats.total),
        participants=stats,
    )


def calculate_user_balance(
    participant_id: str,
    expenses_as_participant: Iterable[ExpenseLike],
    expenses_as_payer: Iterable[ExpenseLike],
    direct_payments: Iterable[PaymentLike],
    remainder_policy: RemainderPolicy = RemainderPolicy.LAST,
) -> UserBalance:
    """Net position of one participant across every event they touch."""
    owed_cents = 0
    expense_count = 0
    for expense in map(_as_expense, expenses_as_participant):
        expense_count += 1
        if expense.split.weights.get(participant_id, 0) <= 0:
            continue
        owed_cents += _shares(expense, remainder_policy)[participant_id]

    paid_cents = sum(expense.amount_cents for expense in map(_as_expense, expenses_as_payer))
    payment_count = 0
    for payment in map(_as_payment, direct_payments):
        payment_count += 1
        paid_cents += payment.amount_cents

    net = from_cents(paid_cents - owed_cents)
    return UserBalance(
        participant_id=participant_id,
        owed=from_cents(owed_cents),
        paid=from_cents(paid_cents),
        net=net,
        status=balance_status(net),
        expense_count=expense_count,
        payment_count=payment_count,
    )


def calculate_all_user_balances(
    participant_ids: Iterable[str],
    expenses: Iterable[ExpenseLike],
    payments: Iterable[PaymentLike],
    remainder_policy: RemainderPolicy = RemainderPolicy.LAST,
) -> list[UserBalance]:
    """Cross-event balances for everyone, largest creditor first."""
    all_expenses = [_as_expense(expense) for expense in expenses]
    all_payments = [_as_payment(payment) for payment in payments]

    results: list[UserBalance] = []
    for participant_id in participant_ids:
        results.append(
            calculate_user_balance(
                participant_id,
                [expense for expense in all_expenses if participant_id in expense.split.weights],
                [expense for expense in all_expenses if expense.payer_id == participant_id],
                [payment for payment in all_payments if payment.participant_id == participant_id],
                remainder_policy,
            )
        )

    results.sort(key=lambda balance: balance.net, reverse=True)
    return results
