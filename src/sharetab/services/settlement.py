"""Suggested transfers that bring every net balance back to zero.

``plan_settlements`` is a greedy two-pointer match: debtors and creditors are
ordered by size (a stable sort, so ties keep input order) and the largest
remaining debt is paid into the largest remaining credit until one side runs
out. It is deterministic and easy to audit, but it does not always find the
smallest possible number of transfers.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Union

from sharetab.exceptions import DataIntegrityWarning
from sharetab.logging import get_logger
from sharetab.money import TOLERANCE, TOLERANCE_CENTS, Number, from_cents, to_cents, to_decimal


@dataclass(slots=True)
class Transfer:
    from_participant: str
    to_participant: str
    amount_cents: int

    @property
    def amount(self) -> Decimal:
        return from_cents(self.amount_cents)


@dataclass(slots=True)
class SettlementSummary:
    total_settlements: int
    total_debt: Decimal
    total_credit: Decimal
    balanced: bool


@dataclass(slots=True)
class SettlementPlan:
    settlements: List[Transfer]
    summary: SettlementSummary


BalancesInput = Union[Mapping[str, Number], Iterable[Any]]


def _entries(balances: BalancesInput) -> Iterable[tuple[str, Number]]:
    if isinstance(balances, Mapping):
        return balances.items()
    entries = []
    for entry in balances:
        if hasattr(entry, "participant_id") and hasattr(entry, "net"):
            entries.append((entry.participant_id, entry.net))
        else:
            participant_id, net = entry
            entries.append((participant_id, net))
    return entries


def plan_settlements(balances: BalancesInput) -> SettlementPlan:
    """Match debtors to creditors.

    ``balances`` is a mapping of participant id to net balance, or a sequence
    of ``(participant_id, net)`` pairs or objects with those attributes.
    Participants within one cent of zero are left out.
    """
    creditors: list[tuple[str, int]] = []
    debtors: list[tuple[str, int]] = []

    for participant_id, net in _entries(balances):
        value = to_decimal(net)
        if value > TOLERANCE:
            creditors.append((participant_id, to_cents(value)))
        elif value < -TOLERANCE:
            debtors.append((participant_id, -to_cents(value)))

    creditors.sort(key=lambda x: x[1], reverse=True)
    debtors.sort(key=lambda x: x[1], reverse=True)

    total_credit = sum(amount for _, amount in creditors)
    total_debt = sum(amount for _, amount in debtors)

    transfers: list[Transfer] = []
    i, j = 0, 0

    while i < len(creditors) and j < len(debtors):
        cred_id, cred_amount = creditors[i]
        debt_id, debt_amount = debtors[j]

        transfer_amount = min(cred_amount, debt_amount)
        transfers.append(Transfer(from_participant=debt_id, to_participant=cred_id, amount_cents=transfer_amount))

        cred_amount -= transfer_amount
        debt_amount -= transfer_amount

        if cred_amount < TOLERANCE_CENTS:
            i += 1
        else:
            creditors[i] = (cred_id, cred_amount)

        if debt_amount < TOLERANCE_CENTS:
            j += 1
        else:
            debtors[j] = (debt_id, debt_amount)

    balanced = abs(total_debt - total_credit) < TOLERANCE_CENTS
    summary = SettlementSummary(
        total_settlements=len(transfers),
        total_debt=from_cents(total_debt),
        total_credit=from_cents(total_credit),
        balanced=balanced,
    )
    if not balanced:
        log = get_logger(__name__)
        log.warning(
            "settlement.unbalanced",
            total_debt=str(summary.total_debt),
            total_credit=str(summary.total_credit),
        )
        warnings.warn(
            f"settlement is unbalanced: debt {summary.total_debt} vs credit {summary.total_credit}",
            DataIntegrityWarning,
            stacklevel=2,
        )
    return SettlementPlan(settlements=transfers, summary=summary)
