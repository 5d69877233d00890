from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from sharetab.db.models import Expense
from sharetab.exceptions import DataIntegrityWarning
from sharetab.logging import get_logger


@dataclass(slots=True)
class IntegrityIssue:
    expense_id: Optional[str]
    participant_id: str
    role: str

    def describe(self) -> str:
        return f"{self.role} {self.participant_id!r} of expense {self.expense_id!r} is not an event participant"


def find_unknown_participants(participant_ids: Sequence[str], expenses: Iterable[Expense]) -> list[IntegrityIssue]:
    known = set(participant_ids)
    issues: list[IntegrityIssue] = []
    for expense in expenses:
        if expense.payer_id not in known:
            issues.append(IntegrityIssue(expense.id, expense.payer_id, "payer"))
        for participant_id, weight in expense.split.weights.items():
            if weight > 0 and participant_id not in known and participant_id != expense.payer_id:
                issues.append(IntegrityIssue(expense.id, participant_id, "split member"))
    return issues


def check_event_integrity(
    event_id: str,
    participant_ids: Sequence[str],
    expenses: Iterable[Expense],
) -> list[IntegrityIssue]:
    """Report expenses of ``event_id`` that reference non-participants.

    Issues are logged and raised as ``DataIntegrityWarning``; nothing is fixed.
    """
    log = get_logger(__name__)
    event_expenses = [expense for expense in expenses if expense.event_id == event_id]
    issues = find_unknown_participants(participant_ids, event_expenses)
    for issue in issues:
        log.warning(
            "integrity.unknown_participant",
            event_id=event_id,
            expense_id=issue.expense_id,
            participant_id=issue.participant_id,
            role=issue.role,
        )
        warnings.warn(issue.describe(), DataIntegrityWarning, stacklevel=2)
    return issues
