from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol

from sharetab.config import Settings, get_settings
from sharetab.db.models import Event, Expense, Payment
from sharetab.exceptions import NotFoundError
from sharetab.logging import get_logger
from sharetab.services.balances import (
    EventStatistics,
    EventSummary,
    UserBalance,
    calculate_all_user_balances,
    calculate_event_statistics,
    calculate_user_balance,
    summarize_event,
)
from sharetab.services.integrity import check_event_integrity
from sharetab.services.settlement import SettlementPlan, plan_settlements
from sharetab.services.split import RemainderPolicy


class Repository(Protocol):
    async def get_event(self, event_id: str) -> Optional[Mapping[str, Any]]: ...

    async def list_expenses(self, event_id: Optional[str] = None) -> list[Mapping[str, Any]]: ...

    async def list_payments(self, event_id: Optional[str] = None) -> list[Mapping[str, Any]]: ...

    async def list_participant_ids(self) -> list[str]: ...


class LedgerService:
    """Fetches a snapshot from the store and runs the balance calculations on it."""

    def __init__(self, repo: Repository, settings: Optional[Settings] = None) -> None:
        self._repo = repo
        self._settings = settings or get_settings()
        self._log = get_logger(__name__)

    @property
    def remainder_policy(self) -> RemainderPolicy:
        return self._settings.remainder_policy

    async def _load_event(self, event_id: str) -> Event:
        record = await self._repo.get_event(event_id)
        if record is None:
            raise NotFoundError(f"event {event_id!r} not found")
        return Event.from_record(record)

    async def _expenses(self, event_id: Optional[str] = None) -> list[Expense]:
        return [Expense.from_record(record) for record in await self._repo.list_expenses(event_id)]

    async def _payments(self, event_id: Optional[str] = None) -> list[Payment]:
        return [Payment.from_record(record) for record in await self._repo.list_payments(event_id)]

    async def event_balance(self, event_id: str) -> EventSummary:
        event = await self._load_event(event_id)
        expenses = await self._expenses(event_id)
        payments = await self._payments(event_id)

        check_event_integrity(event.id, event.participant_ids, expenses)
        summary = summarize_event(
            event.id,
            expenses,
            payments,
            event.participant_ids,
            self.remainder_policy,
            name=event.name,
        )
        self._log.info(
            "ledger.event_balance",
            event_id=event.id,
            participants=len(summary.balances),
            expenses=len(expenses),
            payments=len(payments),
        )
        return summary

    async def event_statistics(self, event_id: str) -> EventStatistics:
        event = await self._load_event(event_id)
        expenses = await self._expenses(event_id)
        payments = await self._payments(event_id)
        return calculate_event_statistics(event.id, expenses, payments, event.participant_ids, self.remainder_policy)

    async def user_balance(self, participant_id: str) -> UserBalance:
        if participant_id not in await self._repo.list_participant_ids():
            raise NotFoundError(f"participant {participant_id!r} not found")

        expenses = await self._expenses()
        payments = await self._payments()
        balance = calculate_user_balance(
            participant_id,
            [expense for expense in expenses if participant_id in expense.split.weights],
            [expense for expense in expenses if expense.payer_id == participant_id],
            [payment for payment in payments if payment.participant_id == participant_id],
            self.remainder_policy,
        )
        self._log.info("ledger.user_balance", participant_id=participant_id, status=balance.status.value)
        return balance

    async def all_user_balances(self) -> list[UserBalance]:
        participant_ids = await self._repo.list_participant_ids()
        return calculate_all_user_balances(
            participant_ids,
            await self._expenses(),
            await self._payments(),
            self.remainder_policy,
        )

    async def settlements(self) -> SettlementPlan:
        plan = plan_settlements(await self.all_user_balances())
        self._log.info(
            "ledger.settlements",
            transfers=plan.summary.total_settlements,
            balanced=plan.summary.balanced,
        )
        return plan
