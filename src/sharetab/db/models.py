from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional

from sharetab.exceptions import ExpenseInvalidError, SplitInvalidError, ValidationError
from sharetab.money import from_cents, to_cents
from sharetab.services.split import PercentageSplit, ShareSplit, Split, parse_split

SPLIT_KEYS = ("split", "splitShares", "splitPercentage")


def _required(record: Mapping[str, Any], key: str, error: type[ValidationError]) -> Any:
    value = record.get(key)
    if value is None or value == "":
        raise error(f"{key} is required", field=key)
    return value


def _amount_cents(value: Any, error: type[ValidationError]) -> int:
    try:
        return to_cents(value)
    except TypeError as exc:
        raise error(f"invalid amount {value!r}", field="amount") from exc


def _has_split(record: Mapping[str, Any]) -> bool:
    split = record.get("split")
    if split is not None:
        if not isinstance(split, Mapping):
            return False
        weights = split.get("weights")
        return isinstance(weights, Mapping) and bool(weights)
    return any(record.get(key) for key in SPLIT_KEYS[1:])


@dataclass(slots=True)
class Event:
    id: str
    participant_ids: list[str]
    name: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Event":
        return cls(
            id=record["id"],
            participant_ids=list(record.get("participantIds") or record.get("participants") or []),
            name=record.get("name"),
        )


@dataclass(slots=True)
class Expense:
    id: Optional[str]
    event_id: Optional[str]
    payer_id: str
    amount_cents: int
    split: Split
    date: Optional[str] = None
    description: Optional[str] = None

    def __post_init__(self) -> None:
        if self.amount_cents <= 0:
            raise ExpenseInvalidError("amount must be greater than 0", field="amount")
        if not isinstance(self.split, (PercentageSplit, ShareSplit)):
            raise ExpenseInvalidError("expense must have a split definition", field="split")
        if not self.split.weights:
            raise ExpenseInvalidError("at least one person must be included in the split", field="split")
        self.split.validate()
        if self.payer_id not in self.split.weights:
            raise SplitInvalidError("the person who paid must be included in the split", field="payerId")

    @property
    def amount(self) -> Decimal:
        return from_cents(self.amount_cents)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Expense":
        if not isinstance(record, Mapping):
            raise ExpenseInvalidError("expense record must be a mapping")
        if not _has_split(record):
            raise ExpenseInvalidError("expense must have a split definition", field="split")
        return cls(
            id=record.get("id"),
            event_id=record.get("eventId"),
            payer_id=_required(record, "payerId", ExpenseInvalidError),
            amount_cents=_amount_cents(_required(record, "amount", ExpenseInvalidError), ExpenseInvalidError),
            split=parse_split(record),
            date=record.get("date"),
            description=record.get("description"),
        )


@dataclass(slots=True)
class Payment:
    id: Optional[str]
    participant_id: str
    amount_cents: int
    event_id: Optional[str] = None
    date: Optional[str] = None

    @property
    def amount(self) -> Decimal:
        return from_cents(self.amount_cents)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Payment":
        return cls(
            id=record.get("id"),
            participant_id=_required(record, "participantId", ValidationError),
            amount_cents=_amount_cents(_required(record, "amount", ValidationError), ValidationError),
            event_id=record.get("eventId"),
            date=record.get("date"),
        )
