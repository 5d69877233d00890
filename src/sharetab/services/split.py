from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN
from enum import Enum
from fractions import Fraction
from typing import ClassVar, Iterable, Mapping, Optional, Sequence, Union

from sharetab.exceptions import SplitInvalidError
from sharetab.money import CENT, Number, from_cents, to_cents, to_decimal


class SplitMode(str, Enum):
    PERCENTAGE = "percentage"
    SHARES = "shares"


class RemainderPolicy(str, Enum):
    """Who receives the cents left over after proportional flooring."""

    LAST = "last"
    PAYER = "payer"


PERCENT_TOTAL = Fraction(100)
PERCENT_TOLERANCE = Fraction(1, 100)


def _to_weight(participant_id: str, value: object) -> Fraction:
    if isinstance(value, Fraction):
        weight = value
    elif isinstance(value, bool) or not isinstance(value, (int, float, Decimal, str)):
        raise SplitInvalidError(f"weight for {participant_id!r} must be a number", field="weights")
    else:
        try:
            weight = Fraction(to_decimal(value))
        except TypeError as exc:
            raise SplitInvalidError(f"weight for {participant_id!r} must be a number", field="weights") from exc
    if weight < 0:
        raise SplitInvalidError(f"weight for {participant_id!r} must not be negative", field="weights")
    return weight


def _normalize(weights: Mapping[str, object]) -> dict[str, Fraction]:
    if not isinstance(weights, Mapping):
        raise SplitInvalidError("split weights must be a mapping", field="weights")
    return {participant_id: _to_weight(participant_id, value) for participant_id, value in weights.items()}


def _require_weights(weights: Mapping[str, Fraction]) -> None:
    if not weights:
        raise SplitInvalidError("at least one person must be included in the split", field="weights")


@dataclass(slots=True)
class PercentageSplit:
    weights: dict[str, Fraction]

    mode: ClassVar[SplitMode] = SplitMode.PERCENTAGE
    equal_tolerance: ClassVar[Fraction] = PERCENT_TOLERANCE

    def __post_init__(self) -> None:
        self.weights = _normalize(self.weights)

    def validate(self) -> None:
        _require_weights(self.weights)
        for participant_id, weight in self.weights.items():
            if weight > PERCENT_TOTAL:
                raise SplitInvalidError(
                    f"percentage for {participant_id!r} must be between 0 and 100",
                    field="weights",
                )
        total = sum(self.weights.values(), Fraction(0))
        if abs(total - PERCENT_TOTAL) > PERCENT_TOLERANCE:
            raise SplitInvalidError("split percentages must sum to 100", field="weights")


@dataclass(slots=True)
class ShareSplit:
    weights: dict[str, Fraction]

    mode: ClassVar[SplitMode] = SplitMode.SHARES
    equal_tolerance: ClassVar[Fraction] = Fraction(0)

    def __post_init__(self) -> None:
        self.weights = _normalize(self.weights)

    def validate(self) -> None:
        _require_weights(self.weights)
        if sum(self.weights.values(), Fraction(0)) == 0:
            raise SplitInvalidError("total shares must be greater than 0", field="weights")


Split = Union[PercentageSplit, ShareSplit]

SPLIT_TYPES: dict[SplitMode, type] = {
    SplitMode.PERCENTAGE: PercentageSplit,
    SplitMode.SHARES: ShareSplit,
}


def parse_split(record: Mapping[str, object]) -> Split:
    """Build a split variant from a stored record.

    Accepts ``{"split": {"mode": ..., "weights": {...}}}`` as well as the older
    ``splitShares`` / ``splitPercentage`` keys, where shares win when both are
    present.
    """
    split = record.get("split")
    if isinstance(split, Mapping):
        mode = split.get("mode")
        weights = split.get("weights")
    elif record.get("splitShares"):
        mode, weights = SplitMode.SHARES, record["splitShares"]
    elif record.get("splitPercentage"):
        mode, weights = SplitMode.PERCENTAGE, record["splitPercentage"]
    else:
        raise SplitInvalidError("either split shares or split percentage must be provided", field="split")

    try:
        split_type = SPLIT_TYPES[SplitMode(mode)]
    except ValueError as exc:
        raise SplitInvalidError(f"unknown split mode {mode!r}", field="mode") from exc
    return split_type(weights)


def validate_split(split: Split | Mapping[str, Number]) -> None:
    """Raise ``SplitInvalidError`` unless ``split`` can be allocated.

    A bare mapping is treated as percentages.
    """
    if not isinstance(split, (PercentageSplit, ShareSplit)):
        split = PercentageSplit(split)  # type: ignore[arg-type]
    split.validate()


def included_participants(split: Split) -> list[str]:
    return [participant_id for participant_id, weight in split.weights.items() if weight > 0]


def excluded_participants(split: Split) -> list[str]:
    return [participant_id for participant_id, weight in split.weights.items() if weight == 0]


def _is_equal(weights: Sequence[Fraction], tolerance: Fraction) -> bool:
    if not weights:
        return False
    spread = max(weights) - min(weights)
    return spread == 0 or spread < tolerance


def is_equal_split(split: Split) -> bool:
    active = [weight for weight in split.weights.values() if weight > 0]
    return _is_equal(active, split.equal_tolerance)


def _split_equally(amount_cents: int, participants: Sequence[str]) -> dict[str, int]:
    n = len(participants)
    base_share, remainder = divmod(amount_cents, n)
    shares = [base_share for _ in participants]
    # leftover cents go to the trailing participants, one each
    for idx in range(remainder):
        shares[n - 1 - idx] += 1
    return {participant: share for participant, share in zip(participants, shares)}


def _split_proportionally(
    amount_cents: int,
    active: Sequence[tuple[str, Fraction]],
    absorber: str,
) -> dict[str, int]:
    total_weight = sum((weight for _, weight in active), Fraction(0))
    shares: dict[str, int] = {}
    assigned = 0
    for participant_id, weight in active:
        if participant_id == absorber:
            continue
        share = math.floor(amount_cents * weight / total_weight)
        shares[participant_id] = share
        assigned += share
    shares[absorber] = amount_cents - assigned
    return {participant_id: shares[participant_id] for participant_id, _ in active}


def allocate_cents(amount_cents: int, split: Split, absorber: Optional[str] = None) -> dict[str, int]:
    """Divide ``amount_cents`` by the split weights.

    The result always sums to ``amount_cents``. Participants with weight 0 are
    left out. Equal weights are divided evenly; otherwise every participant gets
    the floor of their exact share and ``absorber`` (the last active participant
    when not given or not active) takes whatever is left.
    """
    if amount_cents < 0:
        raise ValueError("amount_cents must be non-negative")
    split.validate()

    active = [(participant_id, weight) for participant_id, weight in split.weights.items() if weight > 0]
    if _is_equal([weight for _, weight in active], split.equal_tolerance):
        return _split_equally(amount_cents, [participant_id for participant_id, _ in active])

    active_ids = {participant_id for participant_id, _ in active}
    if absorber is None or absorber not in active_ids:
        absorber = active[-1][0]
    return _split_proportionally(amount_cents, active, absorber)


def allocate(total_amount: Number, split: Split, absorber: Optional[str] = None) -> dict[str, Decimal]:
    cents = allocate_cents(to_cents(total_amount), split, absorber)
    return {participant_id: from_cents(share) for participant_id, share in cents.items()}


def resolve_absorber(policy: RemainderPolicy, payer_id: str) -> Optional[str]:
    if policy == RemainderPolicy.PAYER:
        return payer_id
    return None


def _unique(participant_ids: Iterable[str]) -> list[str]:
    ids = list(participant_ids)
    if not ids:
        raise SplitInvalidError("must provide at least one participant", field="participants")
    if len(set(ids)) != len(ids):
        raise SplitInvalidError("participants must be unique", field="participants")
    return ids


def create_equal_split(participant_ids: Iterable[str]) -> ShareSplit:
    """One share each, which always allocates as a clean equal division."""
    return ShareSplit({participant_id: 1 for participant_id in _unique(participant_ids)})


def create_equal_percentages(participant_ids: Iterable[str]) -> PercentageSplit:
    """Exactly ``100 / n`` percent each; ``to_percentages`` gives the 2-decimal form."""
    ids = _unique(participant_ids)
    share = PERCENT_TOTAL / len(ids)
    return PercentageSplit({participant_id: share for participant_id in ids})


def exclude_participants(split: Split, participant_ids: Iterable[str]) -> Split:
    """Set ``participant_ids`` to weight 0 and spread their weight evenly over the rest.

    Ids not in the split are ignored. The result has the same variant as ``split``.
    """
    split.validate()
    excluded = set(participant_ids)
    weights = dict(split.weights)
    freed = Fraction(0)
    for participant_id in excluded:
        if participant_id in weights:
            freed += weights[participant_id]
            weights[participant_id] = Fraction(0)

    remaining = [participant_id for participant_id, weight in weights.items() if weight > 0]
    if not remaining:
        raise SplitInvalidError("cannot exclude all participants from the split", field="participants")

    extra = freed / len(remaining)
    for participant_id in remaining:
        weights[participant_id] += extra
    return type(split)(weights)


def to_percentages(split: Split) -> PercentageSplit:
    """Express ``split`` as 2-decimal percentages; the last included participant absorbs rounding."""
    split.validate()
    total = sum(split.weights.values(), Fraction(0))
    last_active = included_participants(split)[-1]
    weights: dict[str, object] = {}
    assigned = Decimal(0)
    for participant_id, weight in split.weights.items():
        if participant_id == last_active:
            continue
        exact = weight * 100 / total
        pct = (Decimal(exact.numerator) / Decimal(exact.denominator)).quantize(CENT, rounding=ROUND_DOWN)
        weights[participant_id] = pct
        assigned += pct
    weights[last_active] = Decimal(100) - assigned
    return PercentageSplit({participant_id: weights[participant_id] for participant_id in split.weights})  # type: ignore[arg-type]


def to_shares(split: Split) -> ShareSplit:
    """Express ``split`` as the smallest integer shares with the same ratios.

    Splits detected as equal become one share per included participant.
    """
    split.validate()
    if is_equal_split(split):
        return ShareSplit({participant_id: 1 if weight > 0 else 0 for participant_id, weight in split.weights.items()})

    scale = math.lcm(*(weight.denominator for weight in split.weights.values()))
    scaled = {participant_id: int(weight * scale) for participant_id, weight in split.weights.items()}
    divisor = math.gcd(*scaled.values())
    return ShareSplit({participant_id: value // divisor for participant_id, value in scaled.items()})
