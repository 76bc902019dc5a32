from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from backend.app.domain.contracts import (
    SPLIT_TYPES,
    EqualParticipant,
    ExactSplit,
    PercentageSplit,
    Share,
    SplitSpec,
    SplitValidation,
)
from backend.app.errors import InvalidSplitType, ValidationError

CENT = Decimal("0.01")
SUM_TOLERANCE = Decimal("0.01")
HUNDRED = Decimal("100")
# Largest magnitude a Numeric(12, 2) column holds.
MAX_AMOUNT = Decimal("9999999999.99")


def to_decimal(value: Any) -> Decimal:
    """Parse a caller-supplied number without rounding it."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"invalid amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValidationError(f"invalid amount: {value!r}")
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(
            "Amount is too large",
            details=[{"field": "amount", "message": f"must not exceed {MAX_AMOUNT}"}],
        )
    return amount


def to_money(value: Any) -> Decimal:
    amount = to_decimal(value)
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValidationError(f"invalid amount: {value!r}") from exc


def _to_cents(amount: Decimal) -> int:
    return int(to_money(amount).scaleb(2))


def _from_cents(cents: int) -> Decimal:
    return Decimal(cents).scaleb(-2)


def _assign_remainder(
    cents: List[int],
    user_ids: Sequence[str],
    remainder: int,
    payer_id: Optional[str],
) -> None:
    """
    Leftover cents go to the payer when the payer takes part in the split
    (their own share never becomes a debt); otherwise one cent at a time to
    participants in list order.
    """
    if remainder == 0 or not cents:
        return
    if payer_id is not None and payer_id in user_ids:
        cents[list(user_ids).index(payer_id)] += remainder
        return
    step = 1 if remainder > 0 else -1
    for i in range(abs(remainder)):
        cents[i % len(cents)] += step


# -------------------------
# Input shaping
# -------------------------

def build_split_specs(split_type: str, raw_splits: Optional[Iterable[Mapping[str, Any]]]) -> List[SplitSpec]:
    """
    Turn loosely-typed request rows ({user_id, amount?, percentage?}) into the
    variant matching split_type.
    """
    if split_type not in SPLIT_TYPES:
        raise InvalidSplitType(f"Invalid split type: {split_type}")

    specs: List[SplitSpec] = []
    for idx, row in enumerate(raw_splits or []):
        user_id = row.get("user_id")
        if not user_id:
            raise ValidationError(
                "Each split requires a userId",
                details=[{"field": f"splits[{idx}].userId", "message": "userId is required"}],
            )
        if split_type == "EQUAL":
            specs.append(EqualParticipant(user_id=user_id))
        elif split_type == "EXACT":
            if row.get("amount") is None:
                raise ValidationError(
                    "All splits must have amount for EXACT split type",
                    details=[{"field": f"splits[{idx}].amount", "message": "amount is required"}],
                )
            specs.append(ExactSplit(user_id=user_id, amount=to_decimal(row["amount"])))
        else:
            if row.get("percentage") is None:
                raise ValidationError(
                    "All splits must have percentage for PERCENTAGE split type",
                    details=[{"field": f"splits[{idx}].percentage", "message": "percentage is required"}],
                )
            specs.append(PercentageSplit(user_id=user_id, percentage=to_decimal(row["percentage"])))
    return specs


# -------------------------
# Calculator
# -------------------------

def _equal_shares(
    total: Decimal,
    specs: Sequence[SplitSpec],
    group_members: Sequence[str],
    payer_id: Optional[str],
) -> List[Share]:
    participants = [spec.user_id for spec in specs] if specs else list(group_members)
    if not participants:
        return []
    base, remainder = divmod(_to_cents(total), len(participants))
    cents = [base] * len(participants)
    _assign_remainder(cents, participants, remainder, payer_id)
    return [Share(user_id=uid, amount=_from_cents(c)) for uid, c in zip(participants, cents)]


def _exact_shares(specs: Sequence[SplitSpec]) -> List[Share]:
    shares: List[Share] = []
    for spec in specs:
        if not isinstance(spec, ExactSplit):
            raise ValidationError("All splits must have amount for EXACT split type")
        shares.append(Share(user_id=spec.user_id, amount=to_decimal(spec.amount)))
    return shares


def _percentage_shares(
    total: Decimal,
    specs: Sequence[SplitSpec],
    payer_id: Optional[str],
) -> List[Share]:
    for spec in specs:
        if not isinstance(spec, PercentageSplit):
            raise ValidationError("All splits must have percentage for PERCENTAGE split type")

    user_ids = [spec.user_id for spec in specs]
    percentages = [Decimal(spec.percentage) for spec in specs]
    cents = [_to_cents(total * pct / HUNDRED) for pct in percentages]
    if sum(percentages, Decimal("0")) == HUNDRED:
        _assign_remainder(cents, user_ids, _to_cents(total) - sum(cents), payer_id)
    return [
        Share(user_id=uid, amount=_from_cents(c), percentage=pct)
        for uid, c, pct in zip(user_ids, cents, percentages)
    ]


def calculate_shares(
    total: Any,
    split_type: str,
    splits: Optional[Sequence[SplitSpec]] = None,
    *,
    group_members: Sequence[str] = (),
    payer_id: Optional[str] = None,
) -> List[Share]:
    """
    Resolve an expense into concrete per-member shares, in input order.

    EQUAL with no explicit participants splits across group_members. Cent
    remainders (EQUAL, and PERCENTAGE rows that sum to exactly 100) are
    assigned by _assign_remainder so the shares add up to the total. EXACT
    shares keep the caller's precision so the sum check sees what was sent;
    they are rounded to cents when stored.
    """
    amount = to_money(total)
    specs = list(splits or [])

    if split_type == "EQUAL":
        return _equal_shares(amount, specs, group_members, payer_id)
    if split_type == "EXACT":
        return _exact_shares(specs)
    if split_type == "PERCENTAGE":
        return _percentage_shares(amount, specs, payer_id)

    raise InvalidSplitType(f"Invalid split type: {split_type}")


# -------------------------
# Validator
# -------------------------

def validate_shares(total: Any, split_type: str, shares: Sequence[Share]) -> SplitValidation:
    """Check sum/positivity rules for split_type. Never raises; see ensure_valid."""
    errors: List[Dict[str, Any]] = []

    if split_type not in SPLIT_TYPES:
        errors.append({"field": "splitType", "message": f"Invalid split type: {split_type}"})
        return SplitValidation(ok=False, errors=errors)

    amount = to_money(total)
    if amount <= 0:
        errors.append({"field": "amount", "message": "Amount must be greater than 0"})

    if not shares:
        errors.append({"field": "splits", "message": "At least one split is required"})
        return SplitValidation(ok=False, errors=errors)

    if split_type == "EXACT":
        split_sum = sum((share.amount for share in shares), Decimal("0"))
        if abs(split_sum - amount) > SUM_TOLERANCE:
            errors.append({"field": "splits", "message": "Split amounts must sum to total amount"})

    if split_type == "PERCENTAGE":
        pct_sum = sum((share.percentage or Decimal("0") for share in shares), Decimal("0"))
        if abs(pct_sum - HUNDRED) > SUM_TOLERANCE:
            errors.append({"field": "splits", "message": "Split percentages must sum to 100"})

    if any(share.amount < 0 for share in shares):
        errors.append({"field": "splits", "message": "Split amounts must be positive"})

    return SplitValidation(ok=not errors, errors=errors)


def ensure_valid(validation: SplitValidation) -> None:
    if validation.ok:
        return
    if any(err["field"] == "splitType" for err in validation.errors):
        raise InvalidSplitType(validation.message, details=validation.errors)
    raise ValidationError(validation.message, details=validation.errors)
