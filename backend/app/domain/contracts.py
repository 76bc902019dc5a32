from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional, Union

SplitType = Literal["EQUAL", "EXACT", "PERCENTAGE"]

SPLIT_TYPES: tuple[str, ...] = ("EQUAL", "EXACT", "PERCENTAGE")


# Caller-side split input, one variant per split type. The calculator resolves
# any of these into a uniform list of Share rows.

@dataclass(frozen=True)
class EqualParticipant:
    user_id: str


@dataclass(frozen=True)
class ExactSplit:
    user_id: str
    amount: Decimal


@dataclass(frozen=True)
class PercentageSplit:
    user_id: str
    percentage: Decimal


SplitSpec = Union[EqualParticipant, ExactSplit, PercentageSplit]


@dataclass(frozen=True)
class Share:
    user_id: str
    amount: Decimal
    percentage: Optional[Decimal] = None


@dataclass(frozen=True)
class SplitValidation:
    ok: bool
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.ok:
            return ""
        return str(self.errors[0]["message"])
