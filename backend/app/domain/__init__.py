"""Domain contracts and shared types."""

from backend.app.domain.contracts import (  # noqa: F401
    SPLIT_TYPES,
    EqualParticipant,
    ExactSplit,
    PercentageSplit,
    Share,
    SplitSpec,
    SplitType,
    SplitValidation,
)
