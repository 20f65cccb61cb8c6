"""Pure domain types and settlement rules shared across the engine."""

from .models import (
    ROUND_ID_ORIGIN,
    ExecutionResult,
    ExperienceInstruction,
    FeeRecipient,
    FeeShare,
    Funds,
    GameConfig,
    GameKind,
    OutcomeOption,
    Payout,
    PositionSnapshot,
    PriceObservation,
    RoundSnapshot,
    RoundStatus,
    Side,
    TransferInstruction,
)

__all__ = [
    "ROUND_ID_ORIGIN",
    "ExecutionResult",
    "ExperienceInstruction",
    "FeeRecipient",
    "FeeShare",
    "Funds",
    "GameConfig",
    "GameKind",
    "OutcomeOption",
    "Payout",
    "PositionSnapshot",
    "PriceObservation",
    "RoundSnapshot",
    "RoundStatus",
    "Side",
    "TransferInstruction",
]
