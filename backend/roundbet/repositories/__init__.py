"""Repository abstractions over the ledger tables."""

from .claim_repository import ClaimRepository
from .game_repository import GameRepository
from .position_repository import PositionRepository
from .round_repository import RoundRepository

__all__ = [
    "ClaimRepository",
    "GameRepository",
    "PositionRepository",
    "RoundRepository",
]
