"""Typed domain representations shared by the engine, persistence, and API."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from typing import Any


class GameKind(str, Enum):
    UPDOWN = "updown"
    OPTIONS = "options"


class RoundStatus(str, Enum):
    BIDDING = "bidding"
    LIVE = "live"
    FINISHED = "finished"


class Side(str, Enum):
    BULL = "bull"
    BEAR = "bear"


# First round id handed out for each game kind.
ROUND_ID_ORIGIN = {
    GameKind.UPDOWN: 0,
    GameKind.OPTIONS: 1,
}


@dataclass(slots=True, frozen=True)
class Funds:
    """Tokens attached to a staking transaction."""

    denom: str
    amount: int


@dataclass(slots=True, frozen=True)
class FeeRecipient:
    address: str
    ratio: Fraction


@dataclass(slots=True)
class GameConfig:
    """Mutable parameters of one game, changed only by its admins."""

    minimum_stake: int
    fee_bps: int
    token_denom: str
    reputation_address: str
    round_seconds: int = 0
    exp_per_denom_bet: int = 0
    exp_per_denom_won: int = 0
    fee_recipients: list[FeeRecipient] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class OutcomeOption:
    """An option offered by a market: a stable key plus display metadata."""

    key: str
    title: str
    img_url: str | None = None


@dataclass(slots=True, frozen=True)
class PriceObservation:
    value: int
    decimals: int
    observed_at: int


@dataclass(slots=True, frozen=True)
class RoundSnapshot:
    """The parts of a round the settlement engine needs."""

    round_id: int
    status: RoundStatus
    outcome_totals: dict[str, int]
    winner: str | None = None
    cancelled: bool = False

    @property
    def pool(self) -> int:
        return sum(self.outcome_totals.values())

    @property
    def is_finished(self) -> bool:
        return self.status is RoundStatus.FINISHED


@dataclass(slots=True, frozen=True)
class PositionSnapshot:
    round_id: int
    user: str
    outcome: str
    amount: int


@dataclass(slots=True, frozen=True)
class Payout:
    amount: int
    commissionable: bool


@dataclass(slots=True, frozen=True)
class FeeShare:
    address: str
    amount: int


@dataclass(slots=True, frozen=True)
class TransferInstruction:
    """Declarative token transfer executed by the host ledger."""

    recipient: str
    amount: int
    denom: str
    kind: str = "transfer"


@dataclass(slots=True, frozen=True)
class ExperienceInstruction:
    """Declarative reputation credit sent to the experience service."""

    contract: str
    user: str
    experience: int
    elo: int | None = None
    kind: str = "experience"


Instruction = TransferInstruction | ExperienceInstruction


@dataclass(slots=True)
class ExecutionResult:
    """Outcome of a mutating operation: host instructions plus event attributes."""

    action: str
    instructions: list[Instruction] = field(default_factory=list)
    attributes: dict[str, Any] = field(default_factory=dict)

    def add_attribute(self, key: str, value: Any) -> "ExecutionResult":
        self.attributes[key] = value
        return self

    def add_instruction(self, instruction: Instruction) -> "ExecutionResult":
        self.instructions.append(instruction)
        return self

    @property
    def transfers(self) -> list[TransferInstruction]:
        return [item for item in self.instructions if isinstance(item, TransferInstruction)]

    @property
    def experience_credits(self) -> list[ExperienceInstruction]:
        return [item for item in self.instructions if isinstance(item, ExperienceInstruction)]
