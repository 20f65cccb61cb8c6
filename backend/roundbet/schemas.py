from fractions import Fraction
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, PlainSerializer, field_validator

from .domain import (
    ExecutionResult as DomainExecutionResult,
    ExperienceInstruction as DomainExperienceInstruction,
    FeeRecipient as DomainFeeRecipient,
    GameConfig as DomainGameConfig,
    GameKind,
    OutcomeOption,
)
from .domain.amounts import MAX_AMOUNT, format_ratio, parse_ratio
from .errors import InvalidRequestError

# Amounts and prices exceed the JSON safe integer range, so they travel as strings.
Amount = Annotated[int, Field(ge=0, le=MAX_AMOUNT), PlainSerializer(str, return_type=str, when_used="json")]
Price = Annotated[int, PlainSerializer(str, return_type=str, when_used="json")]


class FeeRecipient(BaseModel):
    address: str = Field(min_length=1)
    ratio: str

    @field_validator("ratio", mode="before")
    @classmethod
    def _normalize_ratio(cls, value: Any) -> str:
        if isinstance(value, Fraction):
            return format_ratio(value)
        try:
            return format_ratio(parse_ratio(value))
        except InvalidRequestError as exc:
            raise ValueError(exc.message) from exc

    def to_domain(self) -> DomainFeeRecipient:
        return DomainFeeRecipient(address=self.address, ratio=parse_ratio(self.ratio))

    @classmethod
    def from_domain(cls, recipient: DomainFeeRecipient) -> "FeeRecipient":
        return cls(address=recipient.address, ratio=format_ratio(recipient.ratio))


class GameConfig(BaseModel):
    minimum_stake: Amount
    fee_bps: int = Field(ge=0, le=10_000)
    token_denom: str = Field(min_length=1)
    reputation_address: str
    round_seconds: int = Field(default=0, ge=0)
    exp_per_denom_bet: Amount = 0
    exp_per_denom_won: Amount = 0
    fee_recipients: list[FeeRecipient] = Field(default_factory=list)

    def to_domain(self) -> DomainGameConfig:
        return DomainGameConfig(
            minimum_stake=self.minimum_stake,
            fee_bps=self.fee_bps,
            token_denom=self.token_denom,
            reputation_address=self.reputation_address,
            round_seconds=self.round_seconds,
            exp_per_denom_bet=self.exp_per_denom_bet,
            exp_per_denom_won=self.exp_per_denom_won,
            fee_recipients=[recipient.to_domain() for recipient in self.fee_recipients],
        )

    @classmethod
    def from_domain(cls, config: DomainGameConfig) -> "GameConfig":
        return cls(
            minimum_stake=config.minimum_stake,
            fee_bps=config.fee_bps,
            token_denom=config.token_denom,
            reputation_address=config.reputation_address,
            round_seconds=config.round_seconds,
            exp_per_denom_bet=config.exp_per_denom_bet,
            exp_per_denom_won=config.exp_per_denom_won,
            fee_recipients=[FeeRecipient.from_domain(item) for item in config.fee_recipients],
        )


class GameCreate(BaseModel):
    game_id: str = Field(min_length=1, max_length=64)
    kind: GameKind
    config: GameConfig
    admins: list[str] = Field(min_length=1)
    assets: dict[str, str] = Field(default_factory=dict)
    rotation: list[str] = Field(default_factory=list)


class Game(BaseModel):
    game_id: str
    kind: GameKind
    halted: bool
    next_round_id: int
    bidding_round_id: int | None = None
    live_round_id: int | None = None

    model_config = {"from_attributes": True}


class RoundOutcome(BaseModel):
    key: str
    title: str
    img_url: str | None = None
    total: Amount

    model_config = {"from_attributes": True}


class Round(BaseModel):
    game_id: str
    round_id: int
    status: str
    bid_time: int
    open_time: int
    close_time: int
    asset_denom: str | None = None
    open_price: Price | None = None
    close_price: Price | None = None
    topic: str | None = None
    description: str | None = None
    rules: str | None = None
    img_url: str | None = None
    expected_result_time: int | None = None
    num_players: int = 0
    winner: str | None = None
    cancelled: bool = False
    finished_at: int | None = None
    outcomes: list[RoundOutcome] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class GameStatus(BaseModel):
    bidding_round: Round | None = None
    live_round: Round | None = None
    current_time: int

    model_config = {"from_attributes": True}


class Position(BaseModel):
    game_id: str
    round_id: int
    user: str
    outcome: str
    amount: Amount

    model_config = {"from_attributes": True}


class ClaimRecord(BaseModel):
    game_id: str
    round_id: int
    user: str
    claimed_amount: Amount
    claimed_at: int

    model_config = {"from_attributes": True}


class RoundAmount(BaseModel):
    round_id: int
    amount: Amount

    model_config = {"from_attributes": True}


class RoundAmounts(BaseModel):
    total: Amount
    rounds: list[RoundAmount] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class SingleAmount(BaseModel):
    amount: Amount


class CurrentPosition(BaseModel):
    bidding_round_id: int | None = None
    live_round_id: int | None = None
    bidding: dict[str, Amount] = Field(default_factory=dict)
    live: dict[str, Amount] = Field(default_factory=dict)

    model_config = {"from_attributes": True}


class AssetList(BaseModel):
    assets: dict[str, str]
    rotation: list[str]


class TransferInstruction(BaseModel):
    kind: Literal["transfer"] = "transfer"
    recipient: str
    amount: Amount
    denom: str


class ExperienceInstruction(BaseModel):
    kind: Literal["experience"] = "experience"
    contract: str
    user: str
    experience: Amount
    elo: int | None = None


class ExecutionResult(BaseModel):
    action: str
    instructions: list[TransferInstruction | ExperienceInstruction] = Field(default_factory=list)
    attributes: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, result: DomainExecutionResult) -> "ExecutionResult":
        instructions: list[TransferInstruction | ExperienceInstruction] = []
        for item in result.instructions:
            if isinstance(item, DomainExperienceInstruction):
                instructions.append(
                    ExperienceInstruction(
                        contract=item.contract,
                        user=item.user,
                        experience=item.experience,
                        elo=item.elo,
                    )
                )
            else:
                instructions.append(
                    TransferInstruction(recipient=item.recipient, amount=item.amount, denom=item.denom)
                )
        return cls(action=result.action, instructions=instructions, attributes=dict(result.attributes))


# ----------------------------------------------------------------------
# Requests


class SenderRequest(BaseModel):
    """Every mutating request names the ledger account submitting it."""

    sender: str = Field(min_length=1)


class StakeRequest(BaseModel):
    round_id: int = Field(ge=0)
    user: str = Field(min_length=1)
    outcome: str = Field(min_length=1)
    denom: str = Field(min_length=1)
    amount: Amount


class ClaimRequest(BaseModel):
    user: str = Field(min_length=1)
    round_id: int | None = Field(default=None, ge=0)


class ConfigUpdateRequest(SenderRequest):
    config: GameConfig


class AdminAddressRequest(SenderRequest):
    address: str = Field(min_length=1)


class FeeRecipientsRequest(SenderRequest):
    recipients: list[FeeRecipient] = Field(min_length=1)


class AssetRequest(SenderRequest):
    denom: str = Field(min_length=1)
    ticker: str = Field(min_length=1)


class RotationRequest(SenderRequest):
    denoms: list[str]


class MarketOption(BaseModel):
    key: str | None = None
    title: str = Field(min_length=1)
    img_url: str | None = None

    def to_domain(self) -> OutcomeOption:
        return OutcomeOption(key=self.key or self.title, title=self.title, img_url=self.img_url)


class MarketCreateRequest(SenderRequest):
    topic: str = Field(min_length=1)
    description: str = ""
    rules: str | None = None
    img_url: str | None = None
    close_time: int
    expected_result_time: int | None = None
    options: list[MarketOption] = Field(min_length=2)


class MarketModifyRequest(SenderRequest):
    topic: str | None = None
    description: str | None = None
    rules: str | None = None
    img_url: str | None = None
    close_time: int | None = None
    expected_result_time: int | None = None


class MarketResultRequest(SenderRequest):
    option: str = Field(min_length=1)
