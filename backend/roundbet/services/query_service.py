"""Read-only views over game state."""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from roundbet.core.config import Settings, get_settings
from roundbet.domain import GameConfig, GameKind, RoundStatus
from roundbet.domain.amounts import checked_add
from roundbet.domain.settlement import refundable_amount, settle
from roundbet.errors import NotFoundError
from roundbet.models import ClaimRecord, Game, Position, Round
from roundbet.repositories import ClaimRepository, GameRepository, PositionRepository, RoundRepository
from roundbet.repositories.position_repository import snapshot as position_snapshot
from roundbet.repositories.round_repository import snapshot as round_snapshot


@dataclass(slots=True)
class GameStatus:
    bidding_round: Round | None
    live_round: Round | None
    current_time: int


@dataclass(slots=True)
class RoundAmount:
    round_id: int
    amount: int


@dataclass(slots=True)
class RoundAmounts:
    """A total plus the per-round amounts it was built from."""

    total: int = 0
    rounds: list[RoundAmount] = field(default_factory=list)

    def add(self, round_id: int, amount: int) -> None:
        self.total = checked_add(self.total, amount)
        self.rounds.append(RoundAmount(round_id=round_id, amount=amount))


@dataclass(slots=True)
class CurrentPosition:
    bidding_round_id: int | None
    live_round_id: int | None
    bidding: dict[str, int] = field(default_factory=dict)
    live: dict[str, int] = field(default_factory=dict)


class QueryService:
    def __init__(self, session: Session, *, settings: Settings | None = None) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._games = GameRepository(session)
        self._rounds = RoundRepository(session)
        self._positions = PositionRepository(session)
        self._claims = ClaimRepository(session)

    # ------------------------------------------------------------------
    # Game

    def game(self, game_id: str) -> Game:
        return self._games.require(game_id)

    def list_games(self, kind: GameKind | None = None) -> list[Game]:
        return self._games.list_games(kind=kind)

    def config(self, game_id: str) -> GameConfig:
        return self._games.config(self._games.require(game_id))

    def admins(self, game_id: str) -> list[str]:
        return self._games.admin_addresses(self._games.require(game_id))

    def assets(self, game_id: str) -> dict[str, str]:
        game = self._games.require(game_id)
        return {asset.denom: asset.ticker for asset in game.assets}

    def rotation(self, game_id: str) -> list[str]:
        return self._games.rotation_denoms(self._games.require(game_id))

    def status(self, game_id: str, now: int) -> GameStatus:
        game = self._games.require(game_id, GameKind.UPDOWN)
        bidding = (
            self._rounds.get(game_id, game.bidding_round_id)
            if game.bidding_round_id is not None
            else None
        )
        live = self._rounds.get(game_id, game.live_round_id) if game.live_round_id is not None else None
        return GameStatus(bidding_round=bidding, live_round=live, current_time=now)

    # ------------------------------------------------------------------
    # Rounds

    def round(self, game_id: str, round_id: int) -> Round:
        self._games.require(game_id)
        return self._rounds.require(game_id, round_id)

    def list_rounds(
        self,
        game_id: str,
        *,
        finished: bool | None = None,
        topic: str | None = None,
        start_after: int | None = None,
        limit: int | None = None,
    ) -> list[Round]:
        """Finished or still-open rounds, ascending by id after ``start_after``."""

        self._games.require(game_id)
        statuses = None
        if finished is True:
            statuses = [RoundStatus.FINISHED]
        elif finished is False:
            statuses = [RoundStatus.BIDDING, RoundStatus.LIVE]
        return self._rounds.list_rounds(
            game_id,
            statuses=statuses,
            topic=topic,
            start_after=start_after,
            limit=self._settings.page_limit(limit),
        )

    # ------------------------------------------------------------------
    # Positions

    def user_positions(
        self,
        game_id: str,
        user: str,
        *,
        start_after: int | None = None,
        limit: int | None = None,
    ) -> list[Position]:
        self._games.require(game_id)
        return self._positions.for_user(
            game_id, user, start_after=start_after, limit=self._settings.page_limit(limit)
        )

    def round_positions(
        self,
        game_id: str,
        round_id: int,
        *,
        start_after: str | None = None,
        limit: int | None = None,
    ) -> list[Position]:
        self._games.require(game_id)
        return self._positions.for_round(
            game_id, round_id, start_after=start_after, limit=self._settings.page_limit(limit)
        )

    def current_position(self, game_id: str, user: str) -> CurrentPosition:
        """Stake held by ``user`` in the bidding and live rounds, per side."""

        game = self._games.require(game_id, GameKind.UPDOWN)
        current = CurrentPosition(
            bidding_round_id=game.bidding_round_id,
            live_round_id=game.live_round_id,
        )
        for round_id, bucket in (
            (game.bidding_round_id, current.bidding),
            (game.live_round_id, current.live),
        ):
            if round_id is None:
                continue
            round_ = self._rounds.require(game_id, round_id)
            for outcome in round_.outcomes:
                bucket[outcome.key] = 0
            position = self._positions.get(game_id, round_id, user)
            if position is not None:
                bucket[position.outcome] = position.amount
        return current

    def total_spent(self, game_id: str, user: str) -> int:
        self._games.require(game_id)
        return self._positions.total_spent(game_id, user)

    # ------------------------------------------------------------------
    # Rewards

    def pending_rewards(
        self,
        game_id: str,
        user: str,
        *,
        topic: str | None = None,
        start_after: int | None = None,
        limit: int | None = None,
    ) -> RoundAmounts:
        """Gross amounts a claim would settle, per finished round.

        Without ``start_after`` or ``limit`` every position of the user is
        considered.
        """

        self._games.require(game_id)
        page = self._settings.page_limit(limit) if (limit is not None or start_after is not None) else None
        rewards = RoundAmounts()
        for position in self._positions.for_user(game_id, user, start_after=start_after, limit=page):
            round_ = self._rounds.require(game_id, position.round_id)
            if round_.status != RoundStatus.FINISHED.value:
                continue
            if topic is not None and round_.topic != topic:
                continue
            payout = settle(round_snapshot(round_), position_snapshot(position))
            if payout.amount > 0:
                rewards.add(position.round_id, payout.amount)
        return rewards

    def pending_reward_round(self, game_id: str, user: str, round_id: int) -> int:
        self._games.require(game_id)
        round_ = self._rounds.require(game_id, round_id)
        if round_.status != RoundStatus.FINISHED.value:
            return 0
        position = self._positions.get(game_id, round_id, user)
        if position is None:
            return 0
        return settle(round_snapshot(round_), position_snapshot(position)).amount

    def refundable(self, game_id: str, user: str) -> RoundAmounts:
        """Stakes in finished rounds whose pool was never matched."""

        self._games.require(game_id)
        refunds = RoundAmounts()
        for position in self._positions.for_user(game_id, user):
            round_ = self._rounds.require(game_id, position.round_id)
            amount = refundable_amount(round_snapshot(round_), position_snapshot(position))
            if amount > 0:
                refunds.add(position.round_id, amount)
        return refunds

    # ------------------------------------------------------------------
    # Claims

    def claims_by_user(
        self,
        game_id: str,
        user: str,
        *,
        start_after: int | None = None,
        limit: int | None = None,
    ) -> list[ClaimRecord]:
        self._games.require(game_id)
        return self._claims.for_user(
            game_id, user, start_after=start_after, limit=self._settings.page_limit(limit)
        )

    def claims_by_round(
        self,
        game_id: str,
        round_id: int,
        *,
        start_after: str | None = None,
        limit: int | None = None,
    ) -> list[ClaimRecord]:
        self._games.require(game_id)
        return self._claims.for_round(
            game_id, round_id, start_after=start_after, limit=self._settings.page_limit(limit)
        )

    def claim(self, game_id: str, round_id: int, user: str) -> ClaimRecord:
        self._games.require(game_id)
        record = self._claims.get(game_id, round_id, user)
        if record is None:
            raise NotFoundError(f"User {user} has no claim recorded for round {round_id}")
        return record
