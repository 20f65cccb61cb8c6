"""Round lifecycle for binary up/down games.

At any time a game holds at most one round accepting stakes (bidding) and at
most one round whose price window is running (live). ``advance`` is driven
from outside by a keeper and performs every transition that is due at
``now``.
"""

from __future__ import annotations

from loguru import logger
from sqlalchemy.orm import Session

from roundbet.core.config import Settings, get_settings
from roundbet.db import transaction
from roundbet.domain import ExecutionResult, GameKind, OutcomeOption, RoundStatus, Side
from roundbet.domain.resolution import PriceComparison
from roundbet.errors import (
    AssetNotRegisteredError,
    AssetsEmptyError,
    GameHaltedError,
    RoundAlreadyFinishedError,
    StateConsistencyError,
)
from roundbet.models import Game, Round
from roundbet.repositories import GameRepository, RoundRepository

from .price_feed import PriceFeed, observe_price

UPDOWN_OUTCOMES = (
    OutcomeOption(key=Side.BULL.value, title="Bull"),
    OutcomeOption(key=Side.BEAR.value, title="Bear"),
)


class RoundScheduler:
    def __init__(
        self,
        session: Session,
        price_feed: PriceFeed,
        *,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._price_feed = price_feed
        self._settings = settings or get_settings()
        self._games = GameRepository(session)
        self._rounds = RoundRepository(session)

    def advance(self, game_id: str, now: int) -> ExecutionResult:
        """Finish, promote, and open rounds whose time has come."""

        result = ExecutionResult(action="advance")
        with transaction(self._session):
            game = self._games.require(game_id, GameKind.UPDOWN)
            if game.halted:
                raise GameHaltedError()

            live = self._live_round(game)
            if live is not None and now >= live.close_time:
                self._finish_live_round(game, live, now, result)
                live = None

            bidding = self._bidding_round(game)
            if bidding is not None and live is None and now >= bidding.open_time:
                live = self._go_live(game, bidding, now, result)
                bidding = None

            if bidding is None:
                open_time = live.close_time if live is not None else now + game.round_seconds
                bidding = self._open_bidding_round(game, now, open_time)
                result.add_attribute("bidding_round", bidding.round_id)

        return result

    def cancel_round(self, game_id: str, sender: str, round_id: int, now: int) -> ExecutionResult:
        """Stop an unresolved round; every position in it becomes refundable."""

        with transaction(self._session):
            game = self._games.require(game_id, GameKind.UPDOWN)
            self._games.require_admin(game, sender)
            round_ = self._rounds.require(game_id, round_id)
            if round_.status == RoundStatus.FINISHED.value:
                raise RoundAlreadyFinishedError(round_id)

            self._rounds.finish(round_, winner=None, now=now, cancelled=True)
            if game.live_round_id == round_id:
                game.live_round_id = None
            if game.bidding_round_id == round_id:
                game.bidding_round_id = None
            logger.info("Cancelled round {} of game {} by {}", round_id, game_id, sender)

        return ExecutionResult(action="cancel_round", attributes={"round_id": round_id})

    # ------------------------------------------------------------------
    # Transitions

    def _finish_live_round(self, game: Game, live: Round, now: int, result: ExecutionResult) -> None:
        close_price = self._price_for(game, live, now)
        winner = PriceComparison(live.open_price, close_price).resolve()
        live.close_price = close_price
        self._rounds.finish(live, winner=winner, now=now)
        game.live_round_id = None
        logger.info(
            "Finished round {} of game {}: open={} close={} winner={}",
            live.round_id,
            game.game_id,
            live.open_price,
            close_price,
            winner or "tie",
        )
        result.add_attribute("finished_round", live.round_id)
        result.add_attribute("winner", winner)

    def _go_live(self, game: Game, bidding: Round, now: int, result: ExecutionResult) -> Round:
        open_price = self._price_for(game, bidding, now)
        bidding.status = RoundStatus.LIVE.value
        bidding.open_time = now
        bidding.close_time = now + game.round_seconds
        bidding.open_price = open_price
        game.live_round_id = bidding.round_id
        game.bidding_round_id = None
        logger.info(
            "Round {} of game {} is live at {} until {}",
            bidding.round_id,
            game.game_id,
            open_price,
            bidding.close_time,
        )
        result.add_attribute("live_round", bidding.round_id)
        return bidding

    def _open_bidding_round(self, game: Game, now: int, open_time: int) -> Round:
        rotation = self._games.rotation_denoms(game)
        if not rotation:
            raise AssetsEmptyError()
        round_id = game.next_round_id
        denom = rotation[round_id % len(rotation)]
        round_ = self._rounds.create(
            game.game_id,
            round_id,
            bid_time=now,
            open_time=open_time,
            close_time=open_time + game.round_seconds,
            outcomes=UPDOWN_OUTCOMES,
            asset_denom=denom,
        )
        game.next_round_id = round_id + 1
        game.bidding_round_id = round_id
        logger.info(
            "Opened bidding round {} of game {} on {} (opens at {})",
            round_id,
            game.game_id,
            denom,
            open_time,
        )
        return round_

    # ------------------------------------------------------------------
    # Helpers

    def _price_for(self, game: Game, round_: Round, now: int) -> int:
        ticker = self._games.asset_ticker(game, round_.asset_denom or "")
        if ticker is None:
            raise AssetNotRegisteredError(round_.asset_denom or "")
        return observe_price(self._price_feed, ticker, now, settings=self._settings)

    def _live_round(self, game: Game) -> Round | None:
        return self._pointed_round(game, game.live_round_id, RoundStatus.LIVE)

    def _bidding_round(self, game: Game) -> Round | None:
        return self._pointed_round(game, game.bidding_round_id, RoundStatus.BIDDING)

    def _pointed_round(self, game: Game, round_id: int | None, expected: RoundStatus) -> Round | None:
        if round_id is None:
            return None
        round_ = self._rounds.require(game.game_id, round_id)
        if round_.status != expected.value:
            raise StateConsistencyError(
                f"Round {round_id} of game {game.game_id} is {round_.status}, expected {expected.value}"
            )
        return round_
