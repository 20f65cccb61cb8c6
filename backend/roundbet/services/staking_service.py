"""Stake placement for both game kinds."""

from __future__ import annotations

from loguru import logger
from sqlalchemy.orm import Session

from roundbet.db import transaction
from roundbet.domain import ExecutionResult, ExperienceInstruction, Funds, GameKind, RoundStatus
from roundbet.domain.amounts import checked_add, ensure_amount
from roundbet.errors import (
    BelowMinimumStakeError,
    GameHaltedError,
    InvalidFundsError,
    InvalidOutcomeError,
    InvalidRequestError,
    OutcomeMismatchError,
    RoundAlreadyFinishedError,
    RoundClosedError,
    StaleRoundError,
)
from roundbet.models import Game, Round
from roundbet.repositories import GameRepository, PositionRepository, RoundRepository


class StakingService:
    def __init__(self, session: Session) -> None:
        self._session = session
        self._games = GameRepository(session)
        self._rounds = RoundRepository(session)
        self._positions = PositionRepository(session)

    def place_stake(
        self,
        game_id: str,
        round_id: int,
        user: str,
        outcome: str,
        funds: Funds,
        now: int,
    ) -> ExecutionResult:
        """Open or grow ``user``'s position on ``outcome`` in a round taking stakes."""

        with transaction(self._session):
            game = self._games.require(game_id)
            if game.halted:
                raise GameHaltedError()

            if game.kind == GameKind.UPDOWN.value:
                round_ = self._current_bidding_round(game, round_id)
                self._check_funds(game, funds)
                if now > round_.open_time:
                    raise RoundClosedError(round_id, now - round_.open_time)
            else:
                round_ = self._open_market(game, round_id)
                self._check_funds(game, funds)
                if now > round_.close_time:
                    raise RoundClosedError(round_id, now - round_.close_time)

            outcome_row = round_.outcome(outcome)
            if outcome_row is None:
                raise InvalidOutcomeError(outcome)

            position = self._positions.get(game_id, round_id, user)
            if position is not None and position.outcome != outcome:
                raise OutcomeMismatchError()

            if position is None:
                position = self._positions.add(game_id, round_id, user, outcome, funds.amount)
                if game.kind == GameKind.OPTIONS.value:
                    round_.num_players += 1
            else:
                position.amount = checked_add(position.amount, funds.amount)

            outcome_row.total = checked_add(outcome_row.total, funds.amount)
            self._positions.add_spend(game_id, user, funds.amount)

            experience = ensure_amount(funds.amount * game.exp_per_denom_bet)
            result = ExecutionResult(action="stake")
            result.add_instruction(
                ExperienceInstruction(
                    contract=game.reputation_address,
                    user=user,
                    experience=experience,
                )
            )
            result.add_attribute("round_id", round_id)
            result.add_attribute("user", user)
            result.add_attribute("outcome", outcome)
            result.add_attribute("amount", funds.amount)
            result.add_attribute("position_amount", position.amount)

            logger.info(
                "Stake of {} {} by {} on {} in round {} of game {}",
                funds.amount,
                funds.denom,
                user,
                outcome,
                round_id,
                game_id,
            )

        return result

    def _current_bidding_round(self, game: Game, round_id: int) -> Round:
        if game.bidding_round_id is None or round_id != game.bidding_round_id:
            raise StaleRoundError(round_id, game.bidding_round_id)
        return self._rounds.require(game.game_id, round_id)

    def _open_market(self, game: Game, round_id: int) -> Round:
        round_ = self._rounds.require(game.game_id, round_id)
        if round_.status == RoundStatus.FINISHED.value:
            raise RoundAlreadyFinishedError(round_id)
        return round_

    def _check_funds(self, game: Game, funds: Funds) -> None:
        if funds.denom != game.token_denom:
            raise InvalidFundsError(game.token_denom, funds.denom)
        if funds.amount <= 0:
            raise InvalidRequestError("Stake amount must be positive")
        ensure_amount(funds.amount)
        if funds.amount < game.minimum_stake:
            raise BelowMinimumStakeError()
