"""Withdrawal of settled positions."""

from __future__ import annotations

from collections.abc import Iterable

from loguru import logger
from sqlalchemy.orm import Session

from roundbet.db import transaction
from roundbet.domain import ExecutionResult, ExperienceInstruction, RoundStatus, TransferInstruction
from roundbet.domain.amounts import ensure_amount
from roundbet.domain.settlement import ClaimTotals, settle
from roundbet.errors import NothingToClaimError, RoundNotFinishedError
from roundbet.models import Game, Position
from roundbet.repositories import ClaimRepository, GameRepository, PositionRepository, RoundRepository
from roundbet.repositories.position_repository import snapshot as position_snapshot
from roundbet.repositories.round_repository import snapshot as round_snapshot


class ClaimService:
    """Settle finished positions, remove them, and pay the claimant."""

    def __init__(self, session: Session) -> None:
        self._session = session
        self._games = GameRepository(session)
        self._rounds = RoundRepository(session)
        self._positions = PositionRepository(session)
        self._claims = ClaimRepository(session)

    def claim_all(self, game_id: str, user: str, now: int) -> ExecutionResult:
        with transaction(self._session):
            game = self._games.require(game_id)
            positions = self._positions.for_user(game_id, user)
            totals, settled = self._settle(game, user, positions, now, skip_unfinished=True)
            if totals.total == 0:
                raise NothingToClaimError()
            result = self._pay(game, user, totals, action="claim")
            result.add_attribute("rounds", settled)

        logger.info(
            "User {} claimed {} across {} rounds of game {} (fee {})",
            user,
            totals.net,
            len(settled),
            game_id,
            totals.fee,
        )
        return result

    def claim_round(self, game_id: str, user: str, round_id: int, now: int) -> ExecutionResult:
        with transaction(self._session):
            game = self._games.require(game_id)
            round_ = self._rounds.require(game_id, round_id)
            if round_.status != RoundStatus.FINISHED.value:
                raise RoundNotFinishedError(round_id)
            position = self._positions.get(game_id, round_id, user)
            if position is None:
                raise NothingToClaimError()
            totals, _ = self._settle(game, user, [position], now, skip_unfinished=False)
            if totals.total == 0:
                raise NothingToClaimError()
            result = self._pay(game, user, totals, action="claim_round")
            result.add_attribute("round_id", round_id)

        logger.info(
            "User {} claimed {} from round {} of game {} (fee {})",
            user,
            totals.net,
            round_id,
            game_id,
            totals.fee,
        )
        return result

    def _settle(
        self,
        game: Game,
        user: str,
        positions: Iterable[Position],
        now: int,
        *,
        skip_unfinished: bool,
    ) -> tuple[ClaimTotals, list[int]]:
        totals = ClaimTotals()
        settled: list[int] = []
        for position in positions:
            round_ = self._rounds.require(game.game_id, position.round_id)
            if skip_unfinished and round_.status != RoundStatus.FINISHED.value:
                continue
            payout = settle(round_snapshot(round_), position_snapshot(position))
            totals.add(payout)
            self._claims.record(game.game_id, position.round_id, user, payout.amount, now)
            self._positions.delete(position)
            settled.append(position.round_id)
        # Deletions must reach the database in the same transaction as the payout.
        self._session.flush()
        return totals, settled

    def _pay(self, game: Game, user: str, totals: ClaimTotals, *, action: str) -> ExecutionResult:
        totals.apply_fee(game.fee_bps, self._games.fee_recipients(game))
        result = ExecutionResult(action=action)
        for share in totals.fee_shares:
            result.add_instruction(
                TransferInstruction(recipient=share.address, amount=share.amount, denom=game.token_denom)
            )
        if totals.commissionable > 0:
            result.add_instruction(
                ExperienceInstruction(
                    contract=game.reputation_address,
                    user=user,
                    experience=ensure_amount(totals.commissionable * game.exp_per_denom_won),
                )
            )
        if totals.net > 0:
            result.add_instruction(
                TransferInstruction(recipient=user, amount=totals.net, denom=game.token_denom)
            )
        result.add_attribute("user", user)
        result.add_attribute("total", totals.total)
        result.add_attribute("fee", totals.fee)
        result.add_attribute("net", totals.net)
        return result
