"""Admin lifecycle of N-option markets."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from loguru import logger
from sqlalchemy.orm import Session

from roundbet.db import transaction
from roundbet.domain import ExecutionResult, GameKind, OutcomeOption, RoundStatus
from roundbet.domain.resolution import DeclaredResult
from roundbet.errors import InvalidRequestError, RoundAlreadyFinishedError
from roundbet.models import Game, Round
from roundbet.repositories import GameRepository, RoundRepository


@dataclass(slots=True)
class MarketDraft:
    topic: str
    description: str
    close_time: int
    options: Sequence[OutcomeOption]
    rules: str | None = None
    img_url: str | None = None
    expected_result_time: int | None = None


@dataclass(slots=True)
class MarketChanges:
    """Partial update; ``None`` leaves a field untouched."""

    topic: str | None = None
    description: str | None = None
    rules: str | None = None
    img_url: str | None = None
    close_time: int | None = None
    expected_result_time: int | None = None


class OptionMarketService:
    def __init__(self, session: Session) -> None:
        self._session = session
        self._games = GameRepository(session)
        self._rounds = RoundRepository(session)

    def create_market(self, game_id: str, sender: str, draft: MarketDraft, now: int) -> ExecutionResult:
        _validate_options(draft.options)
        if draft.close_time <= now:
            raise InvalidRequestError("Market must close after its creation time")

        with transaction(self._session):
            game = self._admin_game(game_id, sender)
            round_id = game.next_round_id
            self._rounds.create(
                game_id,
                round_id,
                bid_time=now,
                open_time=now,
                close_time=draft.close_time,
                outcomes=draft.options,
                topic=draft.topic,
                description=draft.description,
                rules=draft.rules,
                img_url=draft.img_url,
                expected_result_time=draft.expected_result_time,
            )
            game.next_round_id = round_id + 1
            logger.info(
                "Created market {} of game {} on {!r} with {} options",
                round_id,
                game_id,
                draft.topic,
                len(draft.options),
            )

        return ExecutionResult(action="create_market", attributes={"round_id": round_id})

    def modify_market(
        self, game_id: str, sender: str, round_id: int, changes: MarketChanges
    ) -> ExecutionResult:
        with transaction(self._session):
            self._admin_game(game_id, sender)
            market = self._unfinished_market(game_id, round_id)
            if changes.topic is not None:
                market.topic = changes.topic
            if changes.description is not None:
                market.description = changes.description
            if changes.rules is not None:
                market.rules = changes.rules
            if changes.img_url is not None:
                market.img_url = changes.img_url
            if changes.close_time is not None:
                market.close_time = changes.close_time
            if changes.expected_result_time is not None:
                market.expected_result_time = changes.expected_result_time
            logger.info("Modified market {} of game {}", round_id, game_id)

        return ExecutionResult(action="modify_market", attributes={"round_id": round_id})

    def declare_result(
        self, game_id: str, sender: str, round_id: int, option_key: str, now: int
    ) -> ExecutionResult:
        with transaction(self._session):
            self._admin_game(game_id, sender)
            market = self._unfinished_market(game_id, round_id)
            winner = DeclaredResult(option_key, (outcome.key for outcome in market.outcomes)).resolve()
            self._rounds.finish(market, winner=winner, now=now)
            logger.info("Market {} of game {} resolved to {}", round_id, game_id, winner)

        return ExecutionResult(
            action="declare_result",
            attributes={"round_id": round_id, "result_option": winner},
        )

    def cancel_market(self, game_id: str, sender: str, round_id: int, now: int) -> ExecutionResult:
        with transaction(self._session):
            self._admin_game(game_id, sender)
            market = self._unfinished_market(game_id, round_id)
            self._rounds.finish(market, winner=None, now=now, cancelled=True)
            logger.info("Cancelled market {} of game {}", round_id, game_id)

        return ExecutionResult(action="cancel_market", attributes={"round_id": round_id})

    def _admin_game(self, game_id: str, sender: str) -> Game:
        game = self._games.require(game_id, GameKind.OPTIONS)
        self._games.require_admin(game, sender)
        return game

    def _unfinished_market(self, game_id: str, round_id: int) -> Round:
        market = self._rounds.require(game_id, round_id)
        if market.status == RoundStatus.FINISHED.value:
            raise RoundAlreadyFinishedError(round_id)
        return market


def _validate_options(options: Sequence[OutcomeOption]) -> None:
    if len(options) < 2:
        raise InvalidRequestError("A market needs at least two options")
    keys = [option.key for option in options]
    if any(not key for key in keys):
        raise InvalidRequestError("Option keys cannot be empty")
    if len(set(keys)) != len(keys):
        raise InvalidRequestError("Option keys must be unique")
