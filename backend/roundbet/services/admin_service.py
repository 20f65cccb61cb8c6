"""Game provisioning and admin-only configuration changes."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from loguru import logger
from sqlalchemy.orm import Session

from roundbet.db import transaction
from roundbet.domain import ROUND_ID_ORIGIN, ExecutionResult, FeeRecipient, GameConfig, GameKind
from roundbet.domain.amounts import ensure_amount
from roundbet.domain.settlement import validate_fee_rate, validate_fee_recipients
from roundbet.errors import (
    AdminRequiredError,
    AssetNotRegisteredError,
    AssetsEmptyError,
    GameExistsError,
    InvalidRequestError,
)
from roundbet.models import Game
from roundbet.repositories import GameRepository


@dataclass(slots=True)
class GameDefinition:
    """Everything needed to instantiate a game."""

    game_id: str
    kind: GameKind
    config: GameConfig
    admins: list[str]
    assets: dict[str, str] = field(default_factory=dict)
    rotation: list[str] = field(default_factory=list)


class AdminService:
    def __init__(self, session: Session) -> None:
        self._session = session
        self._games = GameRepository(session)

    def create_game(self, definition: GameDefinition, now: int) -> ExecutionResult:
        _validate_config(definition.kind, definition.config)
        if not definition.admins:
            raise AdminRequiredError()
        if definition.kind is GameKind.UPDOWN:
            _validate_rotation(definition.rotation, definition.assets)

        with transaction(self._session):
            if self._games.get(definition.game_id) is not None:
                raise GameExistsError(definition.game_id)
            game = Game(
                game_id=definition.game_id,
                kind=definition.kind.value,
                halted=False,
                next_round_id=ROUND_ID_ORIGIN[definition.kind],
                token_denom=definition.config.token_denom,
                reputation_address=definition.config.reputation_address,
                created_at=now,
            )
            self._games.add(game)
            self._games.apply_config(game, definition.config)
            for address in dict.fromkeys(definition.admins):
                self._games.add_admin(game, address)
            for denom, ticker in definition.assets.items():
                self._games.register_asset(game, denom, ticker)
            self._games.replace_rotation(game, definition.rotation)
            logger.info(
                "Created {} game {} with {} admins",
                definition.kind.value,
                definition.game_id,
                len(definition.admins),
            )

        return ExecutionResult(
            action="create_game",
            attributes={"game_id": definition.game_id, "kind": definition.kind.value},
        )

    def update_config(self, game_id: str, sender: str, config: GameConfig) -> ExecutionResult:
        with transaction(self._session):
            game = self._admin_game(game_id, sender)
            _validate_config(GameKind(game.kind), config)
            self._games.apply_config(game, config)
            logger.info("Updated config of game {} by {}", game_id, sender)
        return ExecutionResult(action="update_config", attributes={"game_id": game_id})

    def set_halted(self, game_id: str, sender: str, halted: bool) -> ExecutionResult:
        with transaction(self._session):
            game = self._admin_game(game_id, sender)
            game.halted = halted
            logger.info("Game {} {} by {}", game_id, "halted" if halted else "resumed", sender)
        return ExecutionResult(action="halt" if halted else "resume", attributes={"game_id": game_id})

    def add_admin(self, game_id: str, sender: str, address: str) -> ExecutionResult:
        with transaction(self._session):
            game = self._admin_game(game_id, sender)
            added = self._games.add_admin(game, address)
            if added:
                logger.info("Admin {} added to game {} by {}", address, game_id, sender)
        return ExecutionResult(action="add_admin", attributes={"address": address, "added": added})

    def remove_admin(self, game_id: str, sender: str, address: str) -> ExecutionResult:
        with transaction(self._session):
            game = self._admin_game(game_id, sender)
            removed = self._games.remove_admin(game, address)
            if not game.admins:
                raise AdminRequiredError()
            if removed:
                logger.info("Admin {} removed from game {} by {}", address, game_id, sender)
        return ExecutionResult(action="remove_admin", attributes={"address": address, "removed": removed})

    def set_fee_recipients(
        self, game_id: str, sender: str, recipients: Sequence[FeeRecipient]
    ) -> ExecutionResult:
        validate_fee_recipients(recipients)
        with transaction(self._session):
            game = self._admin_game(game_id, sender)
            self._games.replace_fee_recipients(game, recipients)
            logger.info("Fee recipients of game {} replaced ({} entries)", game_id, len(recipients))
        return ExecutionResult(action="set_fee_recipients", attributes={"game_id": game_id})

    def register_asset(self, game_id: str, sender: str, denom: str, ticker: str) -> ExecutionResult:
        if not denom or not ticker:
            raise InvalidRequestError("Asset denom and ticker are required")
        with transaction(self._session):
            game = self._admin_game(game_id, sender)
            self._games.register_asset(game, denom, ticker)
            logger.info("Registered {} as {} in game {}", denom, ticker, game_id)
        return ExecutionResult(action="register_asset", attributes={"denom": denom, "ticker": ticker})

    def set_rotation(self, game_id: str, sender: str, denoms: Sequence[str]) -> ExecutionResult:
        with transaction(self._session):
            game = self._admin_game(game_id, sender)
            registered = {asset.denom: asset.ticker for asset in game.assets}
            _validate_rotation(denoms, registered)
            self._games.replace_rotation(game, denoms)
            logger.info("Asset rotation of game {} set to {}", game_id, ", ".join(denoms))
        return ExecutionResult(action="set_rotation", attributes={"rotation": list(denoms)})

    def _admin_game(self, game_id: str, sender: str) -> Game:
        game = self._games.require(game_id)
        self._games.require_admin(game, sender)
        return game


def _validate_config(kind: GameKind, config: GameConfig) -> None:
    validate_fee_rate(config.fee_bps)
    validate_fee_recipients(config.fee_recipients)
    ensure_amount(config.minimum_stake)
    ensure_amount(config.exp_per_denom_bet)
    ensure_amount(config.exp_per_denom_won)
    if not config.token_denom:
        raise InvalidRequestError("A token denom is required")
    if kind is GameKind.UPDOWN and config.round_seconds <= 0:
        raise InvalidRequestError("Up/down games need a positive round length")


def _validate_rotation(denoms: Sequence[str], registered: Mapping[str, str]) -> None:
    if not denoms:
        raise AssetsEmptyError()
    for denom in denoms:
        if denom not in registered:
            raise AssetNotRegisteredError(denom)
