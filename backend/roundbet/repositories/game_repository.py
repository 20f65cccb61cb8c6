"""Game, admin, fee and asset persistence."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from roundbet.domain import FeeRecipient, GameConfig, GameKind
from roundbet.domain.amounts import format_ratio, parse_ratio
from roundbet.errors import GameNotFoundError, UnauthorizedError, WrongGameKindError
from roundbet.models import (
    AssetRotationEntry,
    FeeRecipientRecord,
    Game,
    GameAdmin,
    RegisteredAsset,
)


class GameRepository:
    """Encapsulate the per-game singleton state: config, pointers, access lists."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def add(self, game: Game) -> Game:
        self._session.add(game)
        self._session.flush()
        return game

    def apply_config(self, game: Game, config: GameConfig) -> None:
        game.minimum_stake = config.minimum_stake
        game.fee_bps = config.fee_bps
        game.token_denom = config.token_denom
        game.reputation_address = config.reputation_address
        game.round_seconds = config.round_seconds
        game.exp_per_denom_bet = config.exp_per_denom_bet
        game.exp_per_denom_won = config.exp_per_denom_won
        self.replace_fee_recipients(game, config.fee_recipients)

    def replace_fee_recipients(self, game: Game, recipients: Iterable[FeeRecipient]) -> None:
        game.fee_recipients.clear()
        # Flush the orphan deletes before re-inserting rows with the same keys.
        self._session.flush()
        for ordinal, recipient in enumerate(recipients):
            game.fee_recipients.append(
                FeeRecipientRecord(
                    address=recipient.address,
                    ratio=format_ratio(recipient.ratio),
                    ordinal=ordinal,
                )
            )

    def add_admin(self, game: Game, address: str) -> bool:
        if self.is_admin(game, address):
            return False
        game.admins.append(GameAdmin(address=address))
        return True

    def remove_admin(self, game: Game, address: str) -> bool:
        for admin in list(game.admins):
            if admin.address == address:
                game.admins.remove(admin)
                return True
        return False

    def register_asset(self, game: Game, denom: str, ticker: str) -> RegisteredAsset:
        for asset in game.assets:
            if asset.denom == denom:
                asset.ticker = ticker
                return asset
        asset = RegisteredAsset(denom=denom, ticker=ticker)
        game.assets.append(asset)
        return asset

    def replace_rotation(self, game: Game, denoms: Sequence[str]) -> None:
        game.rotation.clear()
        self._session.flush()
        for ordinal, denom in enumerate(denoms):
            game.rotation.append(AssetRotationEntry(ordinal=ordinal, denom=denom))

    # ------------------------------------------------------------------
    # Queries

    def get(self, game_id: str) -> Game | None:
        return self._session.get(Game, game_id)

    def require(self, game_id: str, kind: GameKind | None = None) -> Game:
        game = self.get(game_id)
        if game is None:
            raise GameNotFoundError(game_id)
        if kind is not None and game.kind != kind.value:
            raise WrongGameKindError(game_id, kind.value)
        return game

    def list_games(self, *, kind: GameKind | None = None) -> list[Game]:
        query = select(Game).options(selectinload(Game.admins)).order_by(Game.game_id)
        if kind is not None:
            query = query.where(Game.kind == kind.value)
        return list(self._session.execute(query).scalars().all())

    def is_admin(self, game: Game, address: str) -> bool:
        return any(admin.address == address for admin in game.admins)

    def require_admin(self, game: Game, sender: str) -> None:
        if not self.is_admin(game, sender):
            raise UnauthorizedError(sender)

    def admin_addresses(self, game: Game) -> list[str]:
        return [admin.address for admin in game.admins]

    def asset_ticker(self, game: Game, denom: str) -> str | None:
        for asset in game.assets:
            if asset.denom == denom:
                return asset.ticker
        return None

    def rotation_denoms(self, game: Game) -> list[str]:
        return [entry.denom for entry in game.rotation]

    def fee_recipients(self, game: Game) -> list[FeeRecipient]:
        return [
            FeeRecipient(address=record.address, ratio=parse_ratio(record.ratio))
            for record in game.fee_recipients
        ]

    def config(self, game: Game) -> GameConfig:
        return GameConfig(
            minimum_stake=game.minimum_stake,
            fee_bps=game.fee_bps,
            token_denom=game.token_denom,
            reputation_address=game.reputation_address,
            round_seconds=game.round_seconds,
            exp_per_denom_bet=game.exp_per_denom_bet,
            exp_per_denom_won=game.exp_per_denom_won,
            fee_recipients=self.fee_recipients(game),
        )

