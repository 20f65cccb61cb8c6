from __future__ import annotations

from sqlalchemy import (
    Boolean,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from .db import Base
from .domain import RoundStatus


class LedgerInt(TypeDecorator):
    """Arbitrary-size integer persisted as its decimal string.

    Token amounts span the full unsigned 128-bit range, which neither SQLite
    nor a Postgres BIGINT can hold.
    """

    impl = String(48)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(int(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class Game(Base):
    __tablename__ = "games"

    game_id: Mapped[str] = mapped_column(String, primary_key=True)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    halted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    next_round_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bidding_round_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    live_round_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    minimum_stake: Mapped[int] = mapped_column(LedgerInt, nullable=False, default=0)
    fee_bps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    token_denom: Mapped[str] = mapped_column(String, nullable=False)
    reputation_address: Mapped[str] = mapped_column(String, nullable=False)
    round_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    exp_per_denom_bet: Mapped[int] = mapped_column(LedgerInt, nullable=False, default=0)
    exp_per_denom_won: Mapped[int] = mapped_column(LedgerInt, nullable=False, default=0)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    admins: Mapped[list["GameAdmin"]] = relationship(
        "GameAdmin", back_populates="game", cascade="all, delete-orphan", order_by="GameAdmin.address"
    )
    fee_recipients: Mapped[list["FeeRecipientRecord"]] = relationship(
        "FeeRecipientRecord",
        back_populates="game",
        cascade="all, delete-orphan",
        order_by="FeeRecipientRecord.ordinal",
    )
    assets: Mapped[list["RegisteredAsset"]] = relationship(
        "RegisteredAsset", back_populates="game", cascade="all, delete-orphan", order_by="RegisteredAsset.denom"
    )
    rotation: Mapped[list["AssetRotationEntry"]] = relationship(
        "AssetRotationEntry",
        back_populates="game",
        cascade="all, delete-orphan",
        order_by="AssetRotationEntry.ordinal",
    )


class GameAdmin(Base):
    __tablename__ = "game_admins"

    game_id: Mapped[str] = mapped_column(String, ForeignKey("games.game_id"), primary_key=True)
    address: Mapped[str] = mapped_column(String, primary_key=True)

    game: Mapped[Game] = relationship("Game", back_populates="admins")


class FeeRecipientRecord(Base):
    __tablename__ = "fee_recipients"

    game_id: Mapped[str] = mapped_column(String, ForeignKey("games.game_id"), primary_key=True)
    address: Mapped[str] = mapped_column(String, primary_key=True)
    # Exact rational, e.g. "0.25" or "1/3".
    ratio: Mapped[str] = mapped_column(String, nullable=False)
    ordinal: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    game: Mapped[Game] = relationship("Game", back_populates="fee_recipients")


class RegisteredAsset(Base):
    __tablename__ = "registered_assets"

    game_id: Mapped[str] = mapped_column(String, ForeignKey("games.game_id"), primary_key=True)
    denom: Mapped[str] = mapped_column(String, primary_key=True)
    ticker: Mapped[str] = mapped_column(String, nullable=False)

    game: Mapped[Game] = relationship("Game", back_populates="assets")


class AssetRotationEntry(Base):
    __tablename__ = "asset_rotation"

    game_id: Mapped[str] = mapped_column(String, ForeignKey("games.game_id"), primary_key=True)
    ordinal: Mapped[int] = mapped_column(Integer, primary_key=True)
    denom: Mapped[str] = mapped_column(String, nullable=False)

    game: Mapped[Game] = relationship("Game", back_populates="rotation")


class Round(Base):
    __tablename__ = "rounds"

    game_id: Mapped[str] = mapped_column(String, ForeignKey("games.game_id"), primary_key=True)
    round_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default=RoundStatus.BIDDING.value)
    bid_time: Mapped[int] = mapped_column(Integer, nullable=False)
    open_time: Mapped[int] = mapped_column(Integer, nullable=False)
    close_time: Mapped[int] = mapped_column(Integer, nullable=False)

    asset_denom: Mapped[str | None] = mapped_column(String, nullable=True)
    open_price: Mapped[int | None] = mapped_column(LedgerInt, nullable=True)
    close_price: Mapped[int | None] = mapped_column(LedgerInt, nullable=True)

    topic: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    rules: Mapped[str | None] = mapped_column(Text, nullable=True)
    img_url: Mapped[str | None] = mapped_column(String, nullable=True)
    expected_result_time: Mapped[int | None] = mapped_column(Integer, nullable=True)
    num_players: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    winner: Mapped[str | None] = mapped_column(String, nullable=True)
    cancelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    finished_at: Mapped[int | None] = mapped_column(Integer, nullable=True)

    outcomes: Mapped[list["RoundOutcome"]] = relationship(
        "RoundOutcome",
        back_populates="round",
        cascade="all, delete-orphan",
        order_by="RoundOutcome.ordinal",
    )

    __table_args__ = (Index("ix_rounds_game_status", "game_id", "status", "round_id"),)

    def outcome(self, key: str) -> "RoundOutcome | None":
        for outcome in self.outcomes:
            if outcome.key == key:
                return outcome
        return None


class RoundOutcome(Base):
    __tablename__ = "round_outcomes"

    game_id: Mapped[str] = mapped_column(String, primary_key=True)
    round_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    key: Mapped[str] = mapped_column(String, primary_key=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    img_url: Mapped[str | None] = mapped_column(String, nullable=True)
    ordinal: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total: Mapped[int] = mapped_column(LedgerInt, nullable=False, default=0)

    round: Mapped[Round] = relationship("Round", back_populates="outcomes")

    __table_args__ = (
        ForeignKeyConstraint(["game_id", "round_id"], ["rounds.game_id", "rounds.round_id"]),
    )


class Position(Base):
    __tablename__ = "positions"

    game_id: Mapped[str] = mapped_column(String, primary_key=True)
    round_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    user: Mapped[str] = mapped_column(String, primary_key=True)
    outcome: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[int] = mapped_column(LedgerInt, nullable=False, default=0)

    __table_args__ = (
        ForeignKeyConstraint(["game_id", "round_id"], ["rounds.game_id", "rounds.round_id"]),
        Index("ix_positions_user_round", "game_id", "user", "round_id"),
        Index("ix_positions_round_user", "game_id", "round_id", "user"),
    )


class ClaimRecord(Base):
    __tablename__ = "claim_records"

    game_id: Mapped[str] = mapped_column(String, primary_key=True)
    round_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    user: Mapped[str] = mapped_column(String, primary_key=True)
    claimed_amount: Mapped[int] = mapped_column(LedgerInt, nullable=False, default=0)
    claimed_at: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        ForeignKeyConstraint(["game_id", "round_id"], ["rounds.game_id", "rounds.round_id"]),
        Index("ix_claim_records_user_round", "game_id", "user", "round_id"),
    )


class CumulativeSpend(Base):
    __tablename__ = "cumulative_spend"

    game_id: Mapped[str] = mapped_column(String, ForeignKey("games.game_id"), primary_key=True)
    user: Mapped[str] = mapped_column(String, primary_key=True)
    total_spent: Mapped[int] = mapped_column(LedgerInt, nullable=False, default=0)
