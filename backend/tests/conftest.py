from __future__ import annotations

import os
import sys
from fractions import Fraction
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest

from roundbet.core.config import Settings
from roundbet.db import Base, create_ledger_engine, create_session_factory
from roundbet.domain import FeeRecipient, Funds, GameConfig, GameKind, PriceObservation
from roundbet.errors import PriceUnavailableError
from roundbet.services.admin_service import AdminService, GameDefinition
from roundbet.services.scheduler import RoundScheduler
from roundbet.services.staking_service import StakingService

ADMIN = "neutron1admin"
DENOM = "untrn"
START = 1_700_000_000


class FakePriceFeed:
    """In-memory oracle; prices are keyed by ticker and stamped at set time."""

    def __init__(self) -> None:
        self.prices: dict[str, PriceObservation] = {}
        self.requests: list[tuple[str, int]] = []

    def set_price(self, ticker: str, value: int, observed_at: int, decimals: int = 8) -> None:
        self.prices[ticker] = PriceObservation(value=value, decimals=decimals, observed_at=observed_at)

    def get_price(self, ticker: str, at_or_before: int) -> PriceObservation:
        self.requests.append((ticker, at_or_before))
        if ticker not in self.prices:
            raise PriceUnavailableError(ticker, "no observation")
        return self.prices[ticker]


@pytest.fixture
def test_settings() -> Settings:
    return Settings(database_url="sqlite://")


@pytest.fixture
def engine():
    from roundbet import models  # noqa: F401

    ledger_engine = create_ledger_engine("sqlite://")
    Base.metadata.create_all(bind=ledger_engine)
    yield ledger_engine
    ledger_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def price_feed() -> FakePriceFeed:
    return FakePriceFeed()


def make_config(**overrides) -> GameConfig:
    values = {
        "minimum_stake": 10,
        "fee_bps": 0,
        "token_denom": DENOM,
        "reputation_address": "neutron1users",
        "round_seconds": 60,
        "exp_per_denom_bet": 1,
        "exp_per_denom_won": 2,
        "fee_recipients": [FeeRecipient(address="neutron1treasury", ratio=Fraction(1))],
    }
    values.update(overrides)
    return GameConfig(**values)


@pytest.fixture
def updown_game(session):
    """Create an up/down game rotating over BTC and ETH."""

    def _create(game_id: str = "updown", **config_overrides) -> str:
        AdminService(session).create_game(
            GameDefinition(
                game_id=game_id,
                kind=GameKind.UPDOWN,
                config=make_config(**config_overrides),
                admins=[ADMIN],
                assets={"ibc/btc": "BTC", "ibc/eth": "ETH"},
                rotation=["ibc/btc", "ibc/eth"],
            ),
            START,
        )
        return game_id

    return _create


@pytest.fixture
def options_game(session):
    def _create(game_id: str = "options", **config_overrides) -> str:
        config_overrides.setdefault("round_seconds", 0)
        AdminService(session).create_game(
            GameDefinition(
                game_id=game_id,
                kind=GameKind.OPTIONS,
                config=make_config(**config_overrides),
                admins=[ADMIN],
            ),
            START,
        )
        return game_id

    return _create


def play_round(session, price_feed, game_id, stakes, *, open_price, close_price, extra=()):
    """Drive round 0 of an up/down game from bidding to finished.

    ``stakes`` go into round 0 while it is bidding and ``extra`` into round 1
    once round 0 is live.
    """

    scheduler = RoundScheduler(session, price_feed)
    staking = StakingService(session)
    scheduler.advance(game_id, START)
    for user, side, amount in stakes:
        staking.place_stake(game_id, 0, user, side, Funds(DENOM, amount), START + 1)

    price_feed.set_price("BTC", open_price, START + 60)
    scheduler.advance(game_id, START + 60)
    for user, side, amount in extra:
        staking.place_stake(game_id, 1, user, side, Funds(DENOM, amount), START + 61)

    price_feed.set_price("BTC", close_price, START + 120)
    price_feed.set_price("ETH", 1, START + 120)
    scheduler.advance(game_id, START + 120)
