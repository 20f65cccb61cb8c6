from __future__ import annotations

import pytest

from conftest import ADMIN, DENOM, START
from roundbet.domain import Funds, OutcomeOption, RoundStatus
from roundbet.errors import (
    InvalidOutcomeError,
    InvalidRequestError,
    RoundAlreadyFinishedError,
    UnauthorizedError,
    WrongGameKindError,
)
from roundbet.models import Game, Round
from roundbet.repositories import PositionRepository
from roundbet.services.option_market_service import MarketChanges, MarketDraft, OptionMarketService
from roundbet.services.staking_service import StakingService


def _draft(**overrides) -> MarketDraft:
    values = {
        "topic": "crypto",
        "description": "Where does BTC close the year?",
        "close_time": START + 3_600,
        "options": [
            OutcomeOption("low", "Below 50k"),
            OutcomeOption("mid", "50k to 100k", img_url="https://img.example/mid.png"),
            OutcomeOption("high", "Above 100k"),
        ],
        "rules": "Closing price on the reference exchange.",
    }
    values.update(overrides)
    return MarketDraft(**values)


def test_markets_get_sequential_ids_from_one(session, options_game):
    """The first market of a game is id 1 and later ones follow in order."""
    game_id = options_game()
    markets = OptionMarketService(session)

    first = markets.create_market(game_id, ADMIN, _draft(), START)
    second = markets.create_market(game_id, ADMIN, _draft(topic="sports"), START + 1)

    assert first.attributes == {"round_id": 1}
    assert second.attributes == {"round_id": 2}
    assert session.get(Game, game_id).next_round_id == 3

    market = session.get(Round, (game_id, 1))
    assert market.status == RoundStatus.BIDDING.value
    assert market.bid_time == START and market.open_time == START
    assert [outcome.key for outcome in market.outcomes] == ["low", "mid", "high"]
    assert market.outcome("mid").img_url == "https://img.example/mid.png"
    assert market.num_players == 0


def test_market_creation_validates_options_and_close_time(session, options_game):
    """Markets need two distinct options and a close time in the future."""
    game_id = options_game()
    markets = OptionMarketService(session)

    with pytest.raises(InvalidRequestError):
        markets.create_market(game_id, ADMIN, _draft(options=[OutcomeOption("only", "Only")]), START)
    with pytest.raises(InvalidRequestError):
        markets.create_market(
            game_id,
            ADMIN,
            _draft(options=[OutcomeOption("a", "A"), OutcomeOption("a", "Again")]),
            START,
        )
    with pytest.raises(InvalidRequestError):
        markets.create_market(game_id, ADMIN, _draft(close_time=START), START)

    assert session.get(Game, game_id).next_round_id == 1


def test_market_admin_actions_require_admin(session, options_game):
    """Non-admin senders cannot create, resolve or cancel markets."""
    game_id = options_game()
    markets = OptionMarketService(session)
    markets.create_market(game_id, ADMIN, _draft(), START)

    with pytest.raises(UnauthorizedError):
        markets.create_market(game_id, "neutron1mallory", _draft(), START)
    with pytest.raises(UnauthorizedError):
        markets.declare_result(game_id, "neutron1mallory", 1, "low", START + 10)
    with pytest.raises(UnauthorizedError):
        markets.cancel_market(game_id, "neutron1mallory", 1, START + 10)


def test_modify_market_updates_only_given_fields(session, options_game):
    """Unset fields of a modification are left as they were."""
    game_id = options_game()
    markets = OptionMarketService(session)
    markets.create_market(game_id, ADMIN, _draft(), START)

    markets.modify_market(game_id, ADMIN, 1, MarketChanges(description="Updated", close_time=START + 7_200))

    market = session.get(Round, (game_id, 1))
    assert market.description == "Updated"
    assert market.close_time == START + 7_200
    assert market.topic == "crypto"
    assert market.rules == "Closing price on the reference exchange."


def test_modify_market_keeps_outcome_totals_and_positions(session, options_game):
    """Editing a staked market leaves every outcome total equal to its positions."""
    game_id = options_game()
    markets = OptionMarketService(session)
    markets.create_market(game_id, ADMIN, _draft(), START)
    staking = StakingService(session)
    staking.place_stake(game_id, 1, "alice", "mid", Funds(DENOM, 30), START + 1)
    staking.place_stake(game_id, 1, "bob", "high", Funds(DENOM, 20), START + 2)

    markets.modify_market(
        game_id, ADMIN, 1, MarketChanges(topic="macro", img_url="https://img.example/cover.png")
    )

    market = session.get(Round, (game_id, 1))
    positions = PositionRepository(session).for_round(game_id, 1)
    staked: dict[str, int] = {}
    for position in positions:
        staked[position.outcome] = staked.get(position.outcome, 0) + position.amount
    assert {outcome.key: outcome.total for outcome in market.outcomes} == {
        "low": 0,
        "mid": 30,
        "high": 20,
    }
    assert staked == {"mid": 30, "high": 20}
    assert [(position.user, position.amount) for position in positions] == [("alice", 30), ("bob", 20)]


def test_declare_result_finishes_market(session, options_game):
    """Declaring an offered option records it as the winner."""
    game_id = options_game()
    markets = OptionMarketService(session)
    markets.create_market(game_id, ADMIN, _draft(), START)

    result = markets.declare_result(game_id, ADMIN, 1, "high", START + 4_000)

    market = session.get(Round, (game_id, 1))
    assert market.status == RoundStatus.FINISHED.value
    assert market.winner == "high"
    assert market.finished_at == START + 4_000
    assert result.attributes["result_option"] == "high"


def test_declare_result_rejects_unknown_option(session, options_game):
    """The declared option must be one of the market's options."""
    game_id = options_game()
    markets = OptionMarketService(session)
    markets.create_market(game_id, ADMIN, _draft(), START)

    with pytest.raises(InvalidOutcomeError):
        markets.declare_result(game_id, ADMIN, 1, "moon", START + 10)

    assert session.get(Round, (game_id, 1)).status == RoundStatus.BIDDING.value


def test_finished_market_cannot_change(session, options_game):
    """Once resolved, a market cannot be modified, resolved again or cancelled."""
    game_id = options_game()
    markets = OptionMarketService(session)
    markets.create_market(game_id, ADMIN, _draft(), START)
    markets.cancel_market(game_id, ADMIN, 1, START + 10)

    assert session.get(Round, (game_id, 1)).cancelled is True
    with pytest.raises(RoundAlreadyFinishedError):
        markets.declare_result(game_id, ADMIN, 1, "low", START + 20)
    with pytest.raises(RoundAlreadyFinishedError):
        markets.modify_market(game_id, ADMIN, 1, MarketChanges(topic="other"))
    with pytest.raises(RoundAlreadyFinishedError):
        markets.cancel_market(game_id, ADMIN, 1, START + 20)


def test_markets_are_only_offered_by_option_games(session, updown_game):
    """Up/down games do not accept admin-created markets."""
    game_id = updown_game()

    with pytest.raises(WrongGameKindError):
        OptionMarketService(session).create_market(game_id, ADMIN, _draft(), START)
