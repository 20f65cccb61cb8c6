from __future__ import annotations

from fractions import Fraction

import pytest

from conftest import ADMIN, DENOM, START, play_round
from roundbet.domain import ExperienceInstruction, FeeRecipient, Funds, OutcomeOption, TransferInstruction
from roundbet.errors import (
    NothingToClaimError,
    RoundNotFinishedError,
    RoundNotFoundError,
)
from roundbet.models import ClaimRecord, Position
from roundbet.services.claim_service import ClaimService
from roundbet.services.option_market_service import MarketDraft, OptionMarketService
from roundbet.services.scheduler import RoundScheduler
from roundbet.services.staking_service import StakingService

FEE_RECIPIENTS = [
    FeeRecipient("neutron1treasury", Fraction(3, 4)),
    FeeRecipient("neutron1dev", Fraction(1, 4)),
]


@pytest.fixture
def settled_game(session, price_feed, updown_game):
    game_id = updown_game(fee_bps=500, fee_recipients=FEE_RECIPIENTS)
    play_round(
        session,
        price_feed,
        game_id,
        [("alice", "bull", 30), ("carol", "bull", 270), ("bob", "bear", 100)],
        open_price=100,
        close_price=110,
    )
    return game_id


def test_winner_claim_pays_fee_experience_and_net(session, settled_game):
    """A 40 payout carries a 5% fee split by ratio before the claimant is paid."""
    result = ClaimService(session).claim_round(settled_game, "alice", 0, START + 200)

    assert result.instructions == [
        TransferInstruction(recipient="neutron1treasury", amount=1, denom=DENOM),
        ExperienceInstruction(contract="neutron1users", user="alice", experience=80),
        TransferInstruction(recipient="alice", amount=38, denom=DENOM),
    ]
    assert result.attributes["total"] == 40
    assert result.attributes["fee"] == 2


def test_second_claim_of_same_round_fails(session, settled_game):
    """Claims remove the position, so a repeat claim has nothing to pay."""
    claims = ClaimService(session)
    claims.claim_round(settled_game, "alice", 0, START + 200)

    with pytest.raises(NothingToClaimError):
        claims.claim_round(settled_game, "alice", 0, START + 201)

    assert session.get(Position, (settled_game, 0, "alice")) is None
    assert session.get(ClaimRecord, (settled_game, 0, "alice")).claimed_amount == 40


def test_losing_position_has_nothing_to_claim(session, settled_game):
    """A zero payout is rejected and leaves the position in place."""
    with pytest.raises(NothingToClaimError):
        ClaimService(session).claim_round(settled_game, "bob", 0, START + 200)

    assert session.get(Position, (settled_game, 0, "bob")) is not None


def test_claim_all_pays_every_winner_share(session, settled_game):
    """Winning payouts of all claimants add up to no more than the pool."""
    claims = ClaimService(session)

    totals = [claims.claim_all(settled_game, user, START + 200).attributes["total"] for user in ("alice", "carol")]

    assert totals == [40, 360]
    assert sum(totals) <= 400


def test_claim_all_skips_unfinished_rounds(session, price_feed, updown_game):
    """Positions in rounds still running stay untouched by claim_all."""
    game_id = updown_game()
    play_round(
        session,
        price_feed,
        game_id,
        [("alice", "bear", 50), ("bob", "bull", 50)],
        open_price=100,
        close_price=90,
        extra=[("alice", "bull", 20)],
    )

    result = ClaimService(session).claim_all(game_id, "alice", START + 200)

    assert result.attributes["rounds"] == [0]
    assert result.attributes["net"] == 100
    assert session.get(Position, (game_id, 1, "alice")).amount == 20


def test_tie_refunds_without_fee(session, price_feed, updown_game):
    """A flat close refunds both sides with no fee or experience."""
    game_id = updown_game(fee_bps=1_000)
    play_round(
        session,
        price_feed,
        game_id,
        [("alice", "bull", 30), ("bob", "bear", 100)],
        open_price=100,
        close_price=100,
    )
    claims = ClaimService(session)

    alice = claims.claim_all(game_id, "alice", START + 200)
    bob = claims.claim_all(game_id, "bob", START + 200)

    assert alice.instructions == [TransferInstruction(recipient="alice", amount=30, denom=DENOM)]
    assert bob.instructions == [TransferInstruction(recipient="bob", amount=100, denom=DENOM)]


def test_one_sided_round_refunds_stake(session, price_feed, updown_game):
    """Nobody took the other side, so the lone staker gets the stake back."""
    game_id = updown_game(fee_bps=1_000)
    play_round(session, price_feed, game_id, [("alice", "bull", 75)], open_price=100, close_price=120)

    result = ClaimService(session).claim_round(game_id, "alice", 0, START + 200)

    assert result.attributes == {"user": "alice", "total": 75, "fee": 0, "net": 75, "round_id": 0}
    assert result.experience_credits == []


def test_claim_round_requires_finished_existing_round(session, price_feed, updown_game):
    """Unknown and still-running rounds cannot be claimed."""
    game_id = updown_game()
    RoundScheduler(session, price_feed).advance(game_id, START)
    StakingService(session).place_stake(game_id, 0, "alice", "bull", Funds(DENOM, 10), START + 1)
    claims = ClaimService(session)

    with pytest.raises(RoundNotFinishedError):
        claims.claim_round(game_id, "alice", 0, START + 2)
    with pytest.raises(RoundNotFoundError):
        claims.claim_round(game_id, "alice", 7, START + 2)
    with pytest.raises(NothingToClaimError):
        claims.claim_all(game_id, "alice", START + 2)


def test_cancelled_market_refunds_stakers(session, options_game):
    """Cancelling an option market makes each stake claimable in full."""
    game_id = options_game(fee_bps=2_000)
    markets = OptionMarketService(session)
    markets.create_market(
        game_id,
        ADMIN,
        MarketDraft(
            topic="weather",
            description="Rain tomorrow?",
            close_time=START + 500,
            options=[OutcomeOption("rain", "Rain"), OutcomeOption("dry", "Dry")],
        ),
        START,
    )
    staking = StakingService(session)
    staking.place_stake(game_id, 1, "u1", "rain", Funds(DENOM, 40), START + 1)
    staking.place_stake(game_id, 1, "u2", "dry", Funds(DENOM, 60), START + 2)
    markets.cancel_market(game_id, ADMIN, 1, START + 3)

    result = ClaimService(session).claim_all(game_id, "u2", START + 4)

    assert result.transfers == [TransferInstruction(recipient="u2", amount=60, denom=DENOM)]


def test_declared_market_pays_winning_option(session, options_game):
    """The declared option's backers share the whole pool, less the fee."""
    game_id = options_game(fee_bps=1_000)
    markets = OptionMarketService(session)
    markets.create_market(
        game_id,
        ADMIN,
        MarketDraft(
            topic="sports",
            description="",
            close_time=START + 500,
            options=[OutcomeOption("h", "Home"), OutcomeOption("d", "Draw"), OutcomeOption("a", "Away")],
        ),
        START,
    )
    staking = StakingService(session)
    staking.place_stake(game_id, 1, "u1", "h", Funds(DENOM, 100), START + 1)
    staking.place_stake(game_id, 1, "u2", "d", Funds(DENOM, 50), START + 2)
    staking.place_stake(game_id, 1, "u3", "a", Funds(DENOM, 50), START + 3)
    markets.declare_result(game_id, ADMIN, 1, "d", START + 600)

    result = ClaimService(session).claim_round(game_id, "u2", 1, START + 601)

    assert result.attributes["total"] == 200
    assert result.attributes["fee"] == 20
    assert result.transfers[-1] == TransferInstruction(recipient="u2", amount=180, denom=DENOM)
