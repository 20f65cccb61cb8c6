from __future__ import annotations

import pytest

from conftest import ADMIN, DENOM, START, play_round
from roundbet.core.config import Settings
from roundbet.domain import Funds, OutcomeOption
from roundbet.errors import NotFoundError, WrongGameKindError
from roundbet.services.claim_service import ClaimService
from roundbet.services.option_market_service import MarketDraft, OptionMarketService
from roundbet.services.query_service import QueryService, RoundAmount
from roundbet.services.scheduler import RoundScheduler
from roundbet.services.staking_service import StakingService


@pytest.fixture
def many_markets(session, options_game):
    game_id = options_game()
    markets = OptionMarketService(session)
    for index in range(12):
        markets.create_market(
            game_id,
            ADMIN,
            MarketDraft(
                topic="sports" if index % 2 else "politics",
                description=f"Market {index}",
                close_time=START + 1_000,
                options=[OutcomeOption("yes", "Yes"), OutcomeOption("no", "No")],
            ),
            START,
        )
    markets.declare_result(game_id, ADMIN, 1, "yes", START + 10)
    markets.declare_result(game_id, ADMIN, 2, "no", START + 10)
    return game_id


def test_round_listing_paginates_with_default_limit(session, many_markets):
    """Listings default to ten entries and resume after the given id."""
    queries = QueryService(session, settings=Settings(database_url="sqlite://"))

    first_page = queries.list_rounds(many_markets)
    second_page = queries.list_rounds(many_markets, start_after=first_page[-1].round_id)

    assert [item.round_id for item in first_page] == list(range(1, 11))
    assert [item.round_id for item in second_page] == [11, 12]


def test_round_listing_clamps_requested_limit(session, many_markets):
    """Requested page sizes are capped by the configured maximum."""
    queries = QueryService(session, settings=Settings(database_url="sqlite://", max_page_limit=12))

    assert len(queries.list_rounds(many_markets, limit=100)) == 12
    assert len(queries.list_rounds(many_markets, limit=3)) == 3


def test_round_listing_filters_status_and_topic(session, many_markets):
    """Finished and open rounds are listed separately and topics narrow further."""
    queries = QueryService(session)

    finished = queries.list_rounds(many_markets, finished=True)
    open_sports = queries.list_rounds(many_markets, finished=False, topic="sports", limit=30)

    assert [item.round_id for item in finished] == [1, 2]
    assert [item.round_id for item in open_sports] == [4, 6, 8, 10, 12]


def test_pending_rewards_reports_unclaimed_winnings(session, price_feed, updown_game):
    """Winners see their gross payout until they claim it."""
    game_id = updown_game()
    play_round(
        session,
        price_feed,
        game_id,
        [("alice", "bull", 30), ("carol", "bull", 270), ("bob", "bear", 100)],
        open_price=100,
        close_price=110,
    )
    queries = QueryService(session)

    rewards = queries.pending_rewards(game_id, "alice")
    assert rewards.total == 40
    assert rewards.rounds == [RoundAmount(round_id=0, amount=40)]
    assert queries.pending_rewards(game_id, "bob").total == 0
    assert queries.pending_reward_round(game_id, "alice", 0) == 40

    ClaimService(session).claim_round(game_id, "alice", 0, START + 200)

    assert queries.pending_rewards(game_id, "alice").total == 0
    assert queries.claim(game_id, 0, "alice").claimed_amount == 40
    assert [record.round_id for record in queries.claims_by_user(game_id, "alice")] == [0]


def test_refundable_only_covers_unmatched_rounds(session, price_feed, updown_game):
    """One-sided rounds are refundable while ties are not."""
    game_id = updown_game()
    play_round(session, price_feed, game_id, [("alice", "bull", 75)], open_price=100, close_price=100)
    queries = QueryService(session)

    assert queries.refundable(game_id, "alice").rounds == [RoundAmount(round_id=0, amount=75)]
    assert queries.pending_rewards(game_id, "alice").total == 75


def test_current_position_shows_both_active_rounds(session, price_feed, updown_game):
    """Positions in the live and bidding rounds are reported per side."""
    game_id = updown_game()
    scheduler = RoundScheduler(session, price_feed)
    staking = StakingService(session)
    scheduler.advance(game_id, START)
    staking.place_stake(game_id, 0, "alice", "bear", Funds(DENOM, 25), START + 1)
    price_feed.set_price("BTC", 100, START + 60)
    scheduler.advance(game_id, START + 60)
    staking.place_stake(game_id, 1, "alice", "bull", Funds(DENOM, 15), START + 61)

    current = QueryService(session).current_position(game_id, "alice")

    assert (current.live_round_id, current.bidding_round_id) == (0, 1)
    assert current.live == {"bull": 0, "bear": 25}
    assert current.bidding == {"bull": 15, "bear": 0}
    assert QueryService(session).total_spent(game_id, "alice") == 40


def test_status_reports_pointer_rounds(session, price_feed, updown_game):
    """Status shows the bidding round before any round has gone live."""
    game_id = updown_game()
    RoundScheduler(session, price_feed).advance(game_id, START)

    status = QueryService(session).status(game_id, START + 5)

    assert status.bidding_round.round_id == 0
    assert status.live_round is None
    assert status.current_time == START + 5


def test_status_is_only_defined_for_updown_games(session, options_game):
    """Option games have no scheduled rounds to report."""
    game_id = options_game()

    with pytest.raises(WrongGameKindError):
        QueryService(session).status(game_id, START)


def test_round_positions_page_by_user(session, price_feed, updown_game):
    """Round positions are ordered by address and resume after the last one."""
    game_id = updown_game()
    RoundScheduler(session, price_feed).advance(game_id, START)
    staking = StakingService(session)
    for user in ("dave", "alice", "carol", "bob"):
        staking.place_stake(game_id, 0, user, "bull", Funds(DENOM, 10), START + 1)
    queries = QueryService(session)

    first = queries.round_positions(game_id, 0, limit=2)
    rest = queries.round_positions(game_id, 0, start_after=first[-1].user)

    assert [position.user for position in first] == ["alice", "bob"]
    assert [position.user for position in rest] == ["carol", "dave"]


def test_missing_claim_record_is_not_found(session, updown_game):
    """Looking up a claim that never happened fails."""
    game_id = updown_game()

    with pytest.raises(NotFoundError):
        QueryService(session).claim(game_id, 0, "alice")
