from __future__ import annotations

import importlib
import json
from pathlib import Path

import pytest
from sqlalchemy.exc import OperationalError

from conftest import ADMIN, START
from roundbet.core.config import Settings
from roundbet.keeper.advance_run import AdvancePipeline, AdvanceSummary, _write_summary, main
from roundbet.services.admin_service import AdminService
from roundbet.services.scheduler import RoundScheduler


def _pipeline(test_settings, price_feed, session_factory) -> AdvancePipeline:
    return AdvancePipeline(test_settings, price_feed=price_feed, session_factory=session_factory)


def test_sweep_targets_only_updown_games(test_settings, price_feed, session_factory, updown_game, options_game):
    """Without explicit ids every up/down game is advanced and option games are skipped."""
    updown_game("first")
    updown_game("second")
    options_game("markets")

    summary = _pipeline(test_settings, price_feed, session_factory).run(now=START)

    assert summary.checked_games == 2
    assert summary.advanced_games == 2
    assert summary.opened_rounds == [
        {"game_id": "first", "round_id": 0},
        {"game_id": "second", "round_id": 0},
    ]
    assert summary.failures == []


def test_failed_game_does_not_stop_the_sweep(test_settings, price_feed, session_factory, updown_game):
    """A game missing its price is reported while the others still advance."""
    updown_game("first")
    updown_game("second")
    pipeline = _pipeline(test_settings, price_feed, session_factory)
    pipeline.run(["first"], now=START)
    pipeline.run(["second"], now=START + 30)

    price_feed.set_price("BTC", 100, START + 60)
    summary = pipeline.run(["first", "second"], now=START + 60)

    assert summary.live_rounds == [{"game_id": "first", "round_id": 0}]
    assert summary.advanced_games == 1
    assert summary.failures == []

    price_feed.set_price("BTC", 101, START + 90)
    summary = pipeline.run(["second", "missing"], now=START + 90)

    assert [failure["game_id"] for failure in summary.failures] == ["missing"]
    assert summary.failures[0]["error"] == "game_not_found"
    assert summary.live_rounds == [{"game_id": "second", "round_id": 0}]


def test_stale_price_is_recorded_as_failure(test_settings, price_feed, session_factory, updown_game):
    """Out-of-date oracle prices fail the game without raising."""
    updown_game()
    pipeline = _pipeline(test_settings, price_feed, session_factory)
    pipeline.run(now=START)
    price_feed.set_price("BTC", 100, START)

    summary = pipeline.run(now=START + 60)

    assert summary.failures == [
        {
            "game_id": "updown",
            "error": "price_too_old",
            "reason": summary.failures[0]["reason"],
        }
    ]
    assert summary.advanced_games == 0


def test_configured_game_ids_take_precedence(price_feed, session_factory, updown_game):
    """KEEPER_GAME_IDS narrows the sweep when no ids are passed."""
    updown_game("first")
    updown_game("second")
    settings = Settings(database_url="sqlite://", keeper_game_ids="second")

    summary = AdvancePipeline(settings, price_feed=price_feed, session_factory=session_factory).run(now=START)

    assert summary.opened_rounds == [{"game_id": "second", "round_id": 0}]


def test_unexpected_error_does_not_stop_the_sweep(
    test_settings, price_feed, session_factory, updown_game, monkeypatch
):
    """A database error on one game is logged and recorded while the rest advance."""
    updown_game("first")
    updown_game("second")
    advance = RoundScheduler.advance

    def locked_first(self, game_id, now):
        if game_id == "first":
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))
        return advance(self, game_id, now)

    monkeypatch.setattr(RoundScheduler, "advance", locked_first)

    summary = _pipeline(test_settings, price_feed, session_factory).run(now=START)

    assert summary.checked_games == 2
    assert summary.opened_rounds == [{"game_id": "second", "round_id": 0}]
    assert [failure["game_id"] for failure in summary.failures] == ["first"]
    assert summary.failures[0]["error"] == "unexpected"
    assert "database is locked" in summary.failures[0]["reason"]


def test_sweep_skips_halted_games(test_settings, price_feed, session, session_factory, updown_game):
    """Halted games are left out of the default sweep instead of failing it."""
    updown_game("first")
    updown_game("second")
    AdminService(session).set_halted("first", ADMIN, True)

    summary = _pipeline(test_settings, price_feed, session_factory).run(now=START)

    assert summary.checked_games == 1
    assert summary.opened_rounds == [{"game_id": "second", "round_id": 0}]
    assert summary.failures == []


def test_run_forever_sleeps_between_sweeps(test_settings, price_feed, session_factory):
    """Loop mode sleeps between sweeps but not after the last one."""
    naps: list[float] = []
    pipeline = _pipeline(test_settings, price_feed, session_factory)

    summary = pipeline.run_forever(interval=2.5, iterations=3, sleep=naps.append)

    assert isinstance(summary, AdvanceSummary)
    assert naps == [2.5, 2.5]


def test_run_forever_keeps_only_the_latest_summary(test_settings, price_feed, session_factory):
    """Each sweep replaces the previous summary instead of piling them up."""
    pipeline = _pipeline(test_settings, price_feed, session_factory)
    produced: list[AdvanceSummary] = []

    def sweep(game_ids=None, now=None):
        produced.append(AdvanceSummary(checked_games=len(produced) + 1))
        return produced[-1]

    pipeline.run = sweep

    summary = pipeline.run_forever(interval=1, iterations=4, sleep=lambda _: None)

    assert len(produced) == 4
    assert summary is produced[-1]
    assert pipeline.last_summary is summary
    assert summary.checked_games == 4


def test_write_summary_creates_report(tmp_path):
    summary = AdvanceSummary(checked_games=1, failures=[{"game_id": "x", "error": "game_halted", "reason": "halted"}])
    path = tmp_path / "reports" / "advance.json"

    _write_summary(summary, path)

    assert json.loads(path.read_text())["failures"][0]["error"] == "game_halted"


def test_keeper_entry_point_lives_inside_the_package():
    """The installed keeper command resolves into the roundbet package."""
    tomllib = pytest.importorskip("tomllib")
    pyproject = tomllib.loads((Path(__file__).resolve().parents[2] / "pyproject.toml").read_text())

    target = pyproject["project"]["scripts"]["roundbet-keeper"]
    module_name, _, attribute = target.partition(":")

    assert module_name.startswith("roundbet.")
    assert getattr(importlib.import_module(module_name), attribute) is main
    assert pyproject["tool"]["setuptools"]["packages"]["find"]["include"] == ["roundbet*"]
