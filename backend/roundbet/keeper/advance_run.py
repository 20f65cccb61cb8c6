"""Keeper job that drives the round scheduler of every up/down game."""

from __future__ import annotations

import argparse
import json
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger
from sqlalchemy.orm import Session

from roundbet.core.config import Settings, get_settings
from roundbet.db import SessionLocal, init_db
from roundbet.domain import GameKind
from roundbet.errors import EngineError
from roundbet.oracle.client import OraclePriceClient
from roundbet.repositories import GameRepository
from roundbet.services.price_feed import PriceFeed
from roundbet.services.scheduler import RoundScheduler


@dataclass(slots=True)
class AdvanceSummary:
    checked_games: int = 0
    advanced_games: int = 0
    finished_rounds: list[dict[str, Any]] = field(default_factory=list)
    live_rounds: list[dict[str, Any]] = field(default_factory=list)
    opened_rounds: list[dict[str, Any]] = field(default_factory=list)
    failures: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "checked_games": self.checked_games,
            "advanced_games": self.advanced_games,
            "finished_rounds": self.finished_rounds,
            "live_rounds": self.live_rounds,
            "opened_rounds": self.opened_rounds,
            "failures": self.failures,
        }


class AdvancePipeline:
    """Call ``advance`` once per game, each in its own transaction."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        price_feed: PriceFeed | None = None,
        session_factory: Callable[[], Session] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._owns_feed = price_feed is None
        self._price_feed = price_feed or OraclePriceClient(
            base_url=str(self.settings.oracle_base_url),
            prices_path=self.settings.oracle_prices_path,
            quote_ticker=self.settings.oracle_quote_ticker,
            timeout=self.settings.oracle_timeout_seconds,
        )
        self._session_factory = session_factory or SessionLocal
        self.last_summary: AdvanceSummary | None = None

    def run(self, game_ids: Sequence[str] | None = None, now: int | None = None) -> AdvanceSummary:
        summary = AdvanceSummary()
        now = int(time.time()) if now is None else now
        targets = list(game_ids or self.settings.keeper_game_ids) or self._updown_game_ids()
        if not targets:
            logger.info("No up/down games to advance")
            return summary

        logger.info("Advancing {} games at {}", len(targets), now)
        for game_id in targets:
            summary.checked_games += 1
            session = self._session_factory()
            try:
                scheduler = RoundScheduler(session, self._price_feed, settings=self.settings)
                result = scheduler.advance(game_id, now)
            except EngineError as exc:
                logger.warning("Advance of game {} failed ({}): {}", game_id, exc.code, exc.message)
                summary.failures.append({"game_id": game_id, "error": exc.code, "reason": exc.message})
                continue
            except Exception as exc:  # noqa: BLE001
                logger.exception("Unexpected error while advancing game {}", game_id)
                summary.failures.append({"game_id": game_id, "error": "unexpected", "reason": str(exc)})
                continue
            finally:
                session.close()

            attributes = result.attributes
            if "finished_round" in attributes:
                summary.finished_rounds.append(
                    {
                        "game_id": game_id,
                        "round_id": attributes["finished_round"],
                        "winner": attributes.get("winner"),
                    }
                )
            if "live_round" in attributes:
                summary.live_rounds.append({"game_id": game_id, "round_id": attributes["live_round"]})
            if "bidding_round" in attributes:
                summary.opened_rounds.append({"game_id": game_id, "round_id": attributes["bidding_round"]})
            if attributes:
                summary.advanced_games += 1

        logger.info(
            "Advance sweep finished: checked={}, advanced={}, failures={}",
            summary.checked_games,
            summary.advanced_games,
            len(summary.failures),
        )
        return summary

    def run_forever(
        self,
        game_ids: Sequence[str] | None = None,
        *,
        interval: float | None = None,
        iterations: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> AdvanceSummary:
        """Repeat :meth:`run` every ``interval`` seconds; ``iterations`` bounds the loop.

        Only the summary of the latest sweep is kept, on ``last_summary``.
        """

        interval = interval or self.settings.keeper_interval_seconds
        sweeps = 0
        while True:
            self.last_summary = self.run(game_ids)
            sweeps += 1
            if iterations is not None and sweeps >= iterations:
                return self.last_summary
            sleep(interval)

    def close(self) -> None:
        if self._owns_feed and isinstance(self._price_feed, OraclePriceClient):
            self._price_feed.close()

    def _updown_game_ids(self) -> list[str]:
        session = self._session_factory()
        try:
            games = GameRepository(session).list_games(kind=GameKind.UPDOWN)
            return [game.game_id for game in games if not game.halted]
        finally:
            session.close()


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Finish, promote, and open up/down rounds whose time has come",
    )
    parser.add_argument(
        "--game-id",
        dest="game_ids",
        action="append",
        help="Restrict the sweep to specific games (can be provided multiple times)",
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Keep sweeping every --interval seconds instead of exiting after one pass",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between sweeps in loop mode (defaults to KEEPER_INTERVAL_SECONDS)",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Optional path where a JSON summary report of the last sweep will be written",
    )
    return parser.parse_args()


def _write_summary(summary: AdvanceSummary, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary.to_dict(), default=str, indent=2))
    logger.info("Advance summary written to {}", path)


def main() -> AdvanceSummary:
    args = _parse_args()
    settings = get_settings()
    init_db()
    pipeline = AdvancePipeline(settings)
    try:
        if args.loop:
            try:
                summary = pipeline.run_forever(args.game_ids, interval=args.interval)
            except KeyboardInterrupt:
                logger.info("Keeper interrupted; stopping")
                summary = pipeline.last_summary or AdvanceSummary()
        else:
            summary = pipeline.run(args.game_ids)
    finally:
        pipeline.close()

    if args.summary_path:
        _write_summary(summary, args.summary_path)
    return summary


if __name__ == "__main__":
    main()
