"""Price oracle port used by the round scheduler."""

from __future__ import annotations

from typing import Protocol

from loguru import logger

from roundbet.core.config import Settings, get_settings
from roundbet.domain import PriceObservation
from roundbet.domain.resolution import normalize_price
from roundbet.errors import PriceUnavailableError, StalePriceError


class PriceFeed(Protocol):
    """Anything able to quote an asset ticker at a point in time."""

    def get_price(self, ticker: str, at_or_before: int) -> PriceObservation:
        """Return the latest observation no later than ``at_or_before``.

        Implementations raise :class:`PriceUnavailableError` when no
        observation exists.
        """


def observe_price(
    feed: PriceFeed,
    ticker: str,
    now: int,
    *,
    settings: Settings | None = None,
) -> int:
    """Fetch, validate freshness, and normalize a price for ``ticker``."""

    resolved = settings or get_settings()
    try:
        observation = feed.get_price(ticker, now)
    except PriceUnavailableError:
        raise
    except Exception as exc:
        raise PriceUnavailableError(ticker, str(exc)) from exc

    age = now - observation.observed_at
    if age > resolved.price_max_staleness_seconds:
        logger.warning(
            "Rejecting {} price observed at {} ({}s old, limit {}s)",
            ticker,
            observation.observed_at,
            age,
            resolved.price_max_staleness_seconds,
        )
        raise StalePriceError(ticker, observation.observed_at, now)

    return normalize_price(observation, resolved.price_decimals)
