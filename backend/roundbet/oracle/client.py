from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from roundbet.core.config import settings
from roundbet.domain import PriceObservation
from roundbet.errors import PriceUnavailableError

from .normalize import parse_price_response


class OraclePriceClient:
    """Thin wrapper around the chain oracle's currency-pair price endpoint."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        prices_path: str | None = None,
        quote_ticker: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url or str(settings.oracle_base_url)
        self.prices_path = prices_path or settings.oracle_prices_path
        self.quote_ticker = quote_ticker or settings.oracle_quote_ticker
        self.timeout = timeout or settings.oracle_timeout_seconds
        self.client = httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=transport)

    def currency_pair(self, ticker: str) -> str:
        return f"{ticker}/{self.quote_ticker}"

    def fetch_price(self, ticker: str) -> dict[str, Any]:
        params = {"currency_pair": self.currency_pair(ticker)}
        logger.debug("Oracle GET {} params={}", self.prices_path, params)
        try:
            response = self.client.get(self.prices_path, params=params)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Oracle request for {} failed: {}", ticker, exc)
            raise PriceUnavailableError(ticker, str(exc)) from exc
        return response.json()

    def get_price(self, ticker: str, at_or_before: int) -> PriceObservation:
        """Return the oracle's latest committed price for ``ticker``.

        The oracle only serves its most recent observation; freshness against
        ``at_or_before`` is checked by the caller.
        """

        observation = parse_price_response(self.fetch_price(ticker), ticker)
        logger.info(
            "Oracle price {}={} (decimals {}, observed {}, requested {})",
            self.currency_pair(ticker),
            observation.value,
            observation.decimals,
            observation.observed_at,
            at_or_before,
        )
        return observation

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "OraclePriceClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
