from __future__ import annotations

from datetime import timezone
from typing import Any

from dateutil import parser as date_parser

from roundbet.domain import PriceObservation
from roundbet.errors import PriceUnavailableError


def _parse_int(value: Any, *, field: str, ticker: str) -> int:
    if isinstance(value, bool):
        raise PriceUnavailableError(ticker, f"invalid {field}: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise PriceUnavailableError(ticker, f"invalid {field}: {value!r}")


def _parse_timestamp(value: Any, *, ticker: str) -> int:
    """Accept RFC 3339 strings or unix seconds."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    if not isinstance(value, str) or not value:
        raise PriceUnavailableError(ticker, f"invalid block_timestamp: {value!r}")
    if value.isdigit():
        return int(value)
    try:
        parsed = date_parser.isoparse(value)
    except (ValueError, OverflowError) as exc:
        raise PriceUnavailableError(ticker, f"invalid block_timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def parse_price_response(payload: Any, ticker: str) -> PriceObservation:
    """Turn an oracle ``get_price`` payload into a :class:`PriceObservation`.

    The oracle nests the quote under ``price`` alongside the block it was
    committed in, and reports the fixed-point precision at the top level.
    """

    if not isinstance(payload, dict):
        raise PriceUnavailableError(ticker, "unexpected response shape")

    quote = payload.get("price")
    if not isinstance(quote, dict):
        raise PriceUnavailableError(ticker, "response carries no price")

    return PriceObservation(
        value=_parse_int(quote.get("price"), field="price", ticker=ticker),
        decimals=_parse_int(payload.get("decimals"), field="decimals", ticker=ticker),
        observed_at=_parse_timestamp(quote.get("block_timestamp"), ticker=ticker),
    )
