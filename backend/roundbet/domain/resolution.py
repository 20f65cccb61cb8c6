"""Winner resolution strategies plugged into the shared settlement core."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from roundbet.errors import InvalidOutcomeError, InvalidRequestError

from .amounts import ensure_price
from .models import PriceObservation, Side


class WinnerResolution(Protocol):
    def resolve(self) -> str | None:
        """Return the winning outcome key, or ``None`` for a tie."""


class PriceComparison:
    """Binary rounds: compare the closing price against the opening price."""

    def __init__(self, open_price: int, close_price: int) -> None:
        self.open_price = open_price
        self.close_price = close_price

    def resolve(self) -> str | None:
        if self.close_price > self.open_price:
            return Side.BULL.value
        if self.close_price < self.open_price:
            return Side.BEAR.value
        return None


class DeclaredResult:
    """Option markets: an admin names the winning option."""

    def __init__(self, option_key: str, offered: Iterable[str]) -> None:
        offered_keys = set(offered)
        if option_key not in offered_keys:
            raise InvalidOutcomeError(option_key)
        self.option_key = option_key

    def resolve(self) -> str | None:
        return self.option_key


def normalize_price(observation: PriceObservation, target_decimals: int) -> int:
    """Rescale an observation to ``target_decimals`` fixed-point digits.

    Feeds with more precision than the target are truncated toward zero.
    """

    if observation.decimals < 0:
        raise InvalidRequestError(f"Negative price precision {observation.decimals}")
    shift = target_decimals - observation.decimals
    if shift >= 0:
        value = observation.value * 10**shift
    else:
        divisor = 10 ** (-shift)
        value = abs(observation.value) // divisor
        if observation.value < 0:
            value = -value
    return ensure_price(value)
