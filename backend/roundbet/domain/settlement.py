"""Pari-mutuel payout and protocol fee rules.

Everything here is pure: callers load a finished round and a position, ask for
the payout, and decide themselves what to persist or emit.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from roundbet.errors import (
    InvalidFeeRateError,
    InvalidRequestError,
    RoundNotFinishedError,
    WrongRatioError,
)

from .amounts import FEE_DENOMINATOR, checked_add, checked_sub, mul_floor, multiply_ratio
from .models import FeeRecipient, FeeShare, Payout, PositionSnapshot, RoundSnapshot


def pool_is_unmatched(round_: RoundSnapshot) -> bool:
    """True when nobody staked against the stakes that exist.

    Fewer than two outcomes holding stake means the pool was never matched; a
    declared winner that nobody backed leaves no one to distribute it to.
    """

    staked = [total for total in round_.outcome_totals.values() if total > 0]
    if len(staked) < 2:
        return True
    if round_.winner is not None and round_.outcome_totals.get(round_.winner, 0) == 0:
        return True
    return False


def is_refund(round_: RoundSnapshot) -> bool:
    """Whether every position of the round gets its own stake back."""

    return round_.cancelled or pool_is_unmatched(round_) or round_.winner is None


def settle(round_: RoundSnapshot, position: PositionSnapshot) -> Payout:
    if not round_.is_finished:
        raise RoundNotFinishedError(round_.round_id)
    if position.round_id != round_.round_id:
        raise InvalidRequestError(
            f"Position for round {position.round_id} cannot settle against round {round_.round_id}"
        )

    if is_refund(round_):
        return Payout(amount=position.amount, commissionable=False)

    if position.outcome != round_.winner:
        return Payout(amount=0, commissionable=False)

    winning_total = round_.outcome_totals[round_.winner]
    # The staked amount doubles as the position's share count in the winning pool.
    amount = multiply_ratio(round_.pool, position.amount, winning_total)
    return Payout(amount=amount, commissionable=True)


def refundable_amount(round_: RoundSnapshot, position: PositionSnapshot) -> int:
    """Stake returned because the round's pool was never matched."""

    if round_.is_finished and pool_is_unmatched(round_):
        return position.amount
    return 0


def validate_fee_rate(fee_bps: int) -> int:
    if fee_bps < 0 or fee_bps > FEE_DENOMINATOR:
        raise InvalidFeeRateError()
    return fee_bps


def validate_fee_recipients(recipients: Sequence[FeeRecipient]) -> Sequence[FeeRecipient]:
    total = sum((recipient.ratio for recipient in recipients), start=0)
    if not recipients or total != 1:
        raise WrongRatioError()
    addresses = [recipient.address for recipient in recipients]
    if len(set(addresses)) != len(addresses):
        raise InvalidRequestError("Fee recipients must be unique")
    return recipients


def compute_fee(commissionable_total: int, fee_bps: int) -> int:
    return multiply_ratio(commissionable_total, fee_bps, FEE_DENOMINATOR)


def split_fee(fee: int, recipients: Iterable[FeeRecipient]) -> list[FeeShare]:
    """Split ``fee`` by ratio, flooring each share.

    The flooring remainder is intentionally left undistributed.
    """

    shares: list[FeeShare] = []
    for recipient in recipients:
        amount = mul_floor(fee, recipient.ratio)
        if amount > 0:
            shares.append(FeeShare(address=recipient.address, amount=amount))
    return shares


@dataclass(slots=True)
class ClaimTotals:
    """Aggregate of every payout settled by one claim transaction."""

    total: int = 0
    commissionable: int = 0
    fee: int = 0
    fee_shares: list[FeeShare] = field(default_factory=list)

    def add(self, payout: Payout) -> None:
        self.total = checked_add(self.total, payout.amount)
        if payout.commissionable:
            self.commissionable = checked_add(self.commissionable, payout.amount)

    def apply_fee(self, fee_bps: int, recipients: Iterable[FeeRecipient]) -> None:
        if self.commissionable == 0:
            self.fee = 0
            self.fee_shares = []
            return
        self.fee = compute_fee(self.commissionable, fee_bps)
        self.fee_shares = split_fee(self.fee, recipients)

    @property
    def net(self) -> int:
        return checked_sub(self.total, self.fee)
