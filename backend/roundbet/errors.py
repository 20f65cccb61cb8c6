"""Typed rejection conditions raised by engine operations.

Every operation runs inside a single ledger transaction, so raising any of
these discards all writes made so far by that operation.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for every rejection raised by the engine."""

    code = "engine_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else self.code


# ----------------------------------------------------------------------
# Validation


class InvalidRequestError(EngineError):
    """The request is malformed."""

    code = "invalid_request"


class WrongRatioError(InvalidRequestError):
    """The sum of fee recipient ratios is not equal to 1."""

    code = "wrong_ratio"


class InvalidFeeRateError(InvalidRequestError):
    """The gaming fee must be between 0 and 10000 basis points."""

    code = "invalid_fee_rate"


class AssetsEmptyError(InvalidRequestError):
    """The asset rotation list cannot be empty."""

    code = "assets_empty"


class AssetNotRegisteredError(InvalidRequestError):
    code = "asset_not_registered"

    def __init__(self, denom: str) -> None:
        super().__init__(f"Asset {denom} has no registered price feed")
        self.denom = denom


class InvalidFundsError(InvalidRequestError):
    code = "invalid_funds"

    def __init__(self, expected: str, received: str) -> None:
        super().__init__(f"Stakes must be paid in {expected}, received {received}")
        self.expected = expected
        self.received = received


class BelowMinimumStakeError(InvalidRequestError):
    """Need to stake more than the minimum stake amount."""

    code = "below_minimum_stake"


class InvalidOutcomeError(InvalidRequestError):
    code = "invalid_outcome"

    def __init__(self, outcome: str) -> None:
        super().__init__(f"Outcome {outcome!r} is not offered by this round")
        self.outcome = outcome


class OutcomeMismatchError(InvalidRequestError):
    """Can't add to a position on a different outcome."""

    code = "outcome_mismatch"


class AdminRequiredError(InvalidRequestError):
    """At least one admin must remain."""

    code = "need_one_admin"


# ----------------------------------------------------------------------
# Authorization


class UnauthorizedError(EngineError):
    code = "unauthorized"

    def __init__(self, sender: str) -> None:
        super().__init__(f"Only an admin can execute this function. Sender: {sender}")
        self.sender = sender


# ----------------------------------------------------------------------
# State consistency


class StateConsistencyError(EngineError):
    """The operation does not apply to the current ledger state."""

    code = "state_conflict"


class GameHaltedError(StateConsistencyError):
    """Game is halted."""

    code = "game_halted"


class WrongGameKindError(StateConsistencyError):
    code = "wrong_game_kind"

    def __init__(self, game_id: str, expected: str) -> None:
        super().__init__(f"Game {game_id} does not support {expected} operations")
        self.game_id = game_id
        self.expected = expected


class StaleRoundError(StateConsistencyError):
    code = "stale_round"

    def __init__(self, requested: int, current: int | None) -> None:
        super().__init__(
            f"Tried to stake on round {requested} but it's currently round {current}"
        )
        self.requested = requested
        self.current = current


class RoundClosedError(StateConsistencyError):
    code = "round_closed"

    def __init__(self, round_id: int, seconds_late: int) -> None:
        super().__init__(
            f"Round {round_id} stopped accepting stakes {seconds_late} seconds ago"
        )
        self.round_id = round_id
        self.seconds_late = seconds_late


class RoundNotFinishedError(StateConsistencyError):
    code = "round_not_finished"

    def __init__(self, round_id: int) -> None:
        super().__init__(f"Round {round_id} is not finished yet")
        self.round_id = round_id


class RoundAlreadyFinishedError(StateConsistencyError):
    code = "round_already_finished"

    def __init__(self, round_id: int) -> None:
        super().__init__(f"Round {round_id} is already finished")
        self.round_id = round_id


class NothingToClaimError(StateConsistencyError):
    """There's nothing to claim."""

    code = "nothing_to_claim"


class NotFoundError(StateConsistencyError):
    code = "not_found"


class GameNotFoundError(NotFoundError):
    code = "game_not_found"

    def __init__(self, game_id: str) -> None:
        super().__init__(f"Game {game_id} does not exist")
        self.game_id = game_id


class GameExistsError(StateConsistencyError):
    code = "game_exists"

    def __init__(self, game_id: str) -> None:
        super().__init__(f"Game {game_id} already exists")
        self.game_id = game_id


class RoundNotFoundError(NotFoundError):
    code = "round_not_found"

    def __init__(self, round_id: int) -> None:
        super().__init__(f"Round {round_id} does not exist")
        self.round_id = round_id


# ----------------------------------------------------------------------
# External dependencies


class ExternalDependencyError(EngineError):
    """An external collaborator could not serve the request; retry later."""

    code = "external_dependency"


class PriceUnavailableError(ExternalDependencyError):
    code = "price_unavailable"

    def __init__(self, ticker: str, reason: str) -> None:
        super().__init__(f"Price for {ticker} unavailable: {reason}")
        self.ticker = ticker


class StalePriceError(ExternalDependencyError):
    code = "price_too_old"

    def __init__(self, ticker: str, observed_at: int, now: int) -> None:
        super().__init__(
            f"Price for {ticker} observed at {observed_at} is too old at {now}"
        )
        self.ticker = ticker
        self.observed_at = observed_at
        self.now = now


# ----------------------------------------------------------------------
# Arithmetic


class ArithmeticOverflowError(EngineError):
    """Arithmetic overflow."""

    code = "overflow"
