from __future__ import annotations

import time
from collections.abc import Iterator
from typing import Annotated

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.orm import Session

from . import schemas
from .core.config import settings
from .db import get_db, init_db
from .domain import Funds
from .errors import (
    ArithmeticOverflowError,
    EngineError,
    ExternalDependencyError,
    InvalidRequestError,
    NotFoundError,
    StateConsistencyError,
    UnauthorizedError,
)
from .oracle.client import OraclePriceClient
from .services.admin_service import AdminService, GameDefinition
from .services.claim_service import ClaimService
from .services.option_market_service import MarketChanges, MarketDraft, OptionMarketService
from .services.price_feed import PriceFeed
from .services.query_service import QueryService
from .services.scheduler import RoundScheduler
from .services.staking_service import StakingService

app = FastAPI(title="RoundBet API", version="0.1.0", debug=settings.debug)

_STATUS_BY_ERROR: tuple[tuple[type[EngineError], int], ...] = (
    (NotFoundError, 404),
    (UnauthorizedError, 403),
    (InvalidRequestError, 400),
    (StateConsistencyError, 409),
    (ExternalDependencyError, 503),
    (ArithmeticOverflowError, 500),
)


@app.on_event("startup")
def on_startup() -> None:
    """Create the ledger tables when the API boots."""

    init_db()


@app.exception_handler(EngineError)
def engine_error_handler(_request: Request, exc: EngineError) -> JSONResponse:
    status_code = next(
        (code for error_type, code in _STATUS_BY_ERROR if isinstance(exc, error_type)),
        500,
    )
    if status_code >= 500:
        logger.error("Engine failure ({}): {}", exc.code, exc.message)
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "error": exc.code})


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


# ----------------------------------------------------------------------
# Dependencies


def _clock() -> int:
    """Ledger time for the current request, in unix seconds."""

    return int(time.time())


def _price_feed() -> Iterator[PriceFeed]:
    with OraclePriceClient() as client:
        yield client


def _query_service(db: Session = Depends(get_db)) -> QueryService:
    return QueryService(db)


def _admin_service(db: Session = Depends(get_db)) -> AdminService:
    return AdminService(db)


def _staking_service(db: Session = Depends(get_db)) -> StakingService:
    return StakingService(db)


def _claim_service(db: Session = Depends(get_db)) -> ClaimService:
    return ClaimService(db)


def _market_service(db: Session = Depends(get_db)) -> OptionMarketService:
    return OptionMarketService(db)


def _scheduler(
    db: Session = Depends(get_db),
    price_feed: PriceFeed = Depends(_price_feed),
) -> RoundScheduler:
    return RoundScheduler(db, price_feed)


Clock = Annotated[int, Depends(_clock)]
StartAfterRound = Annotated[int | None, Query(ge=0, description="Exclusive round id cursor")]
PageLimit = Annotated[int | None, Query(ge=1, description="Page size, capped by the server")]


# ----------------------------------------------------------------------
# Games and administration


@app.get("/games", response_model=list[schemas.Game], tags=["games"])
def list_games(service: QueryService = Depends(_query_service)):
    return service.list_games()


@app.post("/games", response_model=schemas.ExecutionResult, status_code=201, tags=["games"])
def create_game(payload: schemas.GameCreate, now: Clock, service: AdminService = Depends(_admin_service)):
    """Instantiate a new game with its configuration and access list."""

    definition = GameDefinition(
        game_id=payload.game_id,
        kind=payload.kind,
        config=payload.config.to_domain(),
        admins=list(payload.admins),
        assets=dict(payload.assets),
        rotation=list(payload.rotation),
    )
    return schemas.ExecutionResult.from_domain(service.create_game(definition, now))


@app.get("/games/{game_id}", response_model=schemas.Game, tags=["games"])
def get_game(game_id: str, service: QueryService = Depends(_query_service)):
    return service.game(game_id)


@app.get("/games/{game_id}/config", response_model=schemas.GameConfig, tags=["games"])
def get_config(game_id: str, service: QueryService = Depends(_query_service)):
    return schemas.GameConfig.from_domain(service.config(game_id))


@app.put("/games/{game_id}/config", response_model=schemas.ExecutionResult, tags=["admin"])
def update_config(
    game_id: str,
    payload: schemas.ConfigUpdateRequest,
    service: AdminService = Depends(_admin_service),
):
    result = service.update_config(game_id, payload.sender, payload.config.to_domain())
    return schemas.ExecutionResult.from_domain(result)


@app.post("/games/{game_id}/halt", response_model=schemas.ExecutionResult, tags=["admin"])
def halt_game(game_id: str, payload: schemas.SenderRequest, service: AdminService = Depends(_admin_service)):
    return schemas.ExecutionResult.from_domain(service.set_halted(game_id, payload.sender, True))


@app.post("/games/{game_id}/resume", response_model=schemas.ExecutionResult, tags=["admin"])
def resume_game(game_id: str, payload: schemas.SenderRequest, service: AdminService = Depends(_admin_service)):
    return schemas.ExecutionResult.from_domain(service.set_halted(game_id, payload.sender, False))


@app.get("/games/{game_id}/admins", response_model=list[str], tags=["admin"])
def list_admins(game_id: str, service: QueryService = Depends(_query_service)):
    return service.admins(game_id)


@app.post("/games/{game_id}/admins", response_model=schemas.ExecutionResult, tags=["admin"])
def add_admin(
    game_id: str,
    payload: schemas.AdminAddressRequest,
    service: AdminService = Depends(_admin_service),
):
    return schemas.ExecutionResult.from_domain(service.add_admin(game_id, payload.sender, payload.address))


@app.delete("/games/{game_id}/admins/{address}", response_model=schemas.ExecutionResult, tags=["admin"])
def remove_admin(
    game_id: str,
    address: str,
    sender: Annotated[str, Query(min_length=1)],
    service: AdminService = Depends(_admin_service),
):
    return schemas.ExecutionResult.from_domain(service.remove_admin(game_id, sender, address))


@app.put("/games/{game_id}/fee-recipients", response_model=schemas.ExecutionResult, tags=["admin"])
def set_fee_recipients(
    game_id: str,
    payload: schemas.FeeRecipientsRequest,
    service: AdminService = Depends(_admin_service),
):
    recipients = [recipient.to_domain() for recipient in payload.recipients]
    return schemas.ExecutionResult.from_domain(
        service.set_fee_recipients(game_id, payload.sender, recipients)
    )


@app.get("/games/{game_id}/assets", response_model=schemas.AssetList, tags=["admin"])
def list_assets(game_id: str, service: QueryService = Depends(_query_service)):
    return schemas.AssetList(assets=service.assets(game_id), rotation=service.rotation(game_id))


@app.post("/games/{game_id}/assets", response_model=schemas.ExecutionResult, tags=["admin"])
def register_asset(
    game_id: str,
    payload: schemas.AssetRequest,
    service: AdminService = Depends(_admin_service),
):
    return schemas.ExecutionResult.from_domain(
        service.register_asset(game_id, payload.sender, payload.denom, payload.ticker)
    )


@app.put("/games/{game_id}/rotation", response_model=schemas.ExecutionResult, tags=["admin"])
def set_rotation(
    game_id: str,
    payload: schemas.RotationRequest,
    service: AdminService = Depends(_admin_service),
):
    return schemas.ExecutionResult.from_domain(service.set_rotation(game_id, payload.sender, payload.denoms))


# ----------------------------------------------------------------------
# Rounds


@app.get("/games/{game_id}/status", response_model=schemas.GameStatus, tags=["rounds"])
def game_status(game_id: str, now: Clock, service: QueryService = Depends(_query_service)):
    """Snapshot of the bidding and live rounds together with the ledger time."""

    return schemas.GameStatus.model_validate(service.status(game_id, now))


@app.post("/games/{game_id}/advance", response_model=schemas.ExecutionResult, tags=["rounds"])
def advance_rounds(game_id: str, now: Clock, scheduler: RoundScheduler = Depends(_scheduler)):
    return schemas.ExecutionResult.from_domain(scheduler.advance(game_id, now))


@app.get("/games/{game_id}/rounds", response_model=list[schemas.Round], tags=["rounds"])
def list_rounds(
    game_id: str,
    finished: Annotated[bool | None, Query(description="Only finished (true) or open (false) rounds")] = None,
    topic: Annotated[str | None, Query(description="Market topic filter")] = None,
    start_after: StartAfterRound = None,
    limit: PageLimit = None,
    service: QueryService = Depends(_query_service),
):
    return service.list_rounds(game_id, finished=finished, topic=topic, start_after=start_after, limit=limit)


@app.get("/games/{game_id}/rounds/{round_id}", response_model=schemas.Round, tags=["rounds"])
def get_round(game_id: str, round_id: int, service: QueryService = Depends(_query_service)):
    return service.round(game_id, round_id)


@app.post("/games/{game_id}/rounds/{round_id}/cancel", response_model=schemas.ExecutionResult, tags=["admin"])
def cancel_round(
    game_id: str,
    round_id: int,
    payload: schemas.SenderRequest,
    now: Clock,
    scheduler: RoundScheduler = Depends(_scheduler),
):
    return schemas.ExecutionResult.from_domain(scheduler.cancel_round(game_id, payload.sender, round_id, now))


@app.get("/games/{game_id}/rounds/{round_id}/positions", response_model=list[schemas.Position], tags=["rounds"])
def round_positions(
    game_id: str,
    round_id: int,
    start_after: Annotated[str | None, Query(description="Exclusive user cursor")] = None,
    limit: PageLimit = None,
    service: QueryService = Depends(_query_service),
):
    return service.round_positions(game_id, round_id, start_after=start_after, limit=limit)


@app.get("/games/{game_id}/rounds/{round_id}/claims", response_model=list[schemas.ClaimRecord], tags=["claims"])
def round_claims(
    game_id: str,
    round_id: int,
    start_after: Annotated[str | None, Query(description="Exclusive user cursor")] = None,
    limit: PageLimit = None,
    service: QueryService = Depends(_query_service),
):
    return service.claims_by_round(game_id, round_id, start_after=start_after, limit=limit)


# ----------------------------------------------------------------------
# Stakes and claims


@app.post("/games/{game_id}/stakes", response_model=schemas.ExecutionResult, tags=["stakes"])
def place_stake(
    game_id: str,
    payload: schemas.StakeRequest,
    now: Clock,
    service: StakingService = Depends(_staking_service),
):
    """Open or grow a position in the round currently taking stakes."""

    result = service.place_stake(
        game_id,
        payload.round_id,
        payload.user,
        payload.outcome,
        Funds(denom=payload.denom, amount=payload.amount),
        now,
    )
    return schemas.ExecutionResult.from_domain(result)


@app.post("/games/{game_id}/claims", response_model=schemas.ExecutionResult, tags=["claims"])
def claim(
    game_id: str,
    payload: schemas.ClaimRequest,
    now: Clock,
    service: ClaimService = Depends(_claim_service),
):
    """Settle every finished position of a user, or one round when given."""

    if payload.round_id is None:
        result = service.claim_all(game_id, payload.user, now)
    else:
        result = service.claim_round(game_id, payload.user, payload.round_id, now)
    return schemas.ExecutionResult.from_domain(result)


@app.get("/games/{game_id}/users/{user}/positions", response_model=list[schemas.Position], tags=["users"])
def user_positions(
    game_id: str,
    user: str,
    start_after: StartAfterRound = None,
    limit: PageLimit = None,
    service: QueryService = Depends(_query_service),
):
    return service.user_positions(game_id, user, start_after=start_after, limit=limit)


@app.get("/games/{game_id}/users/{user}/current-position", response_model=schemas.CurrentPosition, tags=["users"])
def current_position(game_id: str, user: str, service: QueryService = Depends(_query_service)):
    return schemas.CurrentPosition.model_validate(service.current_position(game_id, user))


@app.get("/games/{game_id}/users/{user}/pending-rewards", response_model=schemas.RoundAmounts, tags=["users"])
def pending_rewards(
    game_id: str,
    user: str,
    topic: Annotated[str | None, Query(description="Market topic filter")] = None,
    start_after: StartAfterRound = None,
    limit: PageLimit = None,
    service: QueryService = Depends(_query_service),
):
    rewards = service.pending_rewards(game_id, user, topic=topic, start_after=start_after, limit=limit)
    return schemas.RoundAmounts.model_validate(rewards)


@app.get(
    "/games/{game_id}/users/{user}/pending-rewards/{round_id}",
    response_model=schemas.SingleAmount,
    tags=["users"],
)
def pending_reward_round(game_id: str, user: str, round_id: int, service: QueryService = Depends(_query_service)):
    return schemas.SingleAmount(amount=service.pending_reward_round(game_id, user, round_id))


@app.get("/games/{game_id}/users/{user}/refundable", response_model=schemas.RoundAmounts, tags=["users"])
def refundable(game_id: str, user: str, service: QueryService = Depends(_query_service)):
    return schemas.RoundAmounts.model_validate(service.refundable(game_id, user))


@app.get("/games/{game_id}/users/{user}/claims", response_model=list[schemas.ClaimRecord], tags=["claims"])
def user_claims(
    game_id: str,
    user: str,
    start_after: StartAfterRound = None,
    limit: PageLimit = None,
    service: QueryService = Depends(_query_service),
):
    return service.claims_by_user(game_id, user, start_after=start_after, limit=limit)


@app.get(
    "/games/{game_id}/users/{user}/claims/{round_id}",
    response_model=schemas.ClaimRecord,
    tags=["claims"],
)
def user_claim(game_id: str, user: str, round_id: int, service: QueryService = Depends(_query_service)):
    return service.claim(game_id, round_id, user)


@app.get("/games/{game_id}/users/{user}/total-spent", response_model=schemas.SingleAmount, tags=["users"])
def total_spent(game_id: str, user: str, service: QueryService = Depends(_query_service)):
    return schemas.SingleAmount(amount=service.total_spent(game_id, user))


# ----------------------------------------------------------------------
# Option markets


@app.post("/games/{game_id}/markets", response_model=schemas.ExecutionResult, status_code=201, tags=["markets"])
def create_market(
    game_id: str,
    payload: schemas.MarketCreateRequest,
    now: Clock,
    service: OptionMarketService = Depends(_market_service),
):
    draft = MarketDraft(
        topic=payload.topic,
        description=payload.description,
        close_time=payload.close_time,
        options=[option.to_domain() for option in payload.options],
        rules=payload.rules,
        img_url=payload.img_url,
        expected_result_time=payload.expected_result_time,
    )
    return schemas.ExecutionResult.from_domain(service.create_market(game_id, payload.sender, draft, now))


@app.patch("/games/{game_id}/markets/{round_id}", response_model=schemas.ExecutionResult, tags=["markets"])
def modify_market(
    game_id: str,
    round_id: int,
    payload: schemas.MarketModifyRequest,
    service: OptionMarketService = Depends(_market_service),
):
    changes = MarketChanges(
        topic=payload.topic,
        description=payload.description,
        rules=payload.rules,
        img_url=payload.img_url,
        close_time=payload.close_time,
        expected_result_time=payload.expected_result_time,
    )
    return schemas.ExecutionResult.from_domain(
        service.modify_market(game_id, payload.sender, round_id, changes)
    )


@app.post("/games/{game_id}/markets/{round_id}/result", response_model=schemas.ExecutionResult, tags=["markets"])
def declare_market_result(
    game_id: str,
    round_id: int,
    payload: schemas.MarketResultRequest,
    now: Clock,
    service: OptionMarketService = Depends(_market_service),
):
    return schemas.ExecutionResult.from_domain(
        service.declare_result(game_id, payload.sender, round_id, payload.option, now)
    )


@app.post("/games/{game_id}/markets/{round_id}/cancel", response_model=schemas.ExecutionResult, tags=["markets"])
def cancel_market(
    game_id: str,
    round_id: int,
    payload: schemas.SenderRequest,
    now: Clock,
    service: OptionMarketService = Depends(_market_service),
):
    return schemas.ExecutionResult.from_domain(service.cancel_market(game_id, payload.sender, round_id, now))
