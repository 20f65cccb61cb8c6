"""Round persistence and round-level listings."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from roundbet.domain import OutcomeOption, RoundSnapshot, RoundStatus
from roundbet.errors import RoundNotFoundError
from roundbet.models import Round, RoundOutcome


class RoundRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def create(
        self,
        game_id: str,
        round_id: int,
        *,
        bid_time: int,
        open_time: int,
        close_time: int,
        outcomes: Sequence[OutcomeOption],
        **attributes,
    ) -> Round:
        round_ = Round(
            game_id=game_id,
            round_id=round_id,
            status=RoundStatus.BIDDING.value,
            bid_time=bid_time,
            open_time=open_time,
            close_time=close_time,
            **attributes,
        )
        for ordinal, option in enumerate(outcomes):
            round_.outcomes.append(
                RoundOutcome(
                    game_id=game_id,
                    key=option.key,
                    title=option.title,
                    img_url=option.img_url,
                    ordinal=ordinal,
                    total=0,
                )
            )
        self._session.add(round_)
        self._session.flush()
        return round_

    def finish(self, round_: Round, *, winner: str | None, now: int, cancelled: bool = False) -> None:
        round_.status = RoundStatus.FINISHED.value
        round_.winner = winner
        round_.cancelled = cancelled
        round_.finished_at = now

    # ------------------------------------------------------------------
    # Queries

    def get(self, game_id: str, round_id: int) -> Round | None:
        return self._session.get(Round, (game_id, round_id))

    def require(self, game_id: str, round_id: int) -> Round:
        round_ = self.get(game_id, round_id)
        if round_ is None:
            raise RoundNotFoundError(round_id)
        return round_

    def list_rounds(
        self,
        game_id: str,
        *,
        statuses: Sequence[RoundStatus] | None = None,
        topic: str | None = None,
        start_after: int | None = None,
        limit: int = 10,
    ) -> list[Round]:
        query = select(Round).options(selectinload(Round.outcomes)).where(Round.game_id == game_id)
        if statuses:
            query = query.where(Round.status.in_([status.value for status in statuses]))
        if topic:
            query = query.where(Round.topic == topic)
        if start_after is not None:
            query = query.where(Round.round_id > start_after)
        query = query.order_by(Round.round_id.asc()).limit(limit)
        return list(self._session.execute(query).scalars().all())


def snapshot(round_: Round) -> RoundSnapshot:
    return RoundSnapshot(
        round_id=round_.round_id,
        status=RoundStatus(round_.status),
        outcome_totals={outcome.key: outcome.total for outcome in round_.outcomes},
        winner=round_.winner,
        cancelled=round_.cancelled,
    )
