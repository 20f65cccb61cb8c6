"""Position ledger access: primary records plus the per-user and per-round indexes."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from roundbet.domain import PositionSnapshot
from roundbet.domain.amounts import checked_add
from roundbet.models import CumulativeSpend, Position


class PositionRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def add(self, game_id: str, round_id: int, user: str, outcome: str, amount: int) -> Position:
        position = Position(
            game_id=game_id,
            round_id=round_id,
            user=user,
            outcome=outcome,
            amount=amount,
        )
        self._session.add(position)
        return position

    def delete(self, position: Position) -> None:
        self._session.delete(position)

    def add_spend(self, game_id: str, user: str, amount: int) -> int:
        record = self._session.get(CumulativeSpend, (game_id, user))
        if record is None:
            record = CumulativeSpend(game_id=game_id, user=user, total_spent=0)
            self._session.add(record)
        record.total_spent = checked_add(record.total_spent, amount)
        return record.total_spent

    # ------------------------------------------------------------------
    # Queries

    def get(self, game_id: str, round_id: int, user: str) -> Position | None:
        return self._session.get(Position, (game_id, round_id, user))

    def for_user(
        self,
        game_id: str,
        user: str,
        *,
        start_after: int | None = None,
        limit: int | None = None,
    ) -> list[Position]:
        """Positions of ``user`` ordered by round id, resumed after ``start_after``."""

        query = select(Position).where(Position.game_id == game_id, Position.user == user)
        if start_after is not None:
            query = query.where(Position.round_id > start_after)
        query = query.order_by(Position.round_id)
        if limit is not None:
            query = query.limit(limit)
        return list(self._session.execute(query).scalars().all())

    def for_round(
        self,
        game_id: str,
        round_id: int,
        *,
        start_after: str | None = None,
        limit: int | None = None,
    ) -> list[Position]:
        query = select(Position).where(Position.game_id == game_id, Position.round_id == round_id)
        if start_after is not None:
            query = query.where(Position.user > start_after)
        query = query.order_by(Position.user)
        if limit is not None:
            query = query.limit(limit)
        return list(self._session.execute(query).scalars().all())

    def total_spent(self, game_id: str, user: str) -> int:
        record = self._session.get(CumulativeSpend, (game_id, user))
        return record.total_spent if record else 0


def snapshot(position: Position) -> PositionSnapshot:
    return PositionSnapshot(
        round_id=position.round_id,
        user=position.user,
        outcome=position.outcome,
        amount=position.amount,
    )
