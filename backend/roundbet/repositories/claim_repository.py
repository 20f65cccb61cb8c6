"""Append-only claim history."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from roundbet.models import ClaimRecord


class ClaimRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def record(self, game_id: str, round_id: int, user: str, amount: int, now: int) -> ClaimRecord:
        record = ClaimRecord(
            game_id=game_id,
            round_id=round_id,
            user=user,
            claimed_amount=amount,
            claimed_at=now,
        )
        self._session.add(record)
        return record

    def get(self, game_id: str, round_id: int, user: str) -> ClaimRecord | None:
        return self._session.get(ClaimRecord, (game_id, round_id, user))

    def for_user(
        self,
        game_id: str,
        user: str,
        *,
        start_after: int | None = None,
        limit: int = 10,
    ) -> list[ClaimRecord]:
        query = select(ClaimRecord).where(ClaimRecord.game_id == game_id, ClaimRecord.user == user)
        if start_after is not None:
            query = query.where(ClaimRecord.round_id > start_after)
        query = query.order_by(ClaimRecord.round_id).limit(limit)
        return list(self._session.execute(query).scalars().all())

    def for_round(
        self,
        game_id: str,
        round_id: int,
        *,
        start_after: str | None = None,
        limit: int = 10,
    ) -> list[ClaimRecord]:
        query = select(ClaimRecord).where(
            ClaimRecord.game_id == game_id, ClaimRecord.round_id == round_id
        )
        if start_after is not None:
            query = query.where(ClaimRecord.user > start_after)
        query = query.order_by(ClaimRecord.user).limit(limit)
        return list(self._session.execute(query).scalars().all())
