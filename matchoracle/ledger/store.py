"""Ledger storage backends. Append-only: insert never replaces an existing row."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import func
from sqlmodel import select

from matchoracle.ledger.records import PredictionLogRecord
from matchoracle.models import PredictionLog

logger = logging.getLogger(__name__)

RECORD_FIELDS = tuple(PredictionLogRecord.__dataclass_fields__)


class LedgerStore(ABC):
    @abstractmethod
    async def insert(self, record: PredictionLogRecord) -> None:
        pass

    @abstractmethod
    async def get_prediction(self, fixture_id: int) -> Optional[PredictionLogRecord]:
        """Most recent record for a fixture."""
        pass

    @abstractmethod
    async def get_recent(self, limit: int = 20) -> list[PredictionLogRecord]:
        """Newest first."""
        pass

    @abstractmethod
    async def count(self) -> int:
        pass


class InMemoryLedgerStore(LedgerStore):
    def __init__(self):
        self._rows: list[PredictionLogRecord] = []

    async def insert(self, record: PredictionLogRecord) -> None:
        self._rows.append(record)

    async def get_prediction(self, fixture_id: int) -> Optional[PredictionLogRecord]:
        for record in reversed(self._rows):
            if record.fixture_id == fixture_id:
                return record
        return None

    async def get_recent(self, limit: int = 20) -> list[PredictionLogRecord]:
        return list(reversed(self._rows))[:limit]

    async def count(self) -> int:
        return len(self._rows)


def _to_row(record: PredictionLogRecord) -> PredictionLog:
    return PredictionLog(**record.to_dict())


def _from_row(row: PredictionLog) -> PredictionLogRecord:
    return PredictionLogRecord(**{name: getattr(row, name) for name in RECORD_FIELDS})


class SQLLedgerStore(LedgerStore):
    """PredictionLog table through an async session factory."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def insert(self, record: PredictionLogRecord) -> None:
        async with self.session_factory() as session:
            session.add(_to_row(record))
            await session.commit()

    async def get_prediction(self, fixture_id: int) -> Optional[PredictionLogRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PredictionLog)
                .where(PredictionLog.fixture_id == fixture_id)
                .order_by(PredictionLog.id.desc())
                .limit(1)
            )
            row = result.scalars().first()
        return _from_row(row) if row else None

    async def get_recent(self, limit: int = 20) -> list[PredictionLogRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PredictionLog).order_by(PredictionLog.id.desc()).limit(limit)
            )
            rows = result.scalars().all()
        return [_from_row(row) for row in rows]

    async def count(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count()).select_from(PredictionLog))
            return int(result.scalar_one())
