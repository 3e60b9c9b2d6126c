"""
Prediction ledger.

Two entry points, one policy: every record is validated on construction
and an invalid one is rejected (logged with its offending values and
counted), never patched with a default.

    record()  direct call, returns LedgerWriteResult
    submit()  fire-and-forget; the record is built and validated before
              returning, only the frozen record is queued. Rejections and
              store failures land on queue.errors
"""

import logging
from dataclasses import dataclass
from typing import Optional

from matchoracle.ledger.queue import LedgerQueue
from matchoracle.ledger.records import LedgerValidationError, LedgerWriteResult, PredictionLogRecord
from matchoracle.ledger.store import InMemoryLedgerStore, LedgerStore
from matchoracle.telemetry import record_ledger_write

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerSubmission:
    """One analysis to turn into a ledger record."""

    analysis: object
    home_team_id: int
    away_team_id: int
    match_name: str
    fixture_id: Optional[int] = None

    def __repr__(self) -> str:
        return (
            f"LedgerSubmission(fixture={self.fixture_id}, {self.match_name!r}, "
            f"prediction={getattr(self.analysis, 'prediction', None)!r})"
        )


class PredictionLedger:
    def __init__(self, store: Optional[LedgerStore] = None, max_queue_size: int = 1000):
        self.store = store if store is not None else InMemoryLedgerStore()
        self.queue = LedgerQueue(self._store_record, max_queue_size=max_queue_size)

    def _build(self, submission: LedgerSubmission) -> PredictionLogRecord:
        try:
            return PredictionLogRecord.from_analysis(
                submission.analysis,
                home_team_id=submission.home_team_id,
                away_team_id=submission.away_team_id,
                match_name=submission.match_name,
                fixture_id=submission.fixture_id,
            )
        except LedgerValidationError as e:
            logger.error(f"[LEDGER] Rejected {submission!r}: {e} (values={e.values})")
            record_ledger_write("invalid")
            raise

    async def _store_record(self, record: PredictionLogRecord) -> None:
        try:
            await self.store.insert(record)
        except Exception:
            record_ledger_write("error")
            raise

        record_ledger_write("ok")
        logger.info(f"[LEDGER] Logged {record.formatted_prediction()} fixture={record.fixture_id}")

    async def record(
        self,
        analysis,
        home_team_id: int,
        away_team_id: int,
        match_name: str,
        fixture_id: Optional[int] = None,
    ) -> LedgerWriteResult:
        submission = LedgerSubmission(analysis, home_team_id, away_team_id, match_name, fixture_id)
        try:
            record = self._build(submission)
        except LedgerValidationError as e:
            return LedgerWriteResult(ok=False, error=str(e))
        try:
            await self._store_record(record)
        except Exception as e:
            logger.error(f"[LEDGER] Store failed for {submission!r}: {e}")
            return LedgerWriteResult(ok=False, error=str(e))
        return LedgerWriteResult(ok=True, record=record)

    async def submit(
        self,
        analysis,
        home_team_id: int,
        away_team_id: int,
        match_name: str,
        fixture_id: Optional[int] = None,
    ) -> bool:
        """
        Validate now, write in the background.

        Returns True once the record is queued; False if it was rejected
        or the queue dropped it. Later changes to analysis do not reach
        the queued record.
        """
        submission = LedgerSubmission(analysis, home_team_id, away_team_id, match_name, fixture_id)
        try:
            record = self._build(submission)
        except LedgerValidationError as e:
            self.queue.report_error(submission, e)
            return False

        if not self.queue.running:
            await self.queue.start()
        return self.queue.put_nowait(record)

    async def flush(self) -> None:
        if self.queue.running:
            await self.queue.join()

    async def close(self) -> None:
        await self.queue.stop()
