from matchoracle.ledger.queue import LedgerQueue
from matchoracle.ledger.records import LedgerValidationError, LedgerWriteResult, PredictionLogRecord
from matchoracle.ledger.service import LedgerSubmission, PredictionLedger
from matchoracle.ledger.store import InMemoryLedgerStore, LedgerStore, SQLLedgerStore

__all__ = [
    "InMemoryLedgerStore",
    "LedgerQueue",
    "LedgerStore",
    "LedgerSubmission",
    "LedgerValidationError",
    "LedgerWriteResult",
    "PredictionLedger",
    "PredictionLogRecord",
    "SQLLedgerStore",
]
