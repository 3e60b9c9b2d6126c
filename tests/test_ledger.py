"""
Prediction ledger: record validation, stores, write queue and service.
"""

import asyncio

import pytest
from sqlalchemy.dialects import postgresql

from matchoracle.analysis import OracleAnalysis
from matchoracle.database import close_db, create_engine_for, create_session_factory, get_database_url, init_db
from matchoracle.ledger import (
    InMemoryLedgerStore,
    LedgerQueue,
    LedgerValidationError,
    PredictionLedger,
    PredictionLogRecord,
    SQLLedgerStore,
)
from matchoracle.llm.enhancement import LLMGradeEnhancement
from matchoracle.ml.tesseract import TesseractResult
from matchoracle.models import PredictionLog
from matchoracle.trinity.context import SimulationContext

HOME, AWAY = 50, 42


def make_record(**overrides) -> PredictionLogRecord:
    values = dict(
        fixture_id=1234,
        home_team_id=HOME,
        away_team_id=AWAY,
        match_name="Ajax vs PSV",
        predicted_score="2-1",
        home_prob=0.5,
        draw_prob=0.3,
        away_prob=0.2,
        home_fitness=80,
        home_distraction=20,
        timestamp=1_700_000_000_000,
    )
    values.update(overrides)
    return PredictionLogRecord(**values)


def make_analysis(prediction="2-1", tesseract=True, grade=False) -> OracleAnalysis:
    return OracleAnalysis(
        home_power_score=120,
        away_power_score=100,
        prediction=prediction,
        confidence=70,
        reasoning="test",
        tesseract=TesseractResult(0.5, 0.3, 0.2, "1-0") if tesseract else None,
        simulation_context=SimulationContext(home_fitness=80, home_distraction=20),
        llm_grade_enhancement=LLMGradeEnhancement() if grade else None,
    )


class TestRecordValidation:
    def test_valid_record(self):
        record = make_record()
        assert record.formatted_prediction() == "Ajax vs PSV: 2-1 (50% / 30% / 20%)"
        assert record.is_home_favorite
        assert not record.is_away_favorite
        assert record.is_draw_likely

    @pytest.mark.parametrize(
        "overrides,fragment",
        [
            ({"fixture_id": 0}, "fixture_id"),
            ({"fixture_id": -5}, "fixture_id"),
            ({"match_name": "  "}, "match_name"),
            ({"predicted_score": "21"}, "predicted_score"),
            ({"predicted_score": "Error"}, "predicted_score"),
            ({"home_prob": 0.5, "draw_prob": 0.5, "away_prob": 0.5}, "sum"),
            ({"away_prob": -0.1, "home_prob": 0.8}, "away_prob"),
            ({"home_fitness": 150}, "home_fitness"),
            ({"home_distraction": -1}, "home_distraction"),
            ({"llm_grade_context_score": 11.0}, "llm_grade_context_score"),
            ({"timestamp": 0}, "timestamp"),
        ],
    )
    def test_invalid_records_are_rejected(self, overrides, fragment):
        with pytest.raises(LedgerValidationError) as excinfo:
            make_record(**overrides)
        assert any(fragment in v for v in excinfo.value.violations)

    def test_all_violations_reported(self):
        with pytest.raises(LedgerValidationError) as excinfo:
            make_record(fixture_id=0, predicted_score="21", home_fitness=150)
        assert len(excinfo.value.violations) == 3
        assert excinfo.value.values["home_fitness"] == 150

    def test_probability_sum_tolerance(self):
        make_record(home_prob=0.45, draw_prob=0.3, away_prob=0.2)
        make_record(home_prob=0.55, draw_prob=0.3, away_prob=0.2)


class TestFromAnalysis:
    def test_real_fixture(self):
        record = PredictionLogRecord.from_analysis(make_analysis(grade=True), HOME, AWAY, "Ajax vs PSV", 1234)
        assert record.fixture_id == 1234
        assert (record.home_prob, record.draw_prob, record.away_prob) == (0.5, 0.3, 0.2)
        assert (record.home_fitness, record.home_distraction) == (80, 20)
        assert record.llm_grade_context_score == 5.0
        assert record.llm_grade_risk_level == "LOW"
        assert record.timestamp > 0

    def test_synthetic_fixture_id(self):
        record = PredictionLogRecord.from_analysis(make_analysis(), HOME, AWAY, "Ajax vs PSV")
        assert record.fixture_id == 5_000_042
        assert record.llm_grade_context_score is None

    def test_even_split_without_simulation(self):
        record = PredictionLogRecord.from_analysis(make_analysis(tesseract=False), HOME, AWAY, "A vs B", 1)
        assert record.home_prob == pytest.approx(1 / 3)
        assert record.draw_percentage == 33

    def test_error_analysis_is_rejected(self):
        with pytest.raises(LedgerValidationError):
            PredictionLogRecord.from_analysis(OracleAnalysis.error("boom"), HOME, AWAY, "A vs B", 1)


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_append_only_queries(self):
        store = InMemoryLedgerStore()
        await store.insert(make_record(fixture_id=1, predicted_score="1-0"))
        await store.insert(make_record(fixture_id=2))
        await store.insert(make_record(fixture_id=1, predicted_score="2-0"))

        assert await store.count() == 3
        assert (await store.get_prediction(1)).predicted_score == "2-0"
        assert await store.get_prediction(99) is None
        assert [r.fixture_id for r in await store.get_recent(2)] == [1, 2]


class TestSQLStore:
    def test_database_url_conversion(self):
        assert get_database_url("sqlite:///./x.db") == "sqlite+aiosqlite:///./x.db"
        assert get_database_url("postgres://u@h/db") == "postgresql+asyncpg://u@h/db"
        assert get_database_url("postgresql://u@h/db") == "postgresql+asyncpg://u@h/db"

    def test_column_types_fit_the_values(self):
        timestamp = PredictionLog.__table__.c.timestamp
        created_at = PredictionLog.__table__.c.created_at

        assert timestamp.type.compile(dialect=postgresql.dialect()) == "BIGINT"
        assert created_at.type.timezone
        assert PredictionLog(**make_record().to_dict()).created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_round_trip_through_sqlite(self):
        engine = create_engine_for("sqlite:///:memory:")
        try:
            await init_db(engine)
            store = SQLLedgerStore(create_session_factory(engine))

            await store.insert(make_record(fixture_id=7, predicted_score="1-1"))
            await store.insert(make_record(fixture_id=7, predicted_score="2-1", llm_grade_context_score=6.5))

            latest = await store.get_prediction(7)
            assert latest.predicted_score == "2-1"
            assert latest.llm_grade_context_score == 6.5
            assert latest.actual_score is None
            assert await store.count() == 2
            assert [r.predicted_score for r in await store.get_recent()] == ["2-1", "1-1"]
        finally:
            await close_db(engine)


class TestLedgerQueue:
    @pytest.mark.asyncio
    async def test_full_queue_drops(self):
        queue = LedgerQueue(handler=lambda item: asyncio.sleep(0), max_queue_size=1)
        assert queue.put_nowait("a")
        assert not queue.put_nowait("b")
        assert queue.pending == 1

    @pytest.mark.asyncio
    async def test_failures_land_on_error_channel(self):
        handled = []

        async def handler(item):
            if item == "bad":
                raise RuntimeError("store down")
            handled.append(item)

        queue = LedgerQueue(handler)
        await queue.start()
        for item in ("a", "bad", "b"):
            queue.put_nowait(item)
        await queue.join()
        await queue.stop()

        assert handled == ["a", "b"]
        assert queue.processed == 2
        assert [(item, str(e)) for item, e in queue.errors] == [("bad", "store down")]
        assert not queue.running


class TestPredictionLedger:
    @pytest.mark.asyncio
    async def test_record_ok(self):
        ledger = PredictionLedger()
        result = await ledger.record(make_analysis(), HOME, AWAY, "Ajax vs PSV", 1234)
        assert result.ok
        assert result.record.fixture_id == 1234
        assert await ledger.store.count() == 1

    @pytest.mark.asyncio
    async def test_record_invalid_fails_the_write(self):
        ledger = PredictionLedger()
        result = await ledger.record(make_analysis(prediction="21"), HOME, AWAY, "Ajax vs PSV", 1234)
        assert not result.ok
        assert "predicted_score" in result.error
        assert await ledger.store.count() == 0

    @pytest.mark.asyncio
    async def test_record_store_failure(self):
        class BrokenStore(InMemoryLedgerStore):
            async def insert(self, record):
                raise RuntimeError("disk full")

        result = await PredictionLedger(store=BrokenStore()).record(make_analysis(), HOME, AWAY, "A vs B", 1)
        assert not result.ok
        assert result.error == "disk full"

    @pytest.mark.asyncio
    async def test_submit_is_fire_and_forget(self):
        ledger = PredictionLedger()
        try:
            assert await ledger.submit(make_analysis(), HOME, AWAY, "Ajax vs PSV", 1234)
            assert not await ledger.submit(make_analysis(prediction="bad"), HOME, AWAY, "Ajax vs PSV", 1234)
            await ledger.flush()

            assert await ledger.store.count() == 1
            assert len(ledger.queue.errors) == 1
            assert isinstance(ledger.queue.errors[0][1], LedgerValidationError)
        finally:
            await ledger.close()

    @pytest.mark.asyncio
    async def test_submit_snapshots_the_analysis(self):
        """Changes made to the analysis after submit() do not reach the stored record."""
        ledger = PredictionLedger()
        analysis = make_analysis(prediction="3-0")
        try:
            assert await ledger.submit(analysis, HOME, AWAY, "Ajax vs PSV", 1234)
            analysis.prediction = "Home win"
            await ledger.flush()

            assert (await ledger.store.get_prediction(1234)).predicted_score == "3-0"
            assert ledger.queue.errors == []
        finally:
            await ledger.close()

    @pytest.mark.asyncio
    async def test_store_failure_from_queue_lands_on_error_channel(self):
        class BrokenStore(InMemoryLedgerStore):
            async def insert(self, record):
                raise RuntimeError("disk full")

        ledger = PredictionLedger(store=BrokenStore())
        try:
            assert await ledger.submit(make_analysis(), HOME, AWAY, "Ajax vs PSV", 1234)
            await ledger.flush()

            record, error = ledger.queue.errors[0]
            assert isinstance(record, PredictionLogRecord)
            assert str(error) == "disk full"
        finally:
            await ledger.close()
