#!/usr/bin/env python3
"""
Run one Oracle analysis and print it as JSON.

Usage:
  source .env
  python scripts/run_oracle.py --league 88 --season 2025 --home 50 --away 42 [--fixture 1234]
  python scripts/run_oracle.py ... --adjusted          # context-adjusted variant
  python scripts/run_oracle.py ... --no-db             # keep the ledger in memory
  python scripts/run_oracle.py ... --metrics           # dump Prometheus counters after the run
"""
import argparse
import asyncio
import json
import logging

from matchoracle.config import get_settings
from matchoracle.database import close_db, create_engine_for, create_session_factory, init_db
from matchoracle.etl.api_football import APIFootballProvider
from matchoracle.ledger import InMemoryLedgerStore, PredictionLedger, SQLLedgerStore
from matchoracle.oracle import OracleService
from matchoracle.telemetry import get_metrics_text

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def main(args):
    engine = None
    if args.no_db:
        store = InMemoryLedgerStore()
    else:
        engine = create_engine_for(settings.DATABASE_URL)
        await init_db(engine)
        store = SQLLedgerStore(create_session_factory(engine))

    service = OracleService(
        provider=APIFootballProvider(),
        ledger=PredictionLedger(store, max_queue_size=settings.LEDGER_QUEUE_MAXSIZE),
        settings=settings,
    )
    try:
        if args.adjusted:
            analysis = await service.get_context_adjusted_oracle_analysis(
                args.league, args.season, args.home, args.away, args.fixture, args.force_refresh
            )
        else:
            analysis = await service.get_oracle_analysis(
                args.league, args.season, args.home, args.away, args.fixture, args.force_refresh
            )
        print(json.dumps(analysis.to_dict(), indent=2, default=str))
        if args.metrics:
            print(get_metrics_text()[0])
    finally:
        await service.aclose()
        if service.ledger.queue.errors:
            logger.error(f"{len(service.ledger.queue.errors)} ledger write(s) failed")
        if engine is not None:
            await close_db(engine)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run an Oracle match analysis")
    parser.add_argument("--league", type=int, required=True, help="League ID")
    parser.add_argument("--season", type=int, required=True, help="Season year")
    parser.add_argument("--home", type=int, required=True, help="Home team ID")
    parser.add_argument("--away", type=int, required=True, help="Away team ID")
    parser.add_argument("--fixture", type=int, default=None, help="Fixture ID (optional)")
    parser.add_argument("--adjusted", action="store_true", help="Apply the bias-corrected adjuster")
    parser.add_argument("--force-refresh", action="store_true", help="Bypass the LLMGRADE cache")
    parser.add_argument("--no-db", action="store_true", help="Keep the ledger in memory")
    parser.add_argument("--metrics", action="store_true", help="Print Prometheus metrics after the run")
    asyncio.run(main(parser.parse_args()))
