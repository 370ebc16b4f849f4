from __future__ import annotations

import random
import traceback
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Union

import structlog

from api_service.db.simulated import SimulatedDatabase
from api_service.observability.metrics import API_ERRORS, DATA_ENDPOINT, DB_QUERY_DURATION, ServiceMetrics


FAILURE_RATE = 0.2
SIMULATED_ERROR_MESSAGE = "Simulated error"
OPERATION = "get_data"


@dataclass(frozen=True)
class Success:
    payload: dict[str, Any] = field(default_factory=lambda: {"success": True})


@dataclass(frozen=True)
class Failure:
    message: str
    stack: str | None = None


DataOutcome = Union[Success, Failure]


async def _query(database: SimulatedDatabase, rng: random.Random) -> DataOutcome:
    logger = structlog.get_logger("api")

    delay_ms = await database.query()
    logger.debug(f"Database query completed in {delay_ms}ms", delay_ms=delay_ms)

    if rng.random() < FAILURE_RATE:
        logger.warning("Simulating API error")
        return Failure(SIMULATED_ERROR_MESSAGE, stack="".join(traceback.format_stack(limit=8)))

    return Success()


async def fetch_data(database: SimulatedDatabase, metrics: ServiceMetrics, rng: random.Random) -> DataOutcome:
    """Run one simulated query and record its outcome.

    Exactly one ``db_query_duration_seconds`` sample is recorded per call,
    whichever way it exits; a failure also bumps ``api_errors_total``.
    """

    start = perf_counter()
    succeeded = False
    try:
        try:
            outcome = await _query(database, rng)
        except Exception as exc:
            outcome = Failure(str(exc) or type(exc).__name__, stack=traceback.format_exc())

        if isinstance(outcome, Failure):
            structlog.get_logger("api").error(
                "API error occurred",
                error=outcome.message,
                stack=outcome.stack,
            )
            metrics.increment(API_ERRORS, {"endpoint": DATA_ENDPOINT, "status_code": 500})
        else:
            succeeded = True

        return outcome
    finally:
        elapsed = perf_counter() - start
        metrics.observe(
            DB_QUERY_DURATION,
            {"operation": OPERATION, "success": "true" if succeeded else "false"},
            elapsed,
        )
