from __future__ import annotations

import random

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api_service.db.simulated import SimulatedDatabase
from api_service.models.schemas import DataResponse, ErrorResponse
from api_service.observability.metrics import ServiceMetrics
from api_service.services.data_service import Failure, fetch_data


router = APIRouter(prefix="/api", tags=["data"])


def get_service_metrics(request: Request) -> ServiceMetrics:
    return request.app.state.metrics


def get_database(request: Request) -> SimulatedDatabase:
    return request.app.state.database


def get_failure_rng(request: Request) -> random.Random:
    return request.app.state.failure_rng


@router.get(
    "/data",
    response_model=DataResponse,
    responses={500: {"model": ErrorResponse}},
)
async def get_data(
    metrics: ServiceMetrics = Depends(get_service_metrics),
    database: SimulatedDatabase = Depends(get_database),
    rng: random.Random = Depends(get_failure_rng),
) -> DataResponse | JSONResponse:
    outcome = await fetch_data(database, metrics, rng)
    if isinstance(outcome, Failure):
        return JSONResponse(status_code=500, content=ErrorResponse(error=outcome.message).model_dump())
    return DataResponse(**outcome.payload)
