from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from api_service.api.data import get_service_metrics
from api_service.observability.metrics import ServiceMetrics


router = APIRouter(tags=["metrics"])


@router.get("/metrics")
async def metrics(service_metrics: ServiceMetrics = Depends(get_service_metrics)) -> Response:
    return Response(service_metrics.render(), media_type=service_metrics.content_type)
