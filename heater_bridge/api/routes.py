from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response

from ..services.metrics import HeaterMetrics

logger = logging.getLogger(__name__)

router = APIRouter()


# Overridden in main via app.dependency_overrides
def get_metrics() -> HeaterMetrics:
    raise RuntimeError("Metrics dependency not configured")


@router.get("/metrics")
async def metrics(m: HeaterMetrics = Depends(get_metrics)):
    body, content_type = m.render()
    return Response(content=body, media_type=content_type)
