"""
Operational analytics router.

Wired to:
- BottleneckAnalyzer for the stage bottleneck / heat map analysis
- StatusHistoryBackfillJob for the status history maintenance operation
"""

import asyncio
from datetime import datetime
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from flowlens.auth.dependencies import AuthenticatedUser, require_roles
from flowlens.config import get_settings
from flowlens.engine.backfill import StatusHistoryBackfillJob
from flowlens.engine.bottleneck_analyzer import BottleneckAnalyzer
from flowlens.engine.stages import StagePolicy, load_stage_policy
from flowlens.models.enums import UserRole
from flowlens.storage import OrderRepository, get_order_repository
from flowlens.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


@lru_cache
def get_stage_policy() -> StagePolicy:
    """Stage policy from settings, loaded once per process."""
    return load_stage_policy(get_settings().stage_policy_path)


def get_bottleneck_analyzer(
    repository: OrderRepository = Depends(get_order_repository),
    policy: StagePolicy = Depends(get_stage_policy),
) -> BottleneckAnalyzer:
    return BottleneckAnalyzer.from_settings(repository, get_settings(), policy=policy)


@router.get("/operational-bottlenecks")
async def get_operational_bottlenecks(
    response: Response,
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    resolution: str = Query(default="day"),
    user: AuthenticatedUser = Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER)),
    analyzer: BottleneckAnalyzer = Depends(get_bottleneck_analyzer),
):
    """
    Operational bottleneck analysis for the heat map dashboard.

    Invalid dates or resolutions are corrected by the analyzer; analysis
    failures come back as an empty result with ``metadata.error`` set.
    """
    settings = get_settings()
    logger.info(
        "bottleneck_analysis_requested",
        user_id=user.user_id,
        start_date=start_date,
        end_date=end_date,
        resolution=resolution,
    )

    try:
        result = await asyncio.wait_for(
            run_in_threadpool(analyzer.identify_bottlenecks, start_date, end_date, resolution),
            timeout=settings.analysis_timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.error(
            "bottleneck_analysis_timed_out",
            timeout_seconds=settings.analysis_timeout_seconds,
        )
        return JSONResponse(
            status_code=504,
            content={
                "error": "Analysis failed or timed out",
                "message": f"Analysis exceeded {settings.analysis_timeout_seconds:g} seconds",
            },
        )

    body = result.to_response()
    body["requestMetadata"] = {
        "requestedAt": datetime.utcnow().isoformat(),
        "requestedBy": user.user_id,
        "parameters": {
            "startDate": start_date,
            "endDate": end_date,
            "resolution": resolution,
        },
    }

    response.headers["Cache-Control"] = "private, max-age=300"
    return body


@router.post("/status-history/enhance")
async def enhance_status_history(
    batch_size: Optional[int] = Query(default=None, alias="batchSize", ge=1, le=10000),
    user: AuthenticatedUser = Depends(require_roles(UserRole.ADMIN)),
    repository: OrderRepository = Depends(get_order_repository),
    policy: StagePolicy = Depends(get_stage_policy),
):
    """
    Backfill and persist status history for all stored orders.

    Batches are committed independently; a failed run returns HTTP 500 with
    the report of what was committed before the failure.
    """
    settings = get_settings()
    job = StatusHistoryBackfillJob(
        repository,
        policy=policy,
        batch_size=batch_size or settings.backfill_batch_size,
    )

    logger.info("status_history_enhancement_requested", user_id=user.user_id, batch_size=job.batch_size)
    report = await run_in_threadpool(job.run)
    payload = report.model_dump(mode="json", by_alias=True)

    if not report.success:
        return JSONResponse(status_code=500, content={"success": False, "data": payload})
    return {"success": True, "data": payload}
