"""
Scheduler API routes.

Status of the timers plus manual poll and aggregation triggers.
"""

from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel

from salewatch.scheduler.service import Scheduler

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["scheduler"])


class PollResponse(BaseModel):
    runs: List[Dict[str, Any]]


class AggregateResponse(BaseModel):
    status: str
    details: Dict[str, Any]


def get_scheduler(request: Request) -> Scheduler:
    scheduler: Optional[Scheduler] = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scheduler not initialised",
        )
    return scheduler


@router.get("/status")
async def get_status(scheduler: Scheduler = Depends(get_scheduler)) -> Dict[str, Any]:
    """Timers, in-flight markers and recent poll runs."""
    return scheduler.get_status()


@router.post("/poll", response_model=PollResponse)
async def trigger_poll(
    group_id: Optional[int] = None, scheduler: Scheduler = Depends(get_scheduler)
):
    """
    Poll now, one partition or all of them.

    Partitions already being polled report ``skipped``.
    """
    if group_id is not None:
        if group_id not in scheduler.poller.config.group_ids:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Group {group_id} is not configured",
            )
        runs = [await scheduler.poller.poll_partition(group_id)]
    else:
        runs = await scheduler.poller.poll_all()
    return PollResponse(runs=runs)


@router.post("/aggregate", response_model=AggregateResponse)
async def trigger_aggregate(scheduler: Scheduler = Depends(get_scheduler)):
    """Recompute the daily snapshot now."""
    result = await scheduler.run_aggregation()
    if result.get("status") == "failed":
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Aggregation failed",
        )
    return AggregateResponse(status=result["status"], details=result)
