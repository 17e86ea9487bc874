"""
Dashboard, statistics and chat command routes.

All endpoints are read-only over the sales and snapshot tables.
"""

from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from salewatch.query.commands import CommandInterpreter, build_interpreter
from salewatch.query.service import QueryService

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["query"])


class TotalsResponse(BaseModel):
    group_id: Optional[int] = None
    today: int
    week: int
    month: int


class ChartPoint(BaseModel):
    date: str
    total: int


class ChartResponse(BaseModel):
    group_id: Optional[int] = None
    series: List[ChartPoint]


class ForecastResponse(BaseModel):
    available: bool
    predicted_next: Optional[int] = None
    confidence: Optional[str] = None
    based_on: Optional[str] = None
    moving_average_7: Optional[float] = None
    trend: Optional[float] = None
    volatility: Optional[float] = None


class CommandRequest(BaseModel):
    text: str = Field(min_length=1, max_length=200)


class CommandResponse(BaseModel):
    command: str
    ok: bool
    text: str


def get_query_service(request: Request) -> QueryService:
    service = getattr(request.app.state, "query_service", None)
    return service or QueryService()


def get_interpreter(
    service: QueryService = Depends(get_query_service),
) -> CommandInterpreter:
    return build_interpreter(service)


async def _guarded(coro, event: str):
    try:
        return await coro
    except Exception as exc:
        logger.error(event, error=str(exc), error_type=type(exc).__name__, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Query failed",
        )


@router.get("/dashboard")
async def dashboard(service: QueryService = Depends(get_query_service)) -> List[Dict[str, Any]]:
    """Per-group daily totals."""
    return await _guarded(service.dashboard(), "query.dashboard_failed")


@router.get("/sales/recent")
async def recent_sales(
    limit: int = Query(default=20, ge=1, le=200),
    group_id: Optional[int] = None,
    service: QueryService = Depends(get_query_service),
) -> List[Dict[str, Any]]:
    return await _guarded(
        service.recent_sales(limit=limit, group_id=group_id), "query.recent_failed"
    )


@router.get("/stats/totals", response_model=TotalsResponse)
async def totals(
    group_id: Optional[int] = None, service: QueryService = Depends(get_query_service)
):
    """Totals for today, this week and this month."""
    result = await _guarded(service.totals(group_id), "query.totals_failed")
    return TotalsResponse(group_id=group_id, **result)


@router.get("/stats/chart", response_model=ChartResponse)
async def chart(
    group_id: Optional[int] = None,
    days: int = Query(default=7, ge=1, le=90),
    service: QueryService = Depends(get_query_service),
):
    """Daily totals for the trailing days, zero-filled."""
    series = await _guarded(service.chart(group_id=group_id, days=days), "query.chart_failed")
    return ChartResponse(group_id=group_id, series=[ChartPoint(**p) for p in series])


@router.get("/stats/forecast", response_model=ForecastResponse)
async def forecast(service: QueryService = Depends(get_query_service)):
    """Heuristic next-24h estimate from the latest snapshot."""
    result = await _guarded(service.forecast(), "query.forecast_failed")
    if result is None:
        return ForecastResponse(available=False)
    return ForecastResponse(available=True, **result.to_dict())


@router.get("/stats/anomalies")
async def anomalies(
    limit: int = Query(default=10, ge=1, le=100),
    service: QueryService = Depends(get_query_service),
) -> List[Dict[str, Any]]:
    return await _guarded(service.anomalies(limit=limit), "query.anomalies_failed")


@router.post("/commands", response_model=CommandResponse)
async def run_command(
    body: CommandRequest, interpreter: CommandInterpreter = Depends(get_interpreter)
):
    """Answer a chat command such as ``!today`` or ``chart 10432375``."""
    reply = await interpreter.handle(body.text)
    return CommandResponse(command=reply.command, ok=reply.ok, text=reply.text)
