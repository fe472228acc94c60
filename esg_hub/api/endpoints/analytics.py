from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from esg_hub.core import models
from esg_hub.core.database import get_db
from esg_hub.core.security import get_current_user
from esg_hub.core.assistant import analytics

router = APIRouter(prefix="/analytics", tags=["Analytics"])

db_dep = Annotated[AsyncSession, Depends(get_db)]
user_dep = Annotated[models.User, Depends(get_current_user)]

TREND_METRICS = "^(emissions|goals|tasks|licenses|risks|non_conformities|employees)$"


@router.get("/trends")
async def get_trends(
    current_user: user_dep,
    db: db_dep,
    metric: Annotated[str, Query(pattern=TREND_METRICS)],
    period: str = "last_90_days",
    group_by: Annotated[str, Query(pattern="^(day|week|month|quarter)$")] = "month",
):
    """Bucketed time series of a metric with its trend direction."""
    return await analytics.analyze_trends(
        metric, period, group_by, current_user.company_id, db
    )


@router.get("/compare")
async def compare(
    current_user: user_dep,
    db: db_dep,
    metric: Annotated[
        str, Query(pattern="^(emissions|goals_progress|task_completion|license_compliance)$")
    ],
    current_period: str,
    previous_period: str,
):
    """
    Compare a metric between two periods.
    Periods look like 2025, 2025-03 or Q1-2025.
    """
    try:
        return await analytics.compare_periods(
            metric, current_period, previous_period, current_user.company_id, db
        )
    except ValueError as error:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(error)
        )


@router.get("/forecast")
async def get_forecast(
    current_user: user_dep,
    db: db_dep,
    metric: Annotated[
        str, Query(pattern="^(emissions|goal_achievement|task_completion_rate)$")
    ],
    forecast_period: str = "next_month",
    include_confidence: bool = False,
):
    return await analytics.predict_future_metrics(
        metric, forecast_period, include_confidence, current_user.company_id, db
    )


@router.get("/correlations")
async def get_correlations(
    current_user: user_dep,
    db: db_dep,
    metrics: Annotated[List[str], Query()],
    period: str = "last_year",
):
    metrics = list(dict.fromkeys(metrics))
    if len(metrics) < 2:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="At least 2 metrics are required for correlation analysis",
        )

    try:
        return await analytics.analyze_correlations(
            metrics, period, current_user.company_id, db
        )
    except ValueError as error:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(error)
        )
