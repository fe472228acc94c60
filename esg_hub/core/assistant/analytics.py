import math
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_

from esg_hub.core import models


# -----------------------------------------------------------------------------
# ANALYTICS MODULE
# Purpose: time-series aggregation, period comparison, linear forecasting and
# correlation over data pulled from the store.
# Plain textbook formulas; no outlier handling or seasonality.
# -----------------------------------------------------------------------------


@dataclass
class TrendPoint:
    period: str
    value: float
    change: Optional[float] = None
    percent_change: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "value": round(self.value, 4),
            "change": None if self.change is None else round(self.change, 4),
            "percent_change": None
            if self.percent_change is None
            else round(self.percent_change, 2),
        }


@dataclass
class PeriodBounds:
    start: date
    end: date
    label: str = ""


# =========================
# Periods and buckets
# =========================
PERIOD_DAYS = {
    "last_30_days": 30,
    "last_90_days": 90,
    "last_6_months": 180,
    "last_year": 365,
}

FORECAST_OFFSETS = {
    "next_month": 1,
    "next_quarter": 3,
    "next_6_months": 6,
    "next_year": 12,
}


def period_range(period: str, today: Optional[date] = None) -> PeriodBounds:
    """
    Translate a named window into dates.
    Unknown names fall back to the last 90 days.
    """
    today = today or date.today()
    if period == "year_to_date":
        return PeriodBounds(start=date(today.year, 1, 1), end=today, label=period)

    days = PERIOD_DAYS.get(period, 90)
    return PeriodBounds(start=today - timedelta(days=days), end=today, label=period)


def period_key(day: date, group_by: str) -> str:
    """
    Bucket label for a date.

    Example:
        period_key(date(2025, 5, 14), "quarter") -> "2025-Q2"
    """
    if group_by == "week":
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if group_by == "month":
        return f"{day.year}-{day.month:02d}"
    if group_by == "quarter":
        return f"{day.year}-Q{(day.month - 1) // 3 + 1}"
    return day.isoformat()


def aggregate_by_period(
    points: Iterable[Tuple[date, float]], group_by: str, how: str = "mean"
) -> List[TrendPoint]:
    """
    Group (date, value) pairs into buckets and compute change vs the previous bucket.

    Args:
        points: (date, value) pairs, any order
        group_by: day / week / month / quarter
        how: mean, sum or count per bucket

    Returns:
        Trend points sorted by bucket label
    """
    grouped: Dict[str, List[float]] = {}
    for day, value in points:
        if day is None:
            continue
        grouped.setdefault(period_key(day, group_by), []).append(float(value or 0))

    result: List[TrendPoint] = []
    previous: Optional[float] = None
    for key in sorted(grouped):
        values = grouped[key]
        if how == "sum":
            value = sum(values)
        elif how == "count":
            value = float(len(values))
        else:
            value = sum(values) / len(values)

        point = TrendPoint(period=key, value=value)
        if previous is not None:
            point.change = value - previous
            point.percent_change = (point.change / previous) * 100 if previous else None
        result.append(point)
        previous = value

    return result


def analyze_trend_pattern(points: Sequence[TrendPoint]) -> Dict[str, Any]:
    """Direction and velocity (mean change per bucket) of a trend."""
    if len(points) < 2:
        return {
            "direction": "insufficient_data",
            "velocity": 0,
            "total_change": 0,
            "percent_change": 0,
            "summary": "Not enough data to identify a trend",
        }

    first = points[0].value
    last = points[-1].value
    total_change = last - first
    percent_change = (total_change / first) * 100 if first else (100.0 if total_change else 0.0)

    changes = [p.change or 0 for p in points[1:]]
    velocity = sum(changes) / len(changes)

    if abs(percent_change) < 5:
        direction = "stable"
    elif percent_change > 0:
        direction = "increasing"
    else:
        direction = "decreasing"

    return {
        "direction": direction,
        "velocity": round(velocity, 2),
        "total_change": round(total_change, 2),
        "percent_change": round(percent_change, 2),
        "summary": f"{direction.capitalize()} trend with {abs(round(percent_change))}% variation",
    }


def month_grid(months: int, today: Optional[date] = None) -> List[str]:
    """Labels of the last N months, oldest first, current month included."""
    today = today or date.today()
    year, month = today.year, today.month
    labels = []
    for _ in range(months):
        labels.append(f"{year}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(labels))


def months_back_start(months: int, today: Optional[date] = None) -> date:
    first_label = month_grid(months, today)[0]
    year, month = first_label.split("-")
    return date(int(year), int(month), 1)


def fill_monthly(points: Sequence[TrendPoint], grid: Sequence[str]) -> List[float]:
    by_period = {p.period: p.value for p in points}
    return [by_period.get(label, 0.0) for label in grid]


# =========================
# Period comparison
# =========================
def parse_period(label: str) -> PeriodBounds:
    """
    Parse '2025', '2025-03', 'Q1-2025' or '2025-Q1' into date bounds.

    Raises:
        ValueError: label matches none of the formats
    """
    text = (label or "").strip().upper()

    if text.startswith("Q") and "-" in text:
        quarter_part, year_part = text.split("-", 1)
        return _quarter_bounds(int(year_part), int(quarter_part[1:]), label)

    if "-Q" in text:
        year_part, quarter_part = text.split("-Q", 1)
        return _quarter_bounds(int(year_part), int(quarter_part), label)

    if len(text) == 7 and text[4] == "-":
        year, month = int(text[:4]), int(text[5:])
        if not 1 <= month <= 12:
            raise ValueError(f"Invalid month in period: {label}")
        start = date(year, month, 1)
        end = date(year + (month == 12), month % 12 + 1, 1) - timedelta(days=1)
        return PeriodBounds(start=start, end=end, label=label)

    if len(text) == 4 and text.isdigit():
        year = int(text)
        return PeriodBounds(start=date(year, 1, 1), end=date(year, 12, 31), label=label)

    raise ValueError(f"Unrecognized period: {label}")


def _quarter_bounds(year: int, quarter: int, label: str) -> PeriodBounds:
    if not 1 <= quarter <= 4:
        raise ValueError(f"Invalid quarter in period: {label}")
    start = date(year, 3 * (quarter - 1) + 1, 1)
    end_month = 3 * quarter
    end = date(year + (end_month == 12), end_month % 12 + 1, 1) - timedelta(days=1)
    return PeriodBounds(start=start, end=end, label=label)


def compare_values(current: float, previous: float) -> Dict[str, Any]:
    change = current - previous
    percent_change = (change / previous) * 100 if previous else 0
    if change > 0:
        direction = "increase"
    elif change < 0:
        direction = "decrease"
    else:
        direction = "stable"
    return {
        "absolute_change": round(change, 4),
        "percent_change": round(percent_change, 2),
        "direction": direction,
    }


# =========================
# Regression and correlation
# =========================
def linear_regression(values: Sequence[float]) -> Tuple[float, float]:
    """
    Ordinary least squares over x = 0..n-1.

    Returns:
        (slope, intercept). A single point gives a flat line through it.
    """
    n = len(values)
    if n == 0:
        return 0.0, 0.0
    if n == 1:
        return 0.0, float(values[0])

    mean_x = (n - 1) / 2
    mean_y = sum(values) / n
    sxy = sum((i - mean_x) * (y - mean_y) for i, y in enumerate(values))
    sxx = sum((i - mean_x) ** 2 for i in range(n))

    slope = sxy / sxx
    intercept = mean_y - slope * mean_x
    return slope, intercept


def forecast(values: Sequence[float], periods_ahead: int) -> Dict[str, Any]:
    """
    Extend the regression line periods_ahead steps past the last observation.
    Negative predictions are floored at zero.
    """
    if len(values) < 2:
        return {"value": 0.0, "trend": "insufficient_data", "slope": 0.0, "intercept": 0.0}

    slope, intercept = linear_regression(values)
    x = len(values) - 1 + periods_ahead
    predicted = max(0.0, slope * x + intercept)

    if slope > 0:
        trend = "increasing"
    elif slope < 0:
        trend = "decreasing"
    else:
        trend = "stable"

    return {
        "value": round(predicted, 2),
        "trend": trend,
        "slope": slope,
        "intercept": intercept,
    }


def confidence_interval(values: Sequence[float], predicted: float) -> Dict[str, float]:
    """Informal 95% band: prediction ± 1.96 population std dev of the history."""
    if not values:
        return {"lower": predicted, "upper": predicted, "level": 0.95}

    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    std_dev = math.sqrt(variance)

    return {
        "lower": max(0.0, round(predicted - 1.96 * std_dev, 2)),
        "upper": round(predicted + 1.96 * std_dev, 2),
        "level": 0.95,
    }


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson r over the common prefix of both series; 0 when undefined."""
    n = min(len(x), len(y))
    if n == 0:
        return 0.0
    x, y = x[:n], y[:n]

    sum_x = sum(x)
    sum_y = sum(y)
    sum_xy = sum(a * b for a, b in zip(x, y))
    sum_x2 = sum(a * a for a in x)
    sum_y2 = sum(b * b for b in y)

    numerator = n * sum_xy - sum_x * sum_y
    denominator = math.sqrt(max(0.0, (n * sum_x2 - sum_x**2) * (n * sum_y2 - sum_y**2)))

    return 0.0 if denominator == 0 else numerator / denominator


def correlation_strength(r: float) -> str:
    magnitude = abs(r)
    if magnitude > 0.7:
        return "strong"
    if magnitude > 0.4:
        return "moderate"
    if magnitude > 0.2:
        return "weak"
    return "very_weak"


# A pace needs some history before it is extrapolated
MIN_PACE_DAYS = 30
AT_RISK_PROGRESS = 50
DEADLINE_WINDOW_DAYS = 90


def predict_goal_completion(
    goal: models.Goal, updates: Sequence[Any], today: Optional[date] = None
) -> Optional[float]:
    """
    Projected progress (0-100) of a goal at its target date.

    With two or more progress updates on different days the percentage is
    regressed against days elapsed; otherwise the pace since start_date is
    extended linearly once at least MIN_PACE_DAYS have passed.

    Returns:
        The projection, or None while there is not enough history to project
    """
    today = today or date.today()
    progress = float(goal.progress_percentage or 0)
    if progress >= 100:
        return 100.0
    if goal.target_date is None:
        return None

    dated = [u for u in updates if u.update_date is not None]
    if len(dated) >= 2:
        dated = sorted(dated, key=lambda u: u.update_date)
        origin = dated[0].update_date
        xs = [(u.update_date - origin).days for u in dated]
        ys = [float(u.progress_percentage or 0) for u in dated]
        mean_x = sum(xs) / len(xs)
        mean_y = sum(ys) / len(ys)
        sxx = sum((x - mean_x) ** 2 for x in xs)
        if sxx:
            slope = sum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys)) / sxx
            intercept = mean_y - slope * mean_x
            projected = slope * (goal.target_date - origin).days + intercept
            return max(0.0, min(100.0, projected))

    start = goal.start_date
    if start is None or goal.target_date <= start:
        return None
    elapsed = (min(today, goal.target_date) - start).days
    if elapsed < MIN_PACE_DAYS:
        return None
    total = (goal.target_date - start).days
    return max(0.0, min(100.0, progress * total / elapsed))


def goal_at_risk(goal: models.Goal, updates: Sequence[Any], today: Optional[date] = None) -> bool:
    """
    An unfinished goal is at risk when it is under half way with less than
    DEADLINE_WINDOW_DAYS left, or when its projection falls short of half the target.
    """
    today = today or date.today()
    progress = float(goal.progress_percentage or 0)
    if progress >= AT_RISK_PROGRESS:
        return False

    if goal.target_date is not None and (goal.target_date - today).days < DEADLINE_WINDOW_DAYS:
        return True

    projected = predict_goal_completion(goal, updates, today)
    return projected is not None and projected < AT_RISK_PROGRESS


# =========================
# Data loaders
# =========================
async def load_metric_points(
    metric: str, company_id: int, start: date, end: date, db: AsyncSession
) -> Tuple[List[Tuple[date, float]], str]:
    """
    Raw (date, value) points for a metric plus how they should be bucketed.

    Returns:
        (points, how) where how is "mean", "sum" or "count"

    Raises:
        ValueError: unknown metric
    """
    if metric == "emissions":
        stmt = select(
            models.CalculatedEmission.calculation_date, models.CalculatedEmission.total_co2e
        ).where(
            and_(
                models.CalculatedEmission.company_id == company_id,
                models.CalculatedEmission.calculation_date.between(start, end),
            )
        )
        how = "sum"
    elif metric in ("goals", "goal_achievement"):
        stmt = (
            select(
                models.GoalProgressUpdate.update_date,
                models.GoalProgressUpdate.progress_percentage,
            )
            .join(models.Goal, models.Goal.id == models.GoalProgressUpdate.goal_id)
            .where(
                and_(
                    models.Goal.company_id == company_id,
                    models.GoalProgressUpdate.update_date.between(start, end),
                )
            )
        )
        how = "mean"
    elif metric == "tasks":
        stmt = select(models.DataCollectionTask.completed_date, func.count()).where(
            and_(
                models.DataCollectionTask.company_id == company_id,
                models.DataCollectionTask.status == "completed",
                models.DataCollectionTask.completed_date.between(start, end),
            )
        ).group_by(models.DataCollectionTask.completed_date)
        how = "sum"
    elif metric == "licenses":
        stmt = select(models.License.issue_date, func.count()).where(
            and_(
                models.License.company_id == company_id,
                models.License.issue_date.between(start, end),
            )
        ).group_by(models.License.issue_date)
        how = "sum"
    elif metric == "risks":
        stmt = select(models.EsgRisk.identified_date, func.count()).where(
            and_(
                models.EsgRisk.company_id == company_id,
                models.EsgRisk.identified_date.between(start, end),
            )
        ).group_by(models.EsgRisk.identified_date)
        how = "sum"
    elif metric == "non_conformities":
        stmt = select(models.NonConformity.detected_date, func.count()).where(
            and_(
                models.NonConformity.company_id == company_id,
                models.NonConformity.detected_date.between(start, end),
            )
        ).group_by(models.NonConformity.detected_date)
        how = "sum"
    elif metric == "employees":
        stmt = select(models.Employee.hire_date, func.count()).where(
            and_(
                models.Employee.company_id == company_id,
                models.Employee.hire_date.between(start, end),
            )
        ).group_by(models.Employee.hire_date)
        how = "sum"
    else:
        raise ValueError(f"Unsupported metric: {metric}")

    result = await db.execute(stmt)
    return [(row[0], float(row[1] or 0)) for row in result.all()], how


async def task_completion_series(
    company_id: int, grid: Sequence[str], start: date, end: date, db: AsyncSession
) -> List[float]:
    """Monthly % of tasks due in the month that are completed."""
    stmt = select(models.DataCollectionTask.due_date, models.DataCollectionTask.status).where(
        and_(
            models.DataCollectionTask.company_id == company_id,
            models.DataCollectionTask.due_date.between(start, end),
        )
    )
    result = await db.execute(stmt)

    totals: Dict[str, List[int]] = OrderedDict((label, [0, 0]) for label in grid)
    for due_date, status in result.all():
        key = period_key(due_date, "month")
        if key in totals:
            totals[key][0] += 1
            totals[key][1] += status == "completed"

    return [(done / total) * 100 if total else 0.0 for total, done in totals.values()]


async def monthly_history(
    metric: str, company_id: int, db: AsyncSession, months: int = 12, today: Optional[date] = None
) -> Tuple[List[str], List[float]]:
    """
    Zero-filled monthly series of a metric over the last N months.
    All metrics share the same grid, so series line up month by month.
    """
    today = today or date.today()
    grid = month_grid(months, today)
    start = months_back_start(months, today)

    if metric in ("task_completion_rate", "task_completion"):
        return grid, await task_completion_series(company_id, grid, start, today, db)

    points, how = await load_metric_points(metric, company_id, start, today, db)
    return grid, fill_monthly(aggregate_by_period(points, "month", how), grid)


async def metric_for_period(
    metric: str, bounds: PeriodBounds, company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    """Scalar value of a comparable metric inside one period."""
    if metric == "emissions":
        stmt = select(func.coalesce(func.sum(models.CalculatedEmission.total_co2e), 0)).where(
            and_(
                models.CalculatedEmission.company_id == company_id,
                models.CalculatedEmission.calculation_date.between(bounds.start, bounds.end),
            )
        )
        value = (await db.execute(stmt)).scalar()
        return {"value": float(value or 0), "unit": "tCO2e"}

    if metric == "goals_progress":
        stmt = (
            select(func.avg(models.GoalProgressUpdate.progress_percentage))
            .join(models.Goal, models.Goal.id == models.GoalProgressUpdate.goal_id)
            .where(
                and_(
                    models.Goal.company_id == company_id,
                    models.GoalProgressUpdate.update_date.between(bounds.start, bounds.end),
                )
            )
        )
        value = (await db.execute(stmt)).scalar()
        return {"value": round(float(value or 0), 2), "unit": "%"}

    if metric == "task_completion":
        stmt = select(models.DataCollectionTask.status).where(
            and_(
                models.DataCollectionTask.company_id == company_id,
                models.DataCollectionTask.due_date.between(bounds.start, bounds.end),
            )
        )
        statuses = (await db.execute(stmt)).scalars().all()
        done = sum(1 for s in statuses if s == "completed")
        value = (done / len(statuses)) * 100 if statuses else 0.0
        return {"value": round(value, 2), "unit": "%"}

    if metric == "license_compliance":
        # Share of licenses issued by the end of the period still valid at that date
        stmt = select(models.License.expiration_date, models.License.status).where(
            and_(
                models.License.company_id == company_id,
                (models.License.issue_date.is_(None)) | (models.License.issue_date <= bounds.end),
            )
        )
        rows = (await db.execute(stmt)).all()
        valid = sum(
            1 for expiration, status in rows if expiration >= bounds.end and status != "suspended"
        )
        value = (valid / len(rows)) * 100 if rows else 0.0
        return {"value": round(value, 2), "unit": "%"}

    raise ValueError(f"Unsupported metric: {metric}")


# =========================
# High-level analyses
# =========================
async def analyze_trends(
    metric: str,
    period: str,
    group_by: str,
    company_id: int,
    db: AsyncSession,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    bounds = period_range(period, today)
    points, how = await load_metric_points(metric, company_id, bounds.start, bounds.end, db)
    trend = aggregate_by_period(points, group_by, how)
    analysis = analyze_trend_pattern(trend)

    return {
        "metric": metric,
        "period": period,
        "group_by": group_by,
        "start_date": bounds.start.isoformat(),
        "end_date": bounds.end.isoformat(),
        "data_points": [p.to_dict() for p in trend],
        "trend": analysis["direction"],
        "velocity": analysis["velocity"],
        "percent_change": analysis["percent_change"],
        "summary": analysis["summary"],
    }


async def compare_periods(
    metric: str, current_period: str, previous_period: str, company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    current_bounds = parse_period(current_period)
    previous_bounds = parse_period(previous_period)

    current = await metric_for_period(metric, current_bounds, company_id, db)
    previous = await metric_for_period(metric, previous_bounds, company_id, db)

    return {
        "metric": metric,
        "current_period": {"period": current_period, **current},
        "previous_period": {"period": previous_period, **previous},
        "comparison": compare_values(current["value"], previous["value"]),
    }


async def predict_future_metrics(
    metric: str,
    forecast_period: str,
    include_confidence: bool,
    company_id: int,
    db: AsyncSession,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    grid, values = await monthly_history(metric, company_id, db, today=today)
    # Leading empty months carry no information about the trend
    while values and values[0] == 0:
        grid, values = grid[1:], values[1:]

    periods_ahead = FORECAST_OFFSETS.get(forecast_period, 1)
    prediction = forecast(values, periods_ahead)

    result: Dict[str, Any] = {
        "metric": metric,
        "forecast_period": forecast_period,
        "prediction": {
            "value": prediction["value"],
            "trend": prediction["trend"],
            "based_on": f"{len(values)} monthly data points",
        },
        "history": [{"period": p, "value": round(v, 4)} for p, v in zip(grid, values)],
        "methodology": "Ordinary least squares over monthly history",
    }
    if include_confidence and prediction["trend"] != "insufficient_data":
        result["prediction"]["confidence"] = confidence_interval(values, prediction["value"])
    return result


async def analyze_correlations(
    metrics: Sequence[str], period: str, company_id: int, db: AsyncSession, today: Optional[date] = None
) -> Dict[str, Any]:
    months = {"last_90_days": 3, "last_6_months": 6, "last_year": 12}.get(period, 12)

    series: Dict[str, List[float]] = {}
    for metric in metrics:
        _, series[metric] = await monthly_history(metric, company_id, db, months=months, today=today)

    correlations = []
    for i, first in enumerate(metrics):
        for second in metrics[i + 1 :]:
            r = pearson_correlation(series[first], series[second])
            correlations.append(
                {
                    "metric1": first,
                    "metric2": second,
                    "correlation": round(r, 3),
                    "strength": correlation_strength(r),
                    "direction": "positive" if r > 0 else "negative" if r < 0 else "none",
                }
            )

    return {
        "period": period,
        "months": months,
        "correlations": correlations,
        "note": "Correlation does not imply causation.",
    }
