import logging
import math
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_

from esg_hub.core import models
from esg_hub.core.assistant import analytics
from esg_hub.core.assistant.analytics import PeriodBounds
from esg_hub.core.assistant.read import ok, fail, as_float, as_int, parse_date


# -----------------------------------------------------------------------------
# FINANCIAL ANALYTICS
# Purpose: ratios, cash-flow projection and trends over the accounting
# ledgers (entries, payables, receivables).
# Entries are classified by entry_type (revenue / expense); entries without a
# type count towards neither side.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

OPEN_PAYABLE_STATUSES = ("pending", "overdue", "scheduled")
OPEN_RECEIVABLE_STATUSES = ("pending", "overdue")
ESG_PILLARS = ("environmental", "social", "governance")
RATIO_GROUPS = ("liquidity", "profitability", "debt", "esg_impact")

# z-scores for the cash-flow band
CONFIDENCE_LEVELS = {"low": (1.0, 0.68), "medium": (1.645, 0.90), "high": (1.96, 0.95)}

TREND_WINDOWS = {"last_3_months": 3, "last_6_months": 6, "last_12_months": 12}


def pillar_of(category: Optional[str]) -> str:
    value = (category or "").strip().lower()
    return value if value in ESG_PILLARS else "other"


def ratio(numerator: float, denominator: float) -> Optional[float]:
    return round(numerator / denominator, 2) if denominator else None


def financial_period(args: Dict[str, Any], today: Optional[date] = None) -> PeriodBounds:
    """
    Bounds of current_month / current_quarter / current_year, or a custom
    startDate..endDate range.

    Raises:
        ValueError: unknown period or incomplete custom range
    """
    today = today or date.today()
    period = args.get("period", "current_year")

    if period == "current_month":
        return PeriodBounds(date(today.year, today.month, 1), today, period)
    if period == "current_quarter":
        first_month = (today.month - 1) // 3 * 3 + 1
        return PeriodBounds(date(today.year, first_month, 1), today, period)
    if period == "current_year":
        return PeriodBounds(date(today.year, 1, 1), today, period)
    if period == "custom":
        start = parse_date(args.get("startDate"))
        end = parse_date(args.get("endDate"))
        if start is None or end is None or end < start:
            raise ValueError("A custom period needs startDate and endDate (YYYY-MM-DD)")
        return PeriodBounds(start, end, f"{start.isoformat()}..{end.isoformat()}")

    raise ValueError(f"Unsupported period: {period}")


async def load_entries(
    company_id: int, start: date, end: date, db: AsyncSession
) -> List[models.AccountingEntry]:
    stmt = select(models.AccountingEntry).where(
        and_(
            models.AccountingEntry.company_id == company_id,
            models.AccountingEntry.entry_date.between(start, end),
        )
    )
    return list((await db.execute(stmt)).scalars().all())


async def load_ledger(model, company_id: int, statuses: Tuple[str, ...], db: AsyncSession):
    stmt = select(model).where(and_(model.company_id == company_id, model.status.in_(statuses)))
    return list((await db.execute(stmt)).scalars().all())


def entry_totals(entries: List[models.AccountingEntry]) -> Tuple[float, float]:
    revenue = sum(as_float(e.total_amount) for e in entries if e.entry_type == "revenue")
    expenses = sum(as_float(e.total_amount) for e in entries if e.entry_type == "expense")
    return revenue, expenses


# =========================
# Ratios
# =========================
async def calculate_financial_ratios(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    """
    Liquidity, profitability, debt and ESG-spend ratios.

    Profitability and ESG spend use the entries booked in the period.
    Liquidity and debt are a snapshot of the open ledgers today.
    """
    today = date.today()
    try:
        bounds = financial_period(args, today)
    except ValueError as error:
        return fail(str(error))

    requested = args.get("ratios") or ["all"]
    groups = RATIO_GROUPS if "all" in requested else [g for g in requested if g in RATIO_GROUPS]
    if not groups:
        return fail(f"Unsupported ratios: {', '.join(map(str, requested))}")

    entries = await load_entries(company_id, bounds.start, bounds.end, db)
    revenue, expenses = entry_totals(entries)

    payables = await load_ledger(models.AccountPayable, company_id, OPEN_PAYABLE_STATUSES, db)
    receivables = await load_ledger(
        models.AccountReceivable, company_id, OPEN_RECEIVABLE_STATUSES, db
    )
    open_payables = sum(as_float(p.amount) for p in payables)
    open_receivables = sum(as_float(r.amount) for r in receivables)
    overdue_payables = sum(
        as_float(p.amount) for p in payables if p.status == "overdue" or p.due_date < today
    )

    ratios: Dict[str, Any] = {}
    if "liquidity" in groups:
        ratios["liquidity"] = {
            "open_receivables": round(open_receivables, 2),
            "open_payables": round(open_payables, 2),
            "current_ratio": ratio(open_receivables, open_payables),
            "net_position": round(open_receivables - open_payables, 2),
        }
    if "profitability" in groups:
        net = revenue - expenses
        ratios["profitability"] = {
            "revenue": round(revenue, 2),
            "expenses": round(expenses, 2),
            "net_result": round(net, 2),
            "net_margin_percent": None if not revenue else round(net / revenue * 100, 2),
        }
    if "debt" in groups:
        ratios["debt"] = {
            "open_payables": round(open_payables, 2),
            "overdue_payables": round(overdue_payables, 2),
            "overdue_share_percent": round(overdue_payables / open_payables * 100, 2)
            if open_payables
            else 0.0,
            "payables_to_revenue": ratio(open_payables, revenue),
        }
    if "esg_impact" in groups:
        by_pillar = {pillar: 0.0 for pillar in ESG_PILLARS}
        for entry in entries:
            if entry.entry_type == "expense" and pillar_of(entry.esg_category) != "other":
                by_pillar[pillar_of(entry.esg_category)] += as_float(entry.total_amount)
        esg_total = sum(by_pillar.values())
        ratios["esg_impact"] = {
            "esg_expenses": round(esg_total, 2),
            "esg_share_of_expenses_percent": round(esg_total / expenses * 100, 2) if expenses else 0.0,
            "by_pillar": {k: round(v, 2) for k, v in by_pillar.items()},
        }

    return ok(
        {
            "period": {"label": bounds.label, "start": bounds.start.isoformat(), "end": bounds.end.isoformat()},
            "ratios": ratios,
        },
        f"Financial ratios for {bounds.label}",
    )


# =========================
# Cash flow
# =========================
def future_months(count: int, today: date) -> List[str]:
    """Month labels starting with the current month."""
    labels = []
    year, month = today.year, today.month
    for _ in range(count):
        labels.append(f"{year}-{month:02d}")
        month += 1
        if month == 13:
            year, month = year + 1, 1
    return labels


async def predict_cash_flow(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    """
    Month-by-month projection of scheduled cash movements.

    Inflows are open receivables, outflows open payables, both placed in the
    month they fall due; anything already past due lands in the current month.
    The band around each month's net is z * the standard deviation of the
    last 12 months of booked net results.
    """
    months = as_int(args.get("forecastMonths"), 3)
    if not 1 <= months <= 12:
        return fail("forecastMonths must be between 1 and 12")
    confidence = args.get("confidence", "medium")
    if confidence not in CONFIDENCE_LEVELS:
        return fail(f"Unsupported confidence: {confidence}")
    include_esg = bool(args.get("includeESGImpact", False))
    today = date.today()

    labels = future_months(months, today)
    buckets = {
        label: {"month": label, "inflow": 0.0, "outflow": 0.0, "esg_outflow": 0.0} for label in labels
    }

    def bucket_for(due: date) -> Optional[Dict[str, Any]]:
        return buckets.get(analytics.period_key(max(due, today), "month"))

    for receivable in await load_ledger(
        models.AccountReceivable, company_id, OPEN_RECEIVABLE_STATUSES, db
    ):
        bucket = bucket_for(receivable.due_date)
        if bucket is not None:
            bucket["inflow"] += as_float(receivable.amount)

    for payable in await load_ledger(models.AccountPayable, company_id, OPEN_PAYABLE_STATUSES, db):
        bucket = bucket_for(payable.due_date)
        if bucket is None:
            continue
        bucket["outflow"] += as_float(payable.amount)
        if pillar_of(payable.esg_category) != "other":
            bucket["esg_outflow"] += as_float(payable.amount)

    # history of booked net results for the band
    history_start = analytics.months_back_start(12, today)
    points = []
    for entry in await load_entries(company_id, history_start, today, db):
        if entry.entry_type == "revenue":
            points.append((entry.entry_date, as_float(entry.total_amount)))
        elif entry.entry_type == "expense":
            points.append((entry.entry_date, -as_float(entry.total_amount)))
    history = analytics.fill_monthly(
        analytics.aggregate_by_period(points, "month", "sum"), analytics.month_grid(12, today)
    )
    mean = sum(history) / len(history)
    std_dev = math.sqrt(sum((v - mean) ** 2 for v in history) / len(history))
    z, level = CONFIDENCE_LEVELS[confidence]

    projection = []
    cumulative = 0.0
    for label in labels:
        bucket = buckets[label]
        net = bucket["inflow"] - bucket["outflow"]
        cumulative += net
        row = {
            "month": label,
            "inflow": round(bucket["inflow"], 2),
            "outflow": round(bucket["outflow"], 2),
            "net": round(net, 2),
            "cumulative": round(cumulative, 2),
            "lower": round(net - z * std_dev, 2),
            "upper": round(net + z * std_dev, 2),
        }
        if include_esg:
            row["esg_outflow"] = round(bucket["esg_outflow"], 2)
        projection.append(row)

    return ok(
        {
            "forecast_months": months,
            "confidence": {"name": confidence, "level": level},
            "historical_monthly_net_mean": round(mean, 2),
            "projection": projection,
            "total_net": round(cumulative, 2),
        },
        f"Projected net cash flow of {cumulative:.2f} over {months} month(s)",
    )


# =========================
# Trends
# =========================
async def financial_points(
    metric: str, company_id: int, start: date, end: date, db: AsyncSession
) -> List[Tuple[date, float, Optional[str]]]:
    """(date, signed amount, esg_category) triples for a financial metric."""
    if metric == "cash_flow":
        points = []
        for model, status, sign in (
            (models.AccountReceivable, "received", 1),
            (models.AccountPayable, "paid", -1),
        ):
            rows = (
                await db.execute(
                    select(model).where(
                        and_(
                            model.company_id == company_id,
                            model.status == status,
                            model.due_date.between(start, end),
                        )
                    )
                )
            ).scalars().all()
            points.extend((r.due_date, sign * as_float(r.amount), r.esg_category) for r in rows)
        return points

    points = []
    for entry in await load_entries(company_id, start, end, db):
        amount = as_float(entry.total_amount)
        if metric == "revenue" and entry.entry_type == "revenue":
            points.append((entry.entry_date, amount, entry.esg_category))
        elif metric == "expenses" and entry.entry_type == "expense":
            points.append((entry.entry_date, amount, entry.esg_category))
        elif metric == "profit" and entry.entry_type in ("revenue", "expense"):
            sign = 1 if entry.entry_type == "revenue" else -1
            points.append((entry.entry_date, sign * amount, entry.esg_category))
        elif (
            metric == "esg_costs"
            and entry.entry_type == "expense"
            and pillar_of(entry.esg_category) != "other"
        ):
            points.append((entry.entry_date, amount, entry.esg_category))
    return points


async def analyze_financial_trends(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    metric = args.get("metric")
    if metric not in ("revenue", "expenses", "profit", "esg_costs", "cash_flow"):
        return fail(f"Unsupported metric: {metric}")
    period = args.get("period", "last_12_months")
    group_by = args.get("groupBy", "month")
    if group_by not in ("month", "quarter", "category", "esg_pillar"):
        return fail(f"Unsupported grouping: {group_by}")

    today = date.today()
    if period == "year_to_date":
        start = date(today.year, 1, 1)
    elif period in TREND_WINDOWS:
        start = analytics.months_back_start(TREND_WINDOWS[period], today)
    else:
        return fail(f"Unsupported period: {period}")

    points = await financial_points(metric, company_id, start, today, db)
    total = sum(value for _, value, _ in points)
    data: Dict[str, Any] = {
        "metric": metric,
        "period": {"label": period, "start": start.isoformat(), "end": today.isoformat()},
        "group_by": group_by,
        "total": round(total, 2),
    }

    if group_by in ("month", "quarter"):
        series = analytics.aggregate_by_period(
            [(day, value) for day, value, _ in points], group_by, "sum"
        )
        pattern = analytics.analyze_trend_pattern(series)
        data["series"] = [point.to_dict() for point in series]
        data["trend"] = pattern["direction"]
        data["pattern"] = pattern
        message = pattern["summary"]
    else:
        grouped: Dict[str, float] = {}
        for _, value, category in points:
            key = pillar_of(category) if group_by == "esg_pillar" else (category or "Unclassified")
            grouped[key] = grouped.get(key, 0.0) + value
        data["breakdown"] = [
            {
                "group": key,
                "value": round(value, 2),
                "share_percent": round(value / total * 100, 2) if total else 0.0,
            }
            for key, value in sorted(grouped.items(), key=lambda item: item[1], reverse=True)
        ]
        message = f"{len(grouped)} groups for {metric}"

    return ok(data, message)
