import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_, or_, extract
from sqlalchemy.orm import selectinload

from esg_hub.core import models
from esg_hub.core.assistant import analytics
from esg_hub.core.assistant.read import OPEN_NC_STATUSES, RECYCLING_DESTINATIONS


# -----------------------------------------------------------------------------
# PROACTIVE INSIGHTS
# Purpose: run a fixed set of rules for the page the user is on and return
# the findings most worth a look, worst first.
# Nothing here is persisted; insights are recomputed on every request.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

SEVERITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3, "info": 4}

EMISSIONS_INCREASE_THRESHOLD = 0.15
OPEN_NC_THRESHOLD = 5
RECYCLING_RATE_THRESHOLD = 50


def make_insight(
    insight_id: str,
    insight_type: str,
    severity: str,
    category: str,
    title: str,
    message: str,
    tool_name: Optional[str] = None,
    params: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return {
        "id": insight_id,
        "type": insight_type,
        "severity": severity,
        "category": category,
        "title": title,
        "message": message,
        "action": {"tool_name": tool_name, "params": params or {}} if tool_name else None,
    }


# =========================
# Rules
# =========================
async def license_insights(company_id: int, db: AsyncSession, today: date) -> List[Dict[str, Any]]:
    licenses = (
        await db.execute(
            select(models.License).where(
                and_(
                    models.License.company_id == company_id,
                    models.License.expiration_date <= today + timedelta(days=30),
                )
            )
        )
    ).scalars().all()

    expired = [lic for lic in licenses if lic.expiration_date < today]
    expiring = [lic for lic in licenses if lic.expiration_date >= today]

    insights = []
    if expired:
        insights.append(
            make_insight(
                "licenses_expired",
                "alert",
                "critical",
                "compliance",
                f"{len(expired)} expired license(s)",
                "Operating with expired licenses exposes the company to fines. "
                + ", ".join(lic.license_name for lic in expired[:3]),
                "query_licenses",
                {"status": "expired"},
            )
        )
    if expiring:
        nearest = min(expiring, key=lambda lic: lic.expiration_date)
        days = (nearest.expiration_date - today).days
        insights.append(
            make_insight(
                "licenses_expiring",
                "alert",
                "high",
                "compliance",
                f"{len(expiring)} license(s) expiring within 30 days",
                f"'{nearest.license_name}' expires in {days} day(s). Start the renewal now.",
                "query_licenses",
                {"status": "expiring_soon", "daysUntilExpiry": 30},
            )
        )
    return insights


async def task_insights(company_id: int, db: AsyncSession, today: date) -> List[Dict[str, Any]]:
    overdue = (
        await db.execute(
            select(func.count(models.DataCollectionTask.id)).where(
                and_(
                    models.DataCollectionTask.company_id == company_id,
                    models.DataCollectionTask.status != "completed",
                    or_(
                        models.DataCollectionTask.status == "overdue",
                        models.DataCollectionTask.due_date < today,
                    ),
                )
            )
        )
    ).scalar() or 0

    if not overdue:
        return []
    return [
        make_insight(
            "tasks_overdue",
            "alert",
            "high",
            "data_collection",
            f"{overdue} overdue data collection task(s)",
            "Late data collection delays inventories and reports.",
            "query_tasks",
            {"status": "overdue"},
        )
    ]


async def goal_insights(company_id: int, db: AsyncSession, today: date) -> List[Dict[str, Any]]:
    goals = (
        await db.execute(
            select(models.Goal)
            .options(selectinload(models.Goal.progress_updates))
            .where(and_(models.Goal.company_id == company_id, models.Goal.status == "active"))
        )
    ).scalars().all()

    at_risk = [
        goal
        for goal in goals
        if analytics.goal_at_risk(goal, goal.progress_updates, today)
    ]
    if not at_risk:
        return []
    return [
        make_insight(
            "goals_at_risk",
            "warning",
            "high",
            "goals",
            f"{len(at_risk)} goal(s) at risk",
            "Under half way and close to the deadline or behind pace: "
            + ", ".join(goal.goal_name for goal in at_risk[:3]),
            "query_goals_progress",
            {"status": "at_risk"},
        )
    ]


async def emission_insights(company_id: int, db: AsyncSession, today: date) -> List[Dict[str, Any]]:
    grid, values = await analytics.monthly_history("emissions", company_id, db, today=today)

    insights = []
    # The current month is still open, compare the last two complete months
    last, previous = values[-2], values[-3]
    if previous > 0 and last > previous * (1 + EMISSIONS_INCREASE_THRESHOLD):
        increase = (last - previous) / previous * 100
        insights.append(
            make_insight(
                "emissions_increase",
                "trend",
                "medium",
                "emissions",
                f"Emissions up {increase:.0f}% in {grid[-2]}",
                f"{last:.2f} tCO2e against {previous:.2f} tCO2e the month before.",
                "analyze_trends",
                {"metric": "emissions", "period": "last_6_months", "groupBy": "month"},
            )
        )

    history = list(values)
    while history and history[0] == 0:
        history = history[1:]
    if len(history) >= 3:
        prediction = analytics.forecast(history, 1)
        insights.append(
            make_insight(
                "emissions_forecast",
                "prediction",
                "info",
                "emissions",
                "Next month emissions forecast",
                f"About {prediction['value']:.2f} tCO2e expected next month ({prediction['trend']}).",
                "predict_future_metrics",
                {"metric": "emissions", "forecastPeriod": "next_month", "includeConfidence": True},
            )
        )
    return insights


async def non_conformity_insights(
    company_id: int, db: AsyncSession, today: date
) -> List[Dict[str, Any]]:
    open_ncs = (
        await db.execute(
            select(func.count(models.NonConformity.id)).where(
                and_(
                    models.NonConformity.company_id == company_id,
                    models.NonConformity.status.in_(OPEN_NC_STATUSES),
                )
            )
        )
    ).scalar() or 0

    if open_ncs <= OPEN_NC_THRESHOLD:
        return []
    return [
        make_insight(
            "non_conformities_open",
            "warning",
            "medium",
            "quality",
            f"{open_ncs} open non-conformities",
            "A growing backlog of open non-conformities weakens the management system.",
            "query_non_conformities",
            {"status": "open"},
        )
    ]


async def waste_insights(company_id: int, db: AsyncSession, today: date) -> List[Dict[str, Any]]:
    logs = (
        await db.execute(
            select(models.WasteLog.quantity, models.WasteLog.final_destination).where(
                and_(
                    models.WasteLog.company_id == company_id,
                    extract("year", models.WasteLog.log_date) == today.year,
                )
            )
        )
    ).all()

    total = sum(float(q or 0) for q, _ in logs)
    if not total:
        return []
    recycled = sum(
        float(q or 0) for q, destination in logs if (destination or "").lower() in RECYCLING_DESTINATIONS
    )
    rate = recycled / total * 100
    if rate >= RECYCLING_RATE_THRESHOLD:
        return []
    return [
        make_insight(
            "waste_low_recycling",
            "opportunity",
            "low",
            "waste",
            f"Recycling rate at {rate:.0f}%",
            "Better sorting and recycling partners could divert more waste from landfill.",
            "query_waste_data",
            {"groupBy": "destination"},
        )
    ]


RULES = {
    "licenses": license_insights,
    "tasks": task_insights,
    "goals": goal_insights,
    "emissions": emission_insights,
    "non_conformities": non_conformity_insights,
    "waste": waste_insights,
}

DASHBOARD_RULES = ["licenses", "tasks", "goals", "non_conformities"]

PAGE_RULES = {
    "/dashboard": DASHBOARD_RULES,
    "/emissions": ["emissions"],
    "/goals": ["goals"],
    "/licenses": ["licenses"],
    "/tasks": ["tasks"],
    "/waste": ["waste"],
    "/non-conformities": ["non_conformities"],
}


def rules_for_page(page: Optional[str]) -> List[str]:
    return PAGE_RULES.get((page or "").rstrip("/") or "/dashboard", DASHBOARD_RULES)


async def run_rules(
    rule_names: List[str], company_id: int, db: AsyncSession, today: date
) -> List[Dict[str, Any]]:
    insights: List[Dict[str, Any]] = []
    for rule in rule_names:
        insights.extend(await RULES[rule](company_id, db, today))
    insights.sort(key=lambda i: SEVERITY_ORDER[i["severity"]])
    return insights


async def generate_insights(
    page: Optional[str], company_id: int, db: AsyncSession, today: Optional[date] = None
) -> List[Dict[str, Any]]:
    """
    Run the rules for a page and return insights sorted by severity.

    Args:
        page: frontend route, e.g. "/emissions"; unknown routes get the dashboard rules
        company_id: tenant scope
        today: reference date, defaults to today

    Returns:
        Insight dicts, critical first
    """
    today = today or date.today()
    insights = await run_rules(rules_for_page(page), company_id, db, today)
    logger.debug(f"{len(insights)} insights for company {company_id} on {page}")
    return insights


# =========================
# Page context for chat
# =========================
async def build_page_context(page: Optional[str], company_id: int, db: AsyncSession) -> str:
    """Short plain-text summary of the page's key numbers for the system prompt."""
    today = date.today()
    route = (page or "").rstrip("/") or "/dashboard"
    lines = [f"Current page: {route}"]

    if route == "/emissions":
        _, values = await analytics.monthly_history("emissions", company_id, db, today=today)
        lines.append(f"Emissions over the last 12 months: {sum(values):.2f} tCO2e")
        lines.append(f"Emissions this month so far: {values[-1]:.2f} tCO2e")

    elif route == "/goals":
        rows = (
            await db.execute(
                select(models.Goal.status, func.count(models.Goal.id))
                .where(models.Goal.company_id == company_id)
                .group_by(models.Goal.status)
            )
        ).all()
        counts = {status: count for status, count in rows}
        lines.append(f"Goals: {sum(counts.values())} total, {counts.get('active', 0)} active")

    elif route == "/licenses":
        licenses = (
            await db.execute(
                select(models.License.expiration_date).where(models.License.company_id == company_id)
            )
        ).scalars().all()
        expiring = sum(1 for d in licenses if today <= d <= today + timedelta(days=30))
        expired = sum(1 for d in licenses if d < today)
        lines.append(f"Licenses: {len(licenses)} total, {expiring} expiring in 30 days, {expired} expired")

    elif route == "/waste":
        total = (
            await db.execute(
                select(func.coalesce(func.sum(models.WasteLog.quantity), 0)).where(
                    and_(
                        models.WasteLog.company_id == company_id,
                        extract("year", models.WasteLog.log_date) == today.year,
                    )
                )
            )
        ).scalar()
        lines.append(f"Waste logged this year: {float(total or 0):.2f}")

    else:
        insights = await generate_insights(route, company_id, db, today)
        if insights:
            lines.append("Points of attention:")
            lines.extend(f"- [{i['severity']}] {i['title']}" for i in insights)
        else:
            lines.append("No open alerts.")

    return "\n".join(lines)
