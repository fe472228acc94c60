import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_, desc, or_

from esg_hub.core import models
from esg_hub.core.assistant import insights
from esg_hub.core.assistant.read import ok, fail, as_float, get_dashboard_summary


# -----------------------------------------------------------------------------
# ADVANCED ANALYSES
# Purpose: answers that combine several tables into a judgement: sector
# benchmarks, optimization opportunities, stakeholder impact and the
# executive summary.
# Benchmarks are fixed reference values, not market data.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

# tCO2e per active employee and year
SECTOR_EMISSION_BENCHMARKS = {
    "industry": 15.5,
    "services": 5.2,
    "retail": 3.8,
    "technology": 2.1,
    "general": 8.0,
}
SECTOR_ALIASES = {
    "manufacturing": "industry",
    "industrial": "industry",
    "commerce": "retail",
    "tech": "technology",
    "software": "technology",
}
GOAL_ACHIEVEMENT_BENCHMARK = 75.0
COMPLIANCE_BENCHMARK = 95.0
GOAL_ON_TRACK_PROGRESS = 70

PRIORITY_ORDER = {"urgent": 0, "high": 1, "medium": 2, "low": 3}


def normalize_sector(sector: Optional[str]) -> str:
    key = (sector or "").strip().lower()
    key = SECTOR_ALIASES.get(key, key)
    return key if key in SECTOR_EMISSION_BENCHMARKS else "general"


def percentile(value: float, benchmark: float, lower_is_better: bool = False) -> int:
    """Rough position against the benchmark from the value/benchmark ratio."""
    if lower_is_better:
        performance = benchmark / value if value else float("inf")
    else:
        performance = value / benchmark if benchmark else 0.0

    if performance >= 1.2:
        return 90
    if performance >= 1.0:
        return 75
    if performance >= 0.8:
        return 50
    if performance >= 0.6:
        return 25
    return 10


# =========================
# Benchmark
# =========================
async def benchmark_performance(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    """
    Compare one metric with its sector reference value.

    emissions_intensity: current-year tCO2e per active employee (lower is better)
    goal_achievement_rate: % of active/completed goals that are completed or >= 70%
    compliance_score: % of licenses active and not expired
    """
    metric = args.get("metric")
    if metric not in ("emissions_intensity", "goal_achievement_rate", "compliance_score"):
        return fail(f"Unsupported metric: {metric}")

    today = date.today()
    company = await db.get(models.Company, company_id)
    sector = normalize_sector(args.get("sector") or (company.sector if company else None))
    lower_is_better = False

    if metric == "emissions_intensity":
        total = (
            await db.execute(
                select(func.coalesce(func.sum(models.CalculatedEmission.total_co2e), 0)).where(
                    and_(
                        models.CalculatedEmission.company_id == company_id,
                        models.CalculatedEmission.calculation_date >= date(today.year, 1, 1),
                    )
                )
            )
        ).scalar()
        employees = (
            await db.execute(
                select(func.count(models.Employee.id)).where(
                    and_(models.Employee.company_id == company_id, models.Employee.status == "active")
                )
            )
        ).scalar()
        value = as_float(total) / max(employees or 0, 1)
        benchmark = SECTOR_EMISSION_BENCHMARKS[sector]
        lower_is_better = True
        unit = "tCO2e/employee"

    elif metric == "goal_achievement_rate":
        goals = (
            await db.execute(
                select(models.Goal).where(
                    and_(
                        models.Goal.company_id == company_id,
                        models.Goal.status.in_(("active", "completed")),
                    )
                )
            )
        ).scalars().all()
        on_track = sum(
            1
            for g in goals
            if g.status == "completed" or as_float(g.progress_percentage) >= GOAL_ON_TRACK_PROGRESS
        )
        value = on_track / len(goals) * 100 if goals else 0.0
        benchmark = GOAL_ACHIEVEMENT_BENCHMARK
        unit = "%"

    else:
        licenses = (
            await db.execute(select(models.License).where(models.License.company_id == company_id))
        ).scalars().all()
        valid = sum(1 for lic in licenses if lic.status == "active" and lic.expiration_date >= today)
        value = valid / len(licenses) * 100 if licenses else 0.0
        benchmark = COMPLIANCE_BENCHMARK
        unit = "%"

    better = value <= benchmark if lower_is_better else value >= benchmark
    gap = value - benchmark
    gap_percentage = round(gap / benchmark * 100) if benchmark else 0

    if better:
        interpretation = f"{value:.2f} {unit} is at or better than the {sector} benchmark of {benchmark} {unit}."
        recommendations = [
            "Keep performance above the sector reference",
            "Set a more ambitious internal benchmark",
            "Share the practices behind this result",
        ]
    else:
        interpretation = f"{value:.2f} {unit} is {abs(gap_percentage)}% off the {sector} benchmark of {benchmark} {unit}."
        recommendations = [
            f"Set a goal to reach the sector benchmark ({benchmark} {unit})",
            "Study practices of sector leaders",
            "Run a continuous improvement program on this metric",
        ]

    return ok(
        {
            "metric": metric,
            "sector": sector,
            "unit": unit,
            "company_value": round(value, 2),
            "sector_benchmark": benchmark,
            "lower_is_better": lower_is_better,
            "meets_benchmark": better,
            "percentile": percentile(value, benchmark, lower_is_better),
            "gap": round(gap, 2),
            "gap_percentage": gap_percentage,
            "interpretation": interpretation,
            "recommendations": recommendations,
        },
        interpretation,
    )


# =========================
# Optimization opportunities
# =========================
def opportunity(
    category: str, title: str, description: str, priority: str, effort: str, impact: Dict[str, Any]
) -> Dict[str, Any]:
    return {
        "category": category,
        "title": title,
        "description": description,
        "priority": priority,
        "effort": effort,
        "impact": impact,
    }


async def identify_optimization_opportunities(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    focus = args.get("focus", "all")
    if focus not in ("all", "cost_reduction", "efficiency", "risk_mitigation", "goal_acceleration"):
        return fail(f"Unsupported focus: {focus}")
    include_impact = bool(args.get("includeImpact", True))
    today = date.today()

    found: List[Dict[str, Any]] = []

    if focus in ("all", "cost_reduction"):
        top = (
            await db.execute(
                select(
                    models.EmissionSource.source_name,
                    func.sum(models.CalculatedEmission.total_co2e).label("total"),
                )
                .join(models.ActivityData, models.CalculatedEmission.activity_data_id == models.ActivityData.id)
                .join(models.EmissionSource, models.ActivityData.emission_source_id == models.EmissionSource.id)
                .where(models.CalculatedEmission.company_id == company_id)
                .group_by(models.EmissionSource.source_name)
                .order_by(desc("total"))
                .limit(1)
            )
        ).first()
        if top and as_float(top.total) > 0:
            found.append(
                opportunity(
                    "cost_reduction",
                    f"Optimize the largest emission source: {top.source_name}",
                    "This source carries the largest share of emissions; reductions here have the most effect.",
                    "high",
                    "medium",
                    {"emissions_reduction_tco2e": round(as_float(top.total) * 0.3, 2), "financial": "high"},
                )
            )

    if focus in ("all", "efficiency"):
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
        if overdue > 5:
            found.append(
                opportunity(
                    "efficiency",
                    "Automate recurring data collection",
                    f"{overdue} overdue tasks point to a bottleneck in data collection.",
                    "medium",
                    "high",
                    {"time_reduction": "70%", "accuracy": "+25%"},
                )
            )

        repeated = (
            await db.execute(
                select(models.DataCollectionTask.task_type, func.count(models.DataCollectionTask.id))
                .where(models.DataCollectionTask.company_id == company_id)
                .group_by(models.DataCollectionTask.task_type)
                .having(func.count(models.DataCollectionTask.id) > 10)
            )
        ).all()
        if repeated:
            found.append(
                opportunity(
                    "efficiency",
                    "Consolidate data collection processes",
                    f"Many '{repeated[0][0]}' tasks could be merged into one process.",
                    "medium",
                    "low",
                    {"time_reduction": "40%", "error_reduction": "30%"},
                )
            )

    if focus in ("all", "risk_mitigation"):
        critical = (
            await db.execute(
                select(func.count(models.EsgRisk.id)).where(
                    and_(
                        models.EsgRisk.company_id == company_id,
                        models.EsgRisk.risk_level == "critical",
                        models.EsgRisk.status == "active",
                    )
                )
            )
        ).scalar() or 0
        if critical:
            found.append(
                opportunity(
                    "risk_mitigation",
                    f"Treat {critical} critical risk(s)",
                    "Critical risks without treatment expose the company to significant losses.",
                    "urgent",
                    "high",
                    {"risk_reduction": "critical to medium/low"},
                )
            )

    if focus in ("all", "goal_acceleration"):
        slow = (
            await db.execute(
                select(func.count(models.Goal.id)).where(
                    and_(
                        models.Goal.company_id == company_id,
                        models.Goal.status == "active",
                        models.Goal.progress_percentage < 50,
                    )
                )
            )
        ).scalar() or 0
        if slow > 3:
            found.append(
                opportunity(
                    "goal_acceleration",
                    "Introduce a goal acceleration framework",
                    f"{slow} active goals are below 50% progress.",
                    "high",
                    "medium",
                    {"goal_acceleration": "+35% pace", "achievement_rate": "+25%"},
                )
            )

    found.sort(key=lambda o: PRIORITY_ORDER[o["priority"]])
    if not include_impact:
        for item in found:
            item.pop("impact")

    roadmap = [
        {
            "phase": "short_term",
            "horizon": "0-3 months",
            "opportunities": [o["title"] for o in found if o["effort"] == "low" or o["priority"] == "urgent"],
        },
        {
            "phase": "medium_term",
            "horizon": "3-6 months",
            "opportunities": [o["title"] for o in found if o["effort"] == "medium"],
        },
        {
            "phase": "long_term",
            "horizon": "6-12 months",
            "opportunities": [
                o["title"] for o in found if o["effort"] == "high" and o["priority"] != "urgent"
            ],
        },
    ]

    urgent = sum(1 for o in found if o["priority"] == "urgent")
    high = sum(1 for o in found if o["priority"] == "high")
    summary = f"{len(found)} optimization opportunities ({urgent} urgent, {high} high priority)"

    return ok(
        {
            "focus": focus,
            "total_opportunities": len(found),
            "opportunities": found,
            "summary": summary,
            "implementation_roadmap": roadmap,
        },
        summary,
    )


# =========================
# Stakeholder impact
# =========================
DEFAULT_STAKEHOLDER_GROUPS = ["employees", "community", "investors", "customers", "suppliers", "regulators"]

CLIMATE_KEYWORDS = ("emission", "carbon", "climate", "energy")
SOCIAL_KEYWORDS = ("social", "employee", "training", "diversity", "safety")

CLIMATE_EFFECTS = {
    "investors": ("high", "positive", "Better ESG rating and access to sustainable finance"),
    "community": ("high", "positive", "Cleaner air and public health gains"),
    "regulators": ("medium", "positive", "Shows commitment to climate targets"),
}
SOCIAL_EFFECTS = {
    "employees": ("high", "positive", "Higher satisfaction, engagement and retention"),
}


async def analyze_stakeholder_impact(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    """
    Keyword-based impact of an action on each stakeholder group.
    Groups default to the six standard ones; counts come from registered stakeholders.
    """
    action = (args.get("action") or "").strip()
    if not action:
        return fail("An action to analyze is required")
    groups = [g.lower() for g in (args.get("stakeholderGroups") or DEFAULT_STAKEHOLDER_GROUPS)]

    stakeholders = (
        await db.execute(select(models.Stakeholder).where(models.Stakeholder.company_id == company_id))
    ).scalars().all()

    text = action.lower()
    effects: Dict[str, Any] = {}
    if any(word in text for word in CLIMATE_KEYWORDS):
        effects.update(CLIMATE_EFFECTS)
    if any(word in text for word in SOCIAL_KEYWORDS):
        effects.update(SOCIAL_EFFECTS)

    analysis = []
    for group in groups:
        impact, sentiment, description = effects.get(group, ("medium", "neutral", ""))
        analysis.append(
            {
                "stakeholder_group": group,
                "count": sum(1 for s in stakeholders if group in (s.category or "").lower()),
                "impact_level": impact,
                "sentiment": sentiment,
                "description": description,
                "recommended_engagement": "Direct, continuous engagement through a dedicated channel"
                if impact == "high"
                else "Regular updates through existing channels",
            }
        )

    positive_share = sum(1 for a in analysis if a["sentiment"] == "positive") / len(analysis) if analysis else 0
    if positive_share >= 0.7:
        overall = "predominantly_positive"
    elif positive_share >= 0.4:
        overall = "mixed"
    else:
        overall = "needs_attention"

    critical = [a for a in analysis if a["impact_level"] == "high"]
    return ok(
        {
            "action": action,
            "stakeholder_groups": groups,
            "impact_analysis": analysis,
            "overall_sentiment": overall,
            "critical_stakeholders": critical,
            "engagement_plan": [
                {
                    "stakeholder": a["stakeholder_group"],
                    "priority": "high",
                    "actions": [
                        "Presentation meeting",
                        "Direct channel for feedback and questions",
                        "Monthly perception follow-up",
                    ],
                }
                for a in critical
            ],
            "communication_recommendations": [
                "Build a clear narrative on the benefits of the action",
                "Tailor the message to each stakeholder group",
                "Stagger the communication schedule",
                "Prepare a FAQ for the expected questions",
                "Define KPIs for communication effectiveness",
            ],
        },
        f"{len(critical)} of {len(analysis)} stakeholder groups highly affected",
    )


# =========================
# Executive summary
# =========================
SCOPE_RULES = {
    "full": list(insights.RULES),
    "environmental": ["emissions", "waste", "licenses", "goals"],
    "social": ["goals", "tasks"],
    "governance": ["non_conformities", "tasks", "licenses"],
}
SCOPE_KPIS = {
    "environmental": ["emissions_ytd_tco2e", "licenses_expiring_30_days", "licenses_expired"],
    "social": ["active_employees", "active_goals", "average_goal_progress"],
    "governance": ["open_non_conformities", "high_or_critical_risks", "overdue_tasks"],
}
PRIORITY_SEVERITIES = {
    "critical_only": ("critical",),
    "high_priority": ("critical", "high"),
    "all": tuple(insights.SEVERITY_ORDER),
}
SEVERITY_PENALTY = {"critical": 20, "high": 10, "medium": 5}


async def generate_executive_summary(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    """
    Headline KPIs, filtered insights, a 0-100 health score and recommendations.
    Health score: 100 - 20 per critical - 10 per high - 5 per medium insight,
    counted before the priority filter.
    """
    scope = args.get("scope", "full")
    if scope not in SCOPE_RULES:
        return fail(f"Unsupported scope: {scope}")
    priority = args.get("priorityLevel", "all")
    if priority not in PRIORITY_SEVERITIES:
        return fail(f"Unsupported priority level: {priority}")
    include_recommendations = bool(args.get("includeRecommendations", True))
    today = date.today()

    kpis = (await get_dashboard_summary({"includeAlerts": False}, company_id, db))["data"]["kpis"]
    if scope != "full":
        kpis = {key: kpis[key] for key in SCOPE_KPIS[scope]}

    found = await insights.run_rules(SCOPE_RULES[scope], company_id, db, today)
    score = max(0, 100 - sum(SEVERITY_PENALTY.get(i["severity"], 0) for i in found))
    if score >= 90:
        status = "excellent"
    elif score >= 70:
        status = "good"
    elif score >= 50:
        status = "attention"
    else:
        status = "critical"

    shown = [i for i in found if i["severity"] in PRIORITY_SEVERITIES[priority]]
    headline = f"ESG health {score}/100 ({status}); {len(shown)} highlighted item(s)"
    data: Dict[str, Any] = {
        "scope": scope,
        "generated_at": today.isoformat(),
        "health_score": score,
        "status": status,
        "headline": headline,
        "kpis": kpis,
        "insights": shown,
    }

    if include_recommendations:
        recommendations = [
            {
                "priority": i["severity"],
                "recommendation": i["title"],
                "tool_name": i["action"]["tool_name"] if i["action"] else None,
            }
            for i in shown[:5]
        ]
        if not recommendations:
            recommendations.append(
                {"priority": "info", "recommendation": "Keep monitoring the indicators", "tool_name": None}
            )
        data["recommendations"] = recommendations

    return ok(data, headline)
