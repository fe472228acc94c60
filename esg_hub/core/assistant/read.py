import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_, or_, desc, extract
from sqlalchemy.orm import selectinload

from esg_hub.core import models
from esg_hub.core.assistant import analytics
from esg_hub.core.assistant.cache import cache


# -----------------------------------------------------------------------------
# READ EXECUTORS
# Purpose: answer the assistant's read tools with filtered, company-scoped
# queries and small in-process aggregations.
# Every executor returns {"success", "data", "message"}.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

OPEN_NC_STATUSES = ("open", "in_treatment")
RECYCLING_DESTINATIONS = ("recycling", "composting", "reuse")


def ok(data: Any, message: str) -> Dict[str, Any]:
    return {"success": True, "data": data, "message": message}


def fail(error: str) -> Dict[str, Any]:
    return {"success": False, "error": error}


def iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def as_float(value: Any) -> float:
    if value is None:
        return 0.0
    return float(value)


def as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_date(value: Any) -> Optional[date]:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


# =========================
# Snapshot tools
# =========================
async def get_comprehensive_company_data(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    """
    One-shot snapshot of the company's ESG data.
    Cached per company and option set for the cache TTL.
    """
    options = {
        "emissions": args.get("includeEmissions", True),
        "goals": args.get("includeGoals", True),
        "gri": args.get("includeGRI", False),
        "risks": args.get("includeRisks", True),
        "employees": args.get("includeEmployees", True),
        "waste": args.get("includeWaste", False),
        "documents": args.get("includeDocuments", True),
    }
    max_results = as_int(args.get("maxResults"), 100)

    flags = "".join("1" if options[k] else "0" for k in sorted(options))
    cache_key = f"comprehensive_data_{company_id}_{flags}_{max_results}"
    cached = cache.get(cache_key)
    if cached is not None:
        logger.debug(f"Returning cached comprehensive data for company {company_id}")
        return cached

    data: Dict[str, Any] = {}

    company = await db.get(models.Company, company_id)
    if company:
        data["company"] = {"name": company.name, "sector": company.sector}

    if options["emissions"]:
        data["emissions"] = (await query_emissions_data({"scope": "all"}, company_id, db))["data"]

    if options["goals"]:
        data["goals"] = (await query_goals_progress({}, company_id, db))["data"]

    if options["gri"]:
        data["gri"] = (await query_gri_reports({}, company_id, db))["data"]

    if options["risks"]:
        data["risks"] = (await query_risks({"status": "active"}, company_id, db))["data"]

    if options["employees"]:
        data["employees"] = (
            await query_employees({"status": "active", "groupBy": "department"}, company_id, db)
        )["data"]

    if options["waste"]:
        data["waste"] = (await query_waste_data({}, company_id, db))["data"]

    if options["documents"]:
        data["documents"] = (
            await query_documents({"recentOnly": True, "limit": min(max_results, 20)}, company_id, db)
        )["data"]

    result = ok(
        {
            "company_id": company_id,
            "fetched_at": datetime.now(timezone.utc).isoformat(),
            "data": data,
        },
        f"Loaded {len(data)} data sections",
    )
    cache.set(cache_key, result)
    return result


async def get_dashboard_summary(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    """Headline KPIs plus, optionally, the items that need attention."""
    include_alerts = bool(args.get("includeAlerts", True))
    cache_key = f"dashboard_summary_{company_id}_{include_alerts}"
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    today = date.today()
    year_start = date(today.year, 1, 1)

    emissions_total = (
        await db.execute(
            select(func.coalesce(func.sum(models.CalculatedEmission.total_co2e), 0)).where(
                and_(
                    models.CalculatedEmission.company_id == company_id,
                    models.CalculatedEmission.calculation_date >= year_start,
                )
            )
        )
    ).scalar()

    goal_stats = (
        await db.execute(
            select(
                func.count(models.Goal.id),
                func.avg(models.Goal.progress_percentage),
            ).where(
                and_(models.Goal.company_id == company_id, models.Goal.status == "active")
            )
        )
    ).first()

    expiring_licenses = (
        await db.execute(
            select(models.License)
            .where(
                and_(
                    models.License.company_id == company_id,
                    models.License.expiration_date.between(today, today + timedelta(days=30)),
                )
            )
            .order_by(models.License.expiration_date)
        )
    ).scalars().all()

    expired_licenses = (
        await db.execute(
            select(func.count(models.License.id)).where(
                and_(
                    models.License.company_id == company_id,
                    models.License.expiration_date < today,
                )
            )
        )
    ).scalar()

    overdue_tasks = (
        await db.execute(
            select(models.DataCollectionTask).where(
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
    ).scalars().all()

    open_ncs = (
        await db.execute(
            select(func.count(models.NonConformity.id)).where(
                and_(
                    models.NonConformity.company_id == company_id,
                    models.NonConformity.status.in_(OPEN_NC_STATUSES),
                )
            )
        )
    ).scalar()

    critical_risks = (
        await db.execute(
            select(func.count(models.EsgRisk.id)).where(
                and_(
                    models.EsgRisk.company_id == company_id,
                    models.EsgRisk.status == "active",
                    models.EsgRisk.risk_level.in_(("high", "critical")),
                )
            )
        )
    ).scalar()

    active_employees = (
        await db.execute(
            select(func.count(models.Employee.id)).where(
                and_(
                    models.Employee.company_id == company_id,
                    models.Employee.status == "active",
                )
            )
        )
    ).scalar()

    summary: Dict[str, Any] = {
        "kpis": {
            "emissions_ytd_tco2e": round(as_float(emissions_total), 3),
            "active_goals": goal_stats[0] or 0,
            "average_goal_progress": round(as_float(goal_stats[1]), 2),
            "licenses_expiring_30_days": len(expiring_licenses),
            "licenses_expired": expired_licenses or 0,
            "overdue_tasks": len(overdue_tasks),
            "open_non_conformities": open_ncs or 0,
            "high_or_critical_risks": critical_risks or 0,
            "active_employees": active_employees or 0,
        }
    }

    if include_alerts:
        alerts = []
        for lic in expiring_licenses:
            alerts.append(
                {
                    "type": "license_expiring",
                    "severity": "high",
                    "message": f"License '{lic.license_name}' expires on {lic.expiration_date.isoformat()}",
                }
            )
        for task in overdue_tasks:
            alerts.append(
                {
                    "type": "task_overdue",
                    "severity": "high",
                    "message": f"Task '{task.name}' was due on {task.due_date.isoformat()}",
                }
            )
        if expired_licenses:
            alerts.append(
                {
                    "type": "license_expired",
                    "severity": "critical",
                    "message": f"{expired_licenses} license(s) expired",
                }
            )
        summary["alerts"] = alerts

    result = ok(summary, "Dashboard summary ready")
    cache.set(cache_key, result)
    return result


# =========================
# Environmental
# =========================
async def query_emissions_data(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    """
    Emission totals by scope for a year, optionally grouped by source, month or category.

    Example:
        {"total_co2e": 152.4, "by_scope": {"scope1": 80.1, "scope2": 72.3}, ...}
    """
    scope = str(args.get("scope", "all"))
    year = as_int(args.get("year"), date.today().year)
    group_by = args.get("groupBy", "source")

    stmt = (
        select(
            models.CalculatedEmission.total_co2e,
            models.CalculatedEmission.calculation_date,
            models.EmissionSource.id,
            models.EmissionSource.source_name,
            models.EmissionSource.scope,
            models.EmissionSource.category,
        )
        .join(models.ActivityData, models.ActivityData.id == models.CalculatedEmission.activity_data_id)
        .join(models.EmissionSource, models.EmissionSource.id == models.ActivityData.emission_source_id)
        .where(
            and_(
                models.CalculatedEmission.company_id == company_id,
                extract("year", models.CalculatedEmission.calculation_date) == year,
            )
        )
    )
    if scope != "all":
        stmt = stmt.where(models.EmissionSource.scope == as_int(scope, 0))

    rows = (await db.execute(stmt)).all()

    by_scope: Dict[str, float] = {}
    groups: Dict[str, float] = {}
    for row in rows:
        value = as_float(row.total_co2e)
        scope_key = f"scope{row.scope}"
        by_scope[scope_key] = by_scope.get(scope_key, 0) + value

        if group_by == "month":
            key = analytics.period_key(row.calculation_date, "month")
        elif group_by == "category":
            key = row.category or "Uncategorized"
        else:
            key = row.source_name
        groups[key] = groups.get(key, 0) + value

    total = sum(by_scope.values())
    ordered = sorted(groups.items(), key=lambda kv: kv[0] if group_by == "month" else -kv[1])

    source_count = (
        await db.execute(
            select(func.count(models.EmissionSource.id)).where(
                models.EmissionSource.company_id == company_id
            )
        )
    ).scalar()

    return ok(
        {
            "year": year,
            "scope": scope,
            "total_co2e": round(total, 4),
            "by_scope": {k: round(v, 4) for k, v in sorted(by_scope.items())},
            "group_by": group_by,
            "groups": [{"key": k, "total_co2e": round(v, 4)} for k, v in ordered],
            "emission_sources": source_count or 0,
            "records": len(rows),
        },
        f"{total:.2f} tCO2e in {year}",
    )


async def query_waste_data(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    waste_class = args.get("wasteClass", "all")
    year = as_int(args.get("year"), date.today().year)
    group_by = args.get("groupBy", "type")

    stmt = select(models.WasteLog).where(
        and_(
            models.WasteLog.company_id == company_id,
            extract("year", models.WasteLog.log_date) == year,
        )
    )
    if waste_class != "all":
        stmt = stmt.where(models.WasteLog.waste_class == waste_class)

    logs = (await db.execute(stmt)).scalars().all()

    groups: Dict[str, float] = {}
    total = 0.0
    recycled = 0.0
    for log in logs:
        quantity = as_float(log.quantity)
        total += quantity
        if (log.final_destination or "").lower() in RECYCLING_DESTINATIONS:
            recycled += quantity

        if group_by == "month":
            key = analytics.period_key(log.log_date, "month")
        elif group_by == "destination":
            key = log.final_destination or "Unspecified"
        else:
            key = log.waste_type
        groups[key] = groups.get(key, 0) + quantity

    recycling_rate = (recycled / total) * 100 if total else 0.0

    return ok(
        {
            "year": year,
            "total_records": len(logs),
            "total_quantity": round(total, 3),
            "recycled_quantity": round(recycled, 3),
            "recycling_rate": round(recycling_rate, 2),
            "group_by": group_by,
            "groups": {k: round(v, 3) for k, v in sorted(groups.items())},
        },
        f"{len(logs)} waste records in {year}",
    )


# =========================
# Goals and licenses
# =========================
async def query_goals_progress(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    """
    Goals with progress buckets.
    "at_risk" keeps active goals under half way that are near their deadline
    or projected to miss half of their target.
    """
    status = args.get("status", "all")
    category = args.get("category", "all")
    sort_by = args.get("sortBy", "progress")
    today = date.today()

    stmt = (
        select(models.Goal)
        .options(selectinload(models.Goal.progress_updates))
        .where(models.Goal.company_id == company_id)
    )
    if category != "all":
        stmt = stmt.where(models.Goal.category == category)
    if status in ("active", "completed"):
        stmt = stmt.where(models.Goal.status == status)
    elif status == "at_risk":
        stmt = stmt.where(models.Goal.status == "active")

    if sort_by == "deadline":
        stmt = stmt.order_by(models.Goal.target_date)
    else:
        stmt = stmt.order_by(desc(models.Goal.progress_percentage))

    goals = (await db.execute(stmt)).scalars().all()

    items = []
    for goal in goals:
        if status == "at_risk" and not analytics.goal_at_risk(goal, goal.progress_updates, today):
            continue
        predicted = analytics.predict_goal_completion(goal, goal.progress_updates, today)
        items.append(
            {
                "id": goal.id,
                "goal_name": goal.goal_name,
                "category": goal.category,
                "baseline_value": goal.baseline_value,
                "target_value": goal.target_value,
                "current_value": goal.current_value,
                "progress": round(as_float(goal.progress_percentage), 2),
                "predicted_completion": None if predicted is None else round(predicted, 2),
                "target_date": iso(goal.target_date),
                "status": goal.status,
            }
        )

    progresses = [item["progress"] for item in items]
    return ok(
        {
            "total": len(items),
            "on_track": sum(1 for p in progresses if p >= 80),
            "attention": sum(1 for p in progresses if 50 <= p < 80),
            "delayed": sum(1 for p in progresses if p < 50),
            "average_progress": round(sum(progresses) / len(progresses), 2) if progresses else 0,
            "goals": items,
        },
        f"{len(items)} goals found",
    )


async def query_licenses(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    """
    Licenses filtered by expiry.

    expiring_soon keeps licenses expiring between today and today + daysUntilExpiry
    (default 30); expired keeps those already past their expiration date.
    """
    status = args.get("status", "all")
    days = as_int(args.get("daysUntilExpiry"), 30)
    today = date.today()

    stmt = select(models.License).where(models.License.company_id == company_id)
    if status == "expiring_soon":
        stmt = stmt.where(
            models.License.expiration_date.between(today, today + timedelta(days=days))
        )
    elif status == "expired":
        stmt = stmt.where(models.License.expiration_date < today)
    elif status == "active":
        stmt = stmt.where(
            and_(models.License.status == "active", models.License.expiration_date >= today)
        )

    licenses = (await db.execute(stmt.order_by(models.License.expiration_date))).scalars().all()

    items = [
        {
            "id": lic.id,
            "license_name": lic.license_name,
            "license_number": lic.license_number,
            "license_type": lic.license_type,
            "issuing_body": lic.issuing_body,
            "status": lic.status,
            "expiration_date": iso(lic.expiration_date),
            "days_until_expiration": (lic.expiration_date - today).days,
        }
        for lic in licenses
    ]

    return ok(
        {
            "total": len(items),
            "expiring_soon": sum(1 for i in items if 0 <= i["days_until_expiration"] <= days),
            "expired": sum(1 for i in items if i["days_until_expiration"] < 0),
            "licenses": items,
        },
        f"{len(items)} licenses found",
    )


# =========================
# Governance
# =========================
async def query_tasks(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    """Overdue means flagged overdue or still open past its due date."""
    status = args.get("status", "all")
    task_type = args.get("taskType")
    assigned_to = args.get("assignedTo")
    today = date.today()

    stmt = select(models.DataCollectionTask).where(
        models.DataCollectionTask.company_id == company_id
    )
    if status == "overdue":
        stmt = stmt.where(
            and_(
                models.DataCollectionTask.status != "completed",
                or_(
                    models.DataCollectionTask.status == "overdue",
                    models.DataCollectionTask.due_date < today,
                ),
            )
        )
    elif status in ("pending", "completed"):
        stmt = stmt.where(models.DataCollectionTask.status == status)
    if task_type:
        stmt = stmt.where(models.DataCollectionTask.task_type == task_type)
    if assigned_to is not None:
        stmt = stmt.where(models.DataCollectionTask.assigned_to == as_int(assigned_to, -1))

    tasks = (await db.execute(stmt.order_by(models.DataCollectionTask.due_date))).scalars().all()

    by_status: Dict[str, int] = {}
    for task in tasks:
        by_status[task.status] = by_status.get(task.status, 0) + 1

    return ok(
        {
            "total": len(tasks),
            "by_status": by_status,
            "tasks": [
                {
                    "id": task.id,
                    "name": task.name,
                    "task_type": task.task_type,
                    "status": task.status,
                    "due_date": iso(task.due_date),
                    "assigned_to": task.assigned_to,
                }
                for task in tasks
            ],
        },
        f"{len(tasks)} tasks found",
    )


async def query_risks(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    level = args.get("level", "all")
    category = args.get("category", "all")
    status = args.get("status", "all")

    stmt = select(models.EsgRisk).where(models.EsgRisk.company_id == company_id)
    if level != "all":
        stmt = stmt.where(models.EsgRisk.risk_level == level)
    if category != "all":
        stmt = stmt.where(models.EsgRisk.category == category)
    if status != "all":
        stmt = stmt.where(models.EsgRisk.status == status)

    risks = (await db.execute(stmt)).scalars().all()

    by_level: Dict[str, int] = {}
    for risk in risks:
        by_level[risk.risk_level] = by_level.get(risk.risk_level, 0) + 1

    return ok(
        {
            "total": len(risks),
            "by_level": by_level,
            "risks": [
                {
                    "id": r.id,
                    "risk_title": r.risk_title,
                    "category": r.category,
                    "risk_level": r.risk_level,
                    "status": r.status,
                }
                for r in risks
            ],
        },
        f"{len(risks)} risks found",
    )


async def query_non_conformities(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    status = args.get("status", "all")
    severity = args.get("severity", "all")

    stmt = select(models.NonConformity).where(models.NonConformity.company_id == company_id)
    if status != "all":
        stmt = stmt.where(models.NonConformity.status == status)
    if severity != "all":
        stmt = stmt.where(models.NonConformity.severity == severity)

    ncs = (await db.execute(stmt.order_by(desc(models.NonConformity.detected_date)))).scalars().all()

    return ok(
        {
            "total": len(ncs),
            "open": sum(1 for nc in ncs if nc.status in OPEN_NC_STATUSES),
            "non_conformities": [
                {
                    "id": nc.id,
                    "title": nc.title,
                    "severity": nc.severity,
                    "status": nc.status,
                    "detected_date": iso(nc.detected_date),
                }
                for nc in ncs
            ],
        },
        f"{len(ncs)} non-conformities found",
    )


async def query_employees(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    status = args.get("status", "active")
    group_by = args.get("groupBy", "department")
    column = {
        "gender": models.Employee.gender,
        "position": models.Employee.position,
    }.get(group_by, models.Employee.department)

    stmt = (
        select(column.label("key"), func.count(models.Employee.id).label("count"))
        .where(models.Employee.company_id == company_id)
        .group_by(column)
    )
    if status != "all":
        stmt = stmt.where(models.Employee.status == status)

    rows = (await db.execute(stmt)).all()
    groups = {(row.key or "Unspecified"): row.count for row in rows}
    total = sum(groups.values())

    return ok(
        {"total": total, "group_by": group_by, "groups": groups},
        f"{total} employees",
    )


async def query_documents(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    document_type = args.get("documentType", "all")
    tags = args.get("tags") or []
    search_term = args.get("searchTerm")
    recent_only = bool(args.get("recentOnly", False))
    limit = as_int(args.get("limit"), 20)

    stmt = select(models.Document).where(models.Document.company_id == company_id)
    if document_type != "all":
        stmt = stmt.where(models.Document.document_type == document_type)
    if search_term:
        stmt = stmt.where(models.Document.file_name.ilike(f"%{search_term}%"))
    if recent_only:
        cutoff = datetime.now(timezone.utc) - timedelta(days=90)
        stmt = stmt.where(models.Document.created_at >= cutoff)

    documents = (await db.execute(stmt.order_by(desc(models.Document.created_at)))).scalars().all()

    # Tags live in a JSON column, so the overlap check happens here
    if tags:
        wanted = set(tags)
        documents = [d for d in documents if wanted & set(d.tags or [])]
    documents = documents[:limit]

    return ok(
        {
            "total": len(documents),
            "documents": [
                {
                    "id": d.id,
                    "file_name": d.file_name,
                    "document_type": d.document_type,
                    "tags": d.tags or [],
                    "created_at": d.created_at.isoformat() if d.created_at else None,
                }
                for d in documents
            ],
        },
        f"{len(documents)} documents found",
    )


async def query_gri_reports(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    report_year = args.get("reportYear")
    status = args.get("status", "all")
    include_indicators = bool(args.get("includeIndicators", False))

    stmt = (
        select(models.GRIReport)
        .options(selectinload(models.GRIReport.indicators))
        .where(models.GRIReport.company_id == company_id)
    )
    if report_year is not None:
        stmt = stmt.where(models.GRIReport.report_year == as_int(report_year, 0))
    if status != "all":
        stmt = stmt.where(models.GRIReport.status == status)

    reports = (await db.execute(stmt.order_by(desc(models.GRIReport.report_year)))).scalars().all()

    items = []
    for report in reports:
        complete = sum(1 for i in report.indicators if i.is_complete)
        item = {
            "id": report.id,
            "title": report.title,
            "report_year": report.report_year,
            "status": report.status,
            "completion_percentage": as_float(report.completion_percentage),
            "indicators_total": len(report.indicators),
            "indicators_complete": complete,
        }
        if include_indicators:
            item["indicators"] = [
                {"code": i.indicator_code, "value": i.value, "is_complete": bool(i.is_complete)}
                for i in report.indicators
            ]
        items.append(item)

    return ok({"total": len(items), "reports": items}, f"{len(items)} GRI reports found")


# =========================
# Financial ledgers
# =========================
async def query_accounting_entries(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    start_date = parse_date(args.get("startDate"))
    end_date = parse_date(args.get("endDate"))
    status = args.get("status", "all")
    limit = as_int(args.get("limit"), 50)

    stmt = select(models.AccountingEntry).where(models.AccountingEntry.company_id == company_id)
    if start_date:
        stmt = stmt.where(models.AccountingEntry.entry_date >= start_date)
    if end_date:
        stmt = stmt.where(models.AccountingEntry.entry_date <= end_date)
    if status != "all":
        stmt = stmt.where(models.AccountingEntry.status == status)

    entries = (await db.execute(stmt.order_by(desc(models.AccountingEntry.entry_date)))).scalars().all()

    by_category: Dict[str, float] = {}
    for entry in entries:
        key = entry.esg_category or "Unclassified"
        by_category[key] = by_category.get(key, 0) + as_float(entry.total_amount)

    return ok(
        {
            "total_entries": len(entries),
            "total_amount": round(sum(as_float(e.total_amount) for e in entries), 2),
            "by_esg_category": {k: round(v, 2) for k, v in by_category.items()},
            "entries": [
                {
                    "id": e.id,
                    "entry_date": iso(e.entry_date),
                    "description": e.description,
                    "total_amount": as_float(e.total_amount),
                    "entry_type": e.entry_type,
                    "status": e.status,
                }
                for e in entries[:limit]
            ],
        },
        f"{len(entries)} accounting entries found",
    )


async def _query_ledger(
    model, name_field: str, args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    """Shared filter logic for payables and receivables."""
    status = args.get("status", "all")
    due_in_days = args.get("dueInDays")
    esg_category = args.get("esgCategory", "all")
    today = date.today()

    stmt = select(model).where(model.company_id == company_id)
    if status == "overdue":
        stmt = stmt.where(
            or_(model.status == "overdue", and_(model.status == "pending", model.due_date < today))
        )
    elif status != "all":
        stmt = stmt.where(model.status == status)
    if due_in_days is not None:
        stmt = stmt.where(
            model.due_date.between(today, today + timedelta(days=as_int(due_in_days, 30)))
        )
    if esg_category != "all":
        stmt = stmt.where(func.lower(model.esg_category) == esg_category.lower())

    rows = (await db.execute(stmt.order_by(model.due_date))).scalars().all()

    return {
        "total": len(rows),
        "total_amount": round(sum(as_float(r.amount) for r in rows), 2),
        "items": [
            {
                "id": r.id,
                "name": getattr(r, name_field),
                "amount": as_float(r.amount),
                "due_date": iso(r.due_date),
                "status": r.status,
                "esg_category": r.esg_category,
            }
            for r in rows
        ],
    }


async def query_accounts_payable(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    data = await _query_ledger(models.AccountPayable, "supplier_name", args, company_id, db)
    return ok(data, f"{data['total']} payables totalling {data['total_amount']:.2f}")


async def query_accounts_receivable(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    data = await _query_ledger(models.AccountReceivable, "customer_name", args, company_id, db)
    return ok(data, f"{data['total']} receivables totalling {data['total_amount']:.2f}")


# =========================
# Search
# =========================
SEARCHABLE = (
    ("goal", models.Goal, "goal_name"),
    ("task", models.DataCollectionTask, "name"),
    ("document", models.Document, "file_name"),
    ("risk", models.EsgRisk, "risk_title"),
    ("license", models.License, "license_name"),
    ("non_conformity", models.NonConformity, "title"),
)


async def global_search(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    term = (args.get("query") or "").strip()
    if not term:
        return fail("Search query is required")
    limit = as_int(args.get("limit"), 20)

    results: List[Dict[str, Any]] = []
    for kind, model, field_name in SEARCHABLE:
        column = getattr(model, field_name)
        stmt = (
            select(model.id, column.label("title"))
            .where(and_(model.company_id == company_id, column.ilike(f"%{term}%")))
            .limit(limit)
        )
        for row in (await db.execute(stmt)).all():
            results.append({"type": kind, "id": row.id, "title": row.title})

    results = results[:limit]
    return ok({"query": term, "total": len(results), "results": results}, f"{len(results)} matches for '{term}'")


# =========================
# Analytics tools
# =========================
async def analyze_trends(args: Dict[str, Any], company_id: int, db: AsyncSession) -> Dict[str, Any]:
    metric = args.get("metric")
    if metric not in ("emissions", "goals", "tasks", "licenses", "risks", "non_conformities"):
        return fail(f"Unsupported metric: {metric}")
    data = await analytics.analyze_trends(
        metric, args.get("period", "last_90_days"), args.get("groupBy", "month"), company_id, db
    )
    return ok(data, data["summary"])


async def compare_periods(args: Dict[str, Any], company_id: int, db: AsyncSession) -> Dict[str, Any]:
    try:
        data = await analytics.compare_periods(
            args.get("metric"),
            args.get("currentPeriod"),
            args.get("previousPeriod"),
            company_id,
            db,
        )
    except ValueError as error:
        return fail(str(error))
    comparison = data["comparison"]
    return ok(data, f"{comparison['direction']} of {comparison['percent_change']}%")


async def predict_future_metrics(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    metric = args.get("metric")
    if metric not in ("emissions", "goal_achievement", "task_completion_rate"):
        return fail(f"Unsupported metric: {metric}")
    data = await analytics.predict_future_metrics(
        metric,
        args.get("forecastPeriod", "next_month"),
        bool(args.get("includeConfidence", False)),
        company_id,
        db,
    )
    return ok(data, f"Forecast {data['prediction']['value']} ({data['prediction']['trend']})")


async def analyze_correlations(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    metrics = list(dict.fromkeys(args.get("metrics") or []))
    if len(metrics) < 2:
        return fail("At least 2 metrics are required for correlation analysis")
    try:
        data = await analytics.analyze_correlations(
            metrics, args.get("period", "last_year"), company_id, db
        )
    except ValueError as error:
        return fail(str(error))
    return ok(data, f"{len(data['correlations'])} metric pairs analyzed")


async def analyze_compliance_gaps(
    args: Dict[str, Any], company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    """
    Compliance gaps per framework and a 0-100 score.
    Score: 100 - 20 per critical gap - 10 per high gap - 5 per other gap.
    """
    framework = args.get("framework", "all")
    include_remediation = bool(args.get("includeRemediation", True))
    today = date.today()

    gaps: List[Dict[str, Any]] = []
    remediation: List[Dict[str, Any]] = []

    if framework in ("all", "licenses"):
        licenses = (
            await db.execute(select(models.License).where(models.License.company_id == company_id))
        ).scalars().all()
        expired = sum(1 for lic in licenses if lic.expiration_date < today)
        expiring = sum(1 for lic in licenses if 0 <= (lic.expiration_date - today).days <= 60)

        if expired:
            gaps.append(
                {
                    "framework": "licenses",
                    "gap": f"{expired} expired license(s)",
                    "severity": "critical",
                    "risk": "Irregular operation, fines or embargo",
                }
            )
            remediation.append(
                {
                    "gap": "Expired licenses",
                    "action": "Start the renewal process immediately",
                    "priority": "urgent",
                    "estimated_time": "30-90 days",
                }
            )
        if expiring:
            gaps.append(
                {
                    "framework": "licenses",
                    "gap": f"{expiring} license(s) expiring within 60 days",
                    "severity": "high",
                    "risk": "Expiry without renewal",
                }
            )

    if framework in ("all", "gri"):
        report = (
            await db.execute(
                select(models.GRIReport)
                .where(
                    and_(
                        models.GRIReport.company_id == company_id,
                        models.GRIReport.status == "in_progress",
                    )
                )
                .order_by(desc(models.GRIReport.report_year))
                .limit(1)
            )
        ).scalars().first()

        if report is None:
            gaps.append(
                {
                    "framework": "gri",
                    "gap": "No GRI report in progress",
                    "severity": "medium",
                    "risk": "Lack of ESG disclosure",
                }
            )
        elif as_float(report.completion_percentage) < 70:
            gaps.append(
                {
                    "framework": "gri",
                    "gap": f"Report {as_float(report.completion_percentage):.0f}% complete",
                    "severity": "medium",
                    "risk": "Incomplete ESG disclosure",
                }
            )
            remediation.append(
                {
                    "gap": "Incomplete GRI report",
                    "action": "Prioritize data collection for mandatory indicators",
                    "priority": "high",
                    "estimated_time": "2-4 weeks",
                }
            )

    if framework in ("all", "iso14001"):
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
        if open_ncs > 5:
            gaps.append(
                {
                    "framework": "iso14001",
                    "gap": f"{open_ncs} open non-conformities",
                    "severity": "high",
                    "risk": "Management system not effective",
                }
            )
            remediation.append(
                {
                    "gap": "Many open non-conformities",
                    "action": "Run a focused non-conformity treatment program",
                    "priority": "high",
                    "estimated_time": "1-2 months",
                }
            )

        overdue = (
            await db.execute(
                select(func.count(models.DataCollectionTask.id)).where(
                    and_(
                        models.DataCollectionTask.company_id == company_id,
                        models.DataCollectionTask.status == "overdue",
                    )
                )
            )
        ).scalar() or 0
        if overdue > 10:
            gaps.append(
                {
                    "framework": "iso14001",
                    "gap": f"{overdue} overdue tasks",
                    "severity": "medium",
                    "risk": "Loss of operational control",
                }
            )

    critical = sum(1 for g in gaps if g["severity"] == "critical")
    high = sum(1 for g in gaps if g["severity"] == "high")
    other = len(gaps) - critical - high
    score = max(0, 100 - critical * 20 - high * 10 - other * 5)

    by_framework: Dict[str, List[Dict[str, Any]]] = {}
    for gap in gaps:
        by_framework.setdefault(gap["framework"], []).append(gap)

    data: Dict[str, Any] = {
        "framework": framework,
        "compliance_score": score,
        "total_gaps": len(gaps),
        "gaps_by_framework": by_framework,
        "gaps": gaps,
    }
    if include_remediation:
        data["remediation"] = remediation

    return ok(data, f"Compliance score {score} with {len(gaps)} gap(s)")
