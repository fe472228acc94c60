import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_

from esg_hub.core import models


# -----------------------------------------------------------------------------
# WRITE EXECUTORS
# Purpose: create and update domain rows on behalf of the assistant.
# Required fields are checked before anything touches the session, so a
# rejected call never leaves a row behind.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

REQUIRED_FIELDS: Dict[str, List[str]] = {
    "create_goal": ["goal_name", "category", "target_value", "target_date"],
    "update_goal_progress": ["goal_id", "current_value"],
    "create_task": ["name", "task_type", "due_date"],
    "update_task_status": ["task_id", "status"],
    "create_license": ["license_name", "license_type", "issuing_body", "expiration_date"],
    "create_emission_source": ["source_name", "scope", "category"],
    "add_activity_data": ["emission_source_id", "quantity", "period_start_date", "period_end_date"],
    "create_waste_log": ["waste_type", "quantity", "unit", "log_date"],
    "create_risk": ["risk_title", "category", "risk_level"],
    "create_non_conformity": ["title", "severity"],
    "bulk_import_employees": ["employees"],
    "bulk_import_goals": ["goals"],
}

EMPLOYEE_FIELDS = ["full_name"]
GOAL_FIELDS = ["goal_name", "target_value", "target_date"]


def missing_fields(args: Dict[str, Any], required: List[str]) -> List[str]:
    """
    Names of required fields that are absent, None or an empty string.

    Example:
        missing_fields({"a": 1, "b": ""}, ["a", "b", "c"]) -> ["b", "c"]
    """
    return [name for name in required if args.get(name) in (None, "")]


def validation_error(missing: List[str]) -> Dict[str, Any]:
    return {
        "success": False,
        "error": f"Missing required fields: {', '.join(missing)}",
        "missing": missing,
    }


def check_required(tool_name: str, args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    missing = missing_fields(args, REQUIRED_FIELDS[tool_name])
    if missing:
        logger.warning(f"{tool_name} rejected, missing: {missing}")
        return validation_error(missing)
    return None


def to_date(value: Any) -> Optional[date]:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def goal_progress(current: float, baseline: float, target: float) -> float:
    """Progress toward target in percent, clamped to 0..100."""
    span = target - baseline
    if span == 0:
        return 100.0 if current == target else 0.0
    return max(0.0, min(100.0, (current - baseline) / span * 100))


# =========================
# Goals
# =========================
async def create_goal(
    args: Dict[str, Any], company_id: int, user_id: int, db: AsyncSession
) -> Dict[str, Any]:
    error = check_required("create_goal", args)
    if error:
        return error

    baseline = float(args.get("baseline_value") or 0)
    goal = models.Goal(
        company_id=company_id,
        goal_name=args["goal_name"],
        category=args["category"],
        description=args.get("description"),
        baseline_value=baseline,
        target_value=float(args["target_value"]),
        current_value=baseline,
        progress_percentage=0,
        unit=args.get("unit"),
        start_date=date.today(),
        target_date=to_date(args["target_date"]),
        status="active",
    )
    db.add(goal)
    await db.commit()
    await db.refresh(goal)

    return {
        "success": True,
        "message": f"Goal '{goal.goal_name}' created",
        "data": {"id": goal.id, "goal_name": goal.goal_name, "target_date": goal.target_date.isoformat()},
    }


async def update_goal_progress(
    args: Dict[str, Any], company_id: int, user_id: int, db: AsyncSession
) -> Dict[str, Any]:
    """
    Record a new current value, recompute progress and append a progress update.
    A goal reaching 100% is marked completed.
    """
    error = check_required("update_goal_progress", args)
    if error:
        return error

    result = await db.execute(
        select(models.Goal).where(
            and_(models.Goal.id == int(args["goal_id"]), models.Goal.company_id == company_id)
        )
    )
    goal = result.scalars().first()
    if not goal:
        return {"success": False, "error": "Goal not found"}

    current = float(args["current_value"])
    progress = goal_progress(current, float(goal.baseline_value or 0), float(goal.target_value))

    goal.current_value = current
    goal.progress_percentage = progress
    if progress >= 100:
        goal.status = "completed"

    db.add(
        models.GoalProgressUpdate(
            goal_id=goal.id,
            update_date=to_date(args.get("update_date")) or date.today(),
            current_value=current,
            progress_percentage=progress,
            notes=args.get("notes"),
        )
    )
    await db.commit()

    return {
        "success": True,
        "message": f"Goal '{goal.goal_name}' is at {progress:.1f}%",
        "data": {"id": goal.id, "progress": round(progress, 2), "status": goal.status},
    }


async def bulk_import_goals(
    args: Dict[str, Any], company_id: int, user_id: int, db: AsyncSession
) -> Dict[str, Any]:
    error = check_required("bulk_import_goals", args)
    if error:
        return error
    return await _bulk_import(args["goals"], GOAL_FIELDS, _goal_from_row, company_id, db)


def _goal_from_row(row: Dict[str, Any], company_id: int) -> models.Goal:
    baseline = float(row.get("baseline_value") or 0)
    return models.Goal(
        company_id=company_id,
        goal_name=row["goal_name"],
        category=row.get("category") or "environmental",
        baseline_value=baseline,
        target_value=float(row["target_value"]),
        current_value=baseline,
        progress_percentage=0,
        unit=row.get("unit"),
        start_date=date.today(),
        target_date=to_date(row["target_date"]),
        status="active",
    )


# =========================
# Tasks and licenses
# =========================
async def create_task(
    args: Dict[str, Any], company_id: int, user_id: int, db: AsyncSession
) -> Dict[str, Any]:
    error = check_required("create_task", args)
    if error:
        return error

    task = models.DataCollectionTask(
        company_id=company_id,
        name=args["name"],
        task_type=args["task_type"],
        description=args.get("description"),
        due_date=to_date(args["due_date"]),
        assigned_to=args.get("assigned_to"),
        status="pending",
    )
    db.add(task)
    await db.commit()
    await db.refresh(task)

    return {
        "success": True,
        "message": f"Task '{task.name}' created",
        "data": {"id": task.id, "name": task.name, "due_date": task.due_date.isoformat()},
    }


async def update_task_status(
    args: Dict[str, Any], company_id: int, user_id: int, db: AsyncSession
) -> Dict[str, Any]:
    error = check_required("update_task_status", args)
    if error:
        return error

    result = await db.execute(
        select(models.DataCollectionTask).where(
            and_(
                models.DataCollectionTask.id == int(args["task_id"]),
                models.DataCollectionTask.company_id == company_id,
            )
        )
    )
    task = result.scalars().first()
    if not task:
        return {"success": False, "error": "Task not found"}

    task.status = args["status"]
    task.completed_date = date.today() if task.status == "completed" else None
    await db.commit()

    return {
        "success": True,
        "message": f"Task '{task.name}' is now {task.status}",
        "data": {"id": task.id, "status": task.status},
    }


async def create_license(
    args: Dict[str, Any], company_id: int, user_id: int, db: AsyncSession
) -> Dict[str, Any]:
    error = check_required("create_license", args)
    if error:
        return error

    license_row = models.License(
        company_id=company_id,
        license_name=args["license_name"],
        license_number=args.get("license_number"),
        license_type=args["license_type"],
        issuing_body=args["issuing_body"],
        issue_date=to_date(args.get("issue_date")),
        expiration_date=to_date(args["expiration_date"]),
        status="active",
    )
    db.add(license_row)
    await db.commit()
    await db.refresh(license_row)

    return {
        "success": True,
        "message": f"License '{license_row.license_name}' registered",
        "data": {
            "id": license_row.id,
            "expiration_date": license_row.expiration_date.isoformat(),
        },
    }


# =========================
# Emissions and waste
# =========================
async def create_emission_source(
    args: Dict[str, Any], company_id: int, user_id: int, db: AsyncSession
) -> Dict[str, Any]:
    error = check_required("create_emission_source", args)
    if error:
        return error

    scope = int(args["scope"])
    if scope not in (1, 2, 3):
        return {"success": False, "error": "Scope must be 1, 2 or 3"}

    source = models.EmissionSource(
        company_id=company_id,
        source_name=args["source_name"],
        scope=scope,
        category=args["category"],
        unit=args.get("unit"),
    )
    db.add(source)
    await db.commit()
    await db.refresh(source)

    return {
        "success": True,
        "message": f"Emission source '{source.source_name}' created",
        "data": {"id": source.id, "scope": source.scope},
    }


async def add_activity_data(
    args: Dict[str, Any], company_id: int, user_id: int, db: AsyncSession
) -> Dict[str, Any]:
    error = check_required("add_activity_data", args)
    if error:
        return error

    result = await db.execute(
        select(models.EmissionSource).where(
            and_(
                models.EmissionSource.id == int(args["emission_source_id"]),
                models.EmissionSource.company_id == company_id,
            )
        )
    )
    source = result.scalars().first()
    if not source:
        return {"success": False, "error": "Emission source not found"}

    start = to_date(args["period_start_date"])
    end = to_date(args["period_end_date"])
    if end < start:
        return {"success": False, "error": "period_end_date is before period_start_date"}

    activity = models.ActivityData(
        emission_source_id=source.id,
        quantity=float(args["quantity"]),
        unit=args.get("unit") or source.unit,
        period_start_date=start,
        period_end_date=end,
    )
    db.add(activity)
    await db.commit()
    await db.refresh(activity)

    return {
        "success": True,
        "message": f"Activity data added to '{source.source_name}'",
        "data": {"id": activity.id, "emission_source_id": source.id},
    }


async def create_waste_log(
    args: Dict[str, Any], company_id: int, user_id: int, db: AsyncSession
) -> Dict[str, Any]:
    error = check_required("create_waste_log", args)
    if error:
        return error

    log = models.WasteLog(
        company_id=company_id,
        waste_type=args["waste_type"],
        waste_class=args.get("waste_class"),
        quantity=float(args["quantity"]),
        unit=args["unit"],
        final_destination=args.get("final_destination"),
        log_date=to_date(args["log_date"]),
    )
    db.add(log)
    await db.commit()
    await db.refresh(log)

    return {
        "success": True,
        "message": f"Waste log for '{log.waste_type}' registered",
        "data": {"id": log.id},
    }


# =========================
# Risks and non-conformities
# =========================
async def create_risk(
    args: Dict[str, Any], company_id: int, user_id: int, db: AsyncSession
) -> Dict[str, Any]:
    error = check_required("create_risk", args)
    if error:
        return error

    risk = models.EsgRisk(
        company_id=company_id,
        risk_title=args["risk_title"],
        category=args["category"],
        risk_level=args["risk_level"],
        mitigation_plan=args.get("mitigation_plan"),
        identified_date=date.today(),
        status="active",
    )
    db.add(risk)
    await db.commit()
    await db.refresh(risk)

    return {
        "success": True,
        "message": f"Risk '{risk.risk_title}' registered",
        "data": {"id": risk.id, "risk_level": risk.risk_level},
    }


async def create_non_conformity(
    args: Dict[str, Any], company_id: int, user_id: int, db: AsyncSession
) -> Dict[str, Any]:
    error = check_required("create_non_conformity", args)
    if error:
        return error

    nc = models.NonConformity(
        company_id=company_id,
        title=args["title"],
        severity=args["severity"],
        description=args.get("description"),
        detected_date=to_date(args.get("detected_date")) or date.today(),
        status="open",
    )
    db.add(nc)
    await db.commit()
    await db.refresh(nc)

    return {
        "success": True,
        "message": f"Non-conformity '{nc.title}' opened",
        "data": {"id": nc.id, "severity": nc.severity},
    }


# =========================
# Bulk imports
# =========================
async def bulk_import_employees(
    args: Dict[str, Any], company_id: int, user_id: int, db: AsyncSession
) -> Dict[str, Any]:
    error = check_required("bulk_import_employees", args)
    if error:
        return error
    return await _bulk_import(args["employees"], EMPLOYEE_FIELDS, _employee_from_row, company_id, db)


def _employee_from_row(row: Dict[str, Any], company_id: int) -> models.Employee:
    return models.Employee(
        company_id=company_id,
        full_name=row["full_name"],
        email=row.get("email"),
        department=row.get("department"),
        position=row.get("position"),
        gender=row.get("gender"),
        hire_date=to_date(row.get("hire_date")),
        status="active",
    )


async def _bulk_import(
    rows: List[Dict[str, Any]], required: List[str], build, company_id: int, db: AsyncSession
) -> Dict[str, Any]:
    """
    Insert rows one by one, committing each.
    A failing row is rolled back on its own; rows already committed stay.

    Returns:
        {"success", "message", "data": {"imported", "failed", "errors"}}
    """
    if not isinstance(rows, list):
        return {"success": False, "error": "Expected a list of rows"}

    imported = 0
    errors: List[Dict[str, Any]] = []

    for index, row in enumerate(rows):
        missing = missing_fields(row, required) if isinstance(row, dict) else required
        if missing:
            errors.append({"row": index, "error": f"Missing required fields: {', '.join(missing)}"})
            continue

        try:
            db.add(build(row, company_id))
            await db.commit()
            imported += 1
        except Exception as e:
            await db.rollback()
            logger.error(f"Bulk import row {index} failed: {e}")
            errors.append({"row": index, "error": str(e)})

    return {
        "success": imported > 0 or not rows,
        "message": f"Imported {imported} of {len(rows)} rows",
        "data": {"imported": imported, "failed": len(errors), "errors": errors},
    }
