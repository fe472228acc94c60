from datetime import date

import pytest
from sqlalchemy import select, func

from esg_hub.core import models
from esg_hub.core.assistant import insights, read, write


async def count_rows(db, model):
    return (await db.execute(select(func.count(model.id)))).scalar()


def test_missing_fields_treats_empty_as_missing():
    args = {"goal_name": "", "category": None, "target_value": 0}
    missing = write.missing_fields(args, ["goal_name", "category", "target_value", "target_date"])

    assert missing == ["goal_name", "category", "target_date"]


def test_goal_progress_is_clamped():
    assert write.goal_progress(75, 100, 50) == 50
    assert write.goal_progress(120, 0, 100) == 100
    assert write.goal_progress(-10, 0, 100) == 0


@pytest.mark.asyncio
async def test_create_goal_rejects_missing_fields(db_session, test_company, test_user):
    result = await write.create_goal(
        {"goal_name": "Net zero", "category": ""}, test_company.id, test_user.id, db_session
    )

    assert result == {
        "success": False,
        "error": "Missing required fields: category, target_value, target_date",
        "missing": ["category", "target_value", "target_date"],
    }
    assert await count_rows(db_session, models.Goal) == 0


@pytest.mark.asyncio
async def test_create_task(db_session, test_company, test_user):
    result = await write.create_task(
        {"name": "Collect fuel invoices", "task_type": "emissions", "due_date": "2026-11-30"},
        test_company.id,
        test_user.id,
        db_session,
    )

    assert result["success"] is True
    task = await db_session.get(models.DataCollectionTask, result["data"]["id"])
    assert task.status == "pending"
    assert task.due_date == date(2026, 11, 30)
    assert task.company_id == test_company.id


@pytest.mark.asyncio
async def test_new_goal_is_not_at_risk(db_session, test_company, test_user):
    created = await write.create_goal(
        {
            "goal_name": "Net zero operations",
            "category": "environmental",
            "target_value": 0,
            "baseline_value": 1200,
            "target_date": "2030-12-31",
        },
        test_company.id,
        test_user.id,
        db_session,
    )
    assert created["success"] is True

    at_risk = await read.query_goals_progress({"status": "at_risk"}, test_company.id, db_session)
    found = await insights.generate_insights("/goals", test_company.id, db_session)

    assert at_risk["data"]["total"] == 0
    assert found == []


@pytest.mark.asyncio
async def test_update_goal_progress(db_session, test_company, test_user, test_goal):
    result = await write.update_goal_progress(
        {"goal_id": test_goal.id, "current_value": 75, "notes": "New chillers"},
        test_company.id,
        test_user.id,
        db_session,
    )

    assert result["success"] is True
    assert result["data"]["progress"] == 50
    assert result["data"]["status"] == "active"

    updates = (await db_session.execute(select(models.GoalProgressUpdate))).scalars().all()
    assert len(updates) == 1
    assert updates[0].progress_percentage == 50
    assert updates[0].notes == "New chillers"


@pytest.mark.asyncio
async def test_goal_reaching_target_is_completed(db_session, test_company, test_user, test_goal):
    result = await write.update_goal_progress(
        {"goal_id": test_goal.id, "current_value": 40}, test_company.id, test_user.id, db_session
    )

    assert result["data"]["progress"] == 100
    assert result["data"]["status"] == "completed"


@pytest.mark.asyncio
async def test_update_goal_of_other_company(db_session, other_company, test_user, test_goal):
    result = await write.update_goal_progress(
        {"goal_id": test_goal.id, "current_value": 75}, other_company.id, test_user.id, db_session
    )

    assert result == {"success": False, "error": "Goal not found"}


@pytest.mark.asyncio
async def test_update_task_status_sets_completed_date(db_session, test_company, test_user):
    task = models.DataCollectionTask(
        company_id=test_company.id, name="Meter reading", task_type="energy", due_date=date(2026, 1, 1)
    )
    db_session.add(task)
    await db_session.commit()

    result = await write.update_task_status(
        {"task_id": task.id, "status": "completed"}, test_company.id, test_user.id, db_session
    )

    assert result["success"] is True
    assert task.completed_date == date.today()


@pytest.mark.asyncio
async def test_activity_data_needs_own_source(db_session, test_company, other_company, test_user):
    source = models.EmissionSource(
        company_id=other_company.id, source_name="Fleet", scope=1, category="Mobile combustion"
    )
    db_session.add(source)
    await db_session.commit()

    result = await write.add_activity_data(
        {
            "emission_source_id": source.id,
            "quantity": 100,
            "period_start_date": "2026-01-01",
            "period_end_date": "2026-01-31",
        },
        test_company.id,
        test_user.id,
        db_session,
    )

    assert result == {"success": False, "error": "Emission source not found"}
    assert await count_rows(db_session, models.ActivityData) == 0


@pytest.mark.asyncio
async def test_create_emission_source_checks_scope(db_session, test_company, test_user):
    result = await write.create_emission_source(
        {"source_name": "Boiler", "scope": 4, "category": "Stationary combustion"},
        test_company.id,
        test_user.id,
        db_session,
    )

    assert result["success"] is False
    assert await count_rows(db_session, models.EmissionSource) == 0


@pytest.mark.asyncio
async def test_bulk_import_keeps_good_rows(db_session, test_company, test_user):
    employees = [
        {"full_name": "Ana Souza", "department": "Operations"},
        {"department": "Finance"},
        {"full_name": "Bruno Lima", "hire_date": "2024-03-01"},
    ]

    result = await write.bulk_import_employees(
        {"employees": employees}, test_company.id, test_user.id, db_session
    )

    assert result["data"]["imported"] == 2
    assert result["data"]["failed"] == 1
    assert result["data"]["errors"][0]["row"] == 1
    assert await count_rows(db_session, models.Employee) == 2


@pytest.mark.asyncio
async def test_bulk_import_goals(db_session, test_company, test_user):
    goals = [
        {"goal_name": "Zero landfill", "target_value": 100, "target_date": "2028-01-01"},
        {"goal_name": "Bad date", "target_value": 10, "target_date": "not a date"},
    ]

    result = await write.bulk_import_goals({"goals": goals}, test_company.id, test_user.id, db_session)

    assert result["data"]["imported"] == 1
    assert result["data"]["failed"] == 1
    assert await count_rows(db_session, models.Goal) == 1
