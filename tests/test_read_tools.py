from datetime import date, timedelta

import pytest

from esg_hub.core import models
from esg_hub.core.assistant import read
from esg_hub.core.assistant.cache import cache


async def add_license(db, company_id, name, expires_in_days):
    lic = models.License(
        company_id=company_id,
        license_name=name,
        license_type="LO",
        issuing_body="State agency",
        expiration_date=date.today() + timedelta(days=expires_in_days),
    )
    db.add(lic)
    await db.commit()
    return lic


# =========================
# Licenses
# =========================
@pytest.mark.asyncio
async def test_expiring_soon_uses_the_window(db_session, test_company):
    await add_license(db_session, test_company.id, "Operating license", 10)
    await add_license(db_session, test_company.id, "Water permit", 90)

    result = await read.query_licenses(
        {"status": "expiring_soon", "daysUntilExpiry": 30}, test_company.id, db_session
    )

    assert result["success"] is True
    names = [lic["license_name"] for lic in result["data"]["licenses"]]
    assert names == ["Operating license"]


@pytest.mark.asyncio
async def test_expiring_soon_defaults_to_30_days(db_session, test_company):
    await add_license(db_session, test_company.id, "Soon", 29)
    await add_license(db_session, test_company.id, "Later", 31)
    await add_license(db_session, test_company.id, "Expired", -1)

    result = await read.query_licenses({"status": "expiring_soon"}, test_company.id, db_session)

    assert [lic["license_name"] for lic in result["data"]["licenses"]] == ["Soon"]


@pytest.mark.asyncio
async def test_expired_and_active_licenses(db_session, test_company):
    await add_license(db_session, test_company.id, "Old", -5)
    await add_license(db_session, test_company.id, "Valid", 200)

    expired = await read.query_licenses({"status": "expired"}, test_company.id, db_session)
    active = await read.query_licenses({"status": "active"}, test_company.id, db_session)

    assert [lic["license_name"] for lic in expired["data"]["licenses"]] == ["Old"]
    assert [lic["license_name"] for lic in active["data"]["licenses"]] == ["Valid"]
    assert expired["data"]["licenses"][0]["days_until_expiration"] == -5


@pytest.mark.asyncio
async def test_queries_are_scoped_to_the_company(db_session, test_company, other_company):
    await add_license(db_session, other_company.id, "Not mine", 10)

    result = await read.query_licenses({"status": "all"}, test_company.id, db_session)

    assert result["data"]["total"] == 0


# =========================
# Tasks and goals
# =========================
@pytest.mark.asyncio
async def test_overdue_tasks(db_session, test_company):
    yesterday = date.today() - timedelta(days=1)
    db_session.add_all(
        [
            models.DataCollectionTask(
                company_id=test_company.id, name="Late", task_type="emissions", due_date=yesterday
            ),
            models.DataCollectionTask(
                company_id=test_company.id,
                name="Done",
                task_type="emissions",
                due_date=yesterday,
                status="completed",
            ),
            models.DataCollectionTask(
                company_id=test_company.id,
                name="Future",
                task_type="waste",
                due_date=date.today() + timedelta(days=10),
            ),
        ]
    )
    await db_session.commit()

    result = await read.query_tasks({"status": "overdue"}, test_company.id, db_session)

    assert [t["name"] for t in result["data"]["tasks"]] == ["Late"]


@pytest.mark.asyncio
async def test_goal_progress_buckets(db_session, test_company):
    for name, progress in (("A", 90), ("B", 60), ("C", 10)):
        db_session.add(
            models.Goal(
                company_id=test_company.id,
                goal_name=name,
                category="environmental",
                target_value=100,
                progress_percentage=progress,
                target_date=date.today() + timedelta(days=365),
            )
        )
    await db_session.commit()

    result = await read.query_goals_progress({}, test_company.id, db_session)
    data = result["data"]

    assert data["total"] == 3
    assert (data["on_track"], data["attention"], data["delayed"]) == (1, 1, 1)
    assert [g["goal_name"] for g in data["goals"]] == ["A", "B", "C"]


# =========================
# Search, analytics and compliance
# =========================
@pytest.mark.asyncio
async def test_global_search(db_session, test_company, test_goal):
    db_session.add(
        models.Document(company_id=test_company.id, file_name="Emissions policy.pdf", tags=["policy"])
    )
    await db_session.commit()

    result = await read.global_search({"query": "emission"}, test_company.id, db_session)
    kinds = {r["type"] for r in result["data"]["results"]}

    assert kinds == {"goal", "document"}


@pytest.mark.asyncio
async def test_global_search_requires_query(db_session, test_company):
    result = await read.global_search({"query": "  "}, test_company.id, db_session)
    assert result["success"] is False


@pytest.mark.asyncio
async def test_compare_periods_bad_label_is_a_failure_envelope(db_session, test_company):
    result = await read.compare_periods(
        {"metric": "emissions", "currentPeriod": "someday", "previousPeriod": "2025"},
        test_company.id,
        db_session,
    )

    assert result["success"] is False
    assert "someday" in result["error"]


@pytest.mark.asyncio
async def test_correlations_need_two_metrics(db_session, test_company):
    result = await read.analyze_correlations({"metrics": ["emissions"]}, test_company.id, db_session)
    assert result["success"] is False


@pytest.mark.asyncio
async def test_compliance_score(db_session, test_company):
    await add_license(db_session, test_company.id, "Expired", -3)

    result = await read.analyze_compliance_gaps({"framework": "licenses"}, test_company.id, db_session)

    assert result["data"]["total_gaps"] == 1
    assert result["data"]["compliance_score"] == 80
    assert result["data"]["remediation"]


# =========================
# Cached snapshots
# =========================
@pytest.mark.asyncio
async def test_dashboard_summary_is_cached(db_session, test_company):
    await add_license(db_session, test_company.id, "Soon", 5)

    first = await read.get_dashboard_summary({"includeAlerts": True}, test_company.id, db_session)
    assert first["data"]["kpis"]["licenses_expiring_30_days"] == 1
    assert f"dashboard_summary_{test_company.id}_True" in cache

    # New rows are not visible until the entry expires
    await add_license(db_session, test_company.id, "Also soon", 6)
    second = await read.get_dashboard_summary({"includeAlerts": True}, test_company.id, db_session)
    assert second["data"]["kpis"]["licenses_expiring_30_days"] == 1


@pytest.mark.asyncio
async def test_comprehensive_data_sections(db_session, test_company, test_goal):
    result = await read.get_comprehensive_company_data(
        {"includeEmissions": False, "includeWaste": True}, test_company.id, db_session
    )

    sections = result["data"]["data"]
    assert "goals" in sections
    assert "waste" in sections
    assert "emissions" not in sections
    assert sections["company"]["name"] == test_company.name
