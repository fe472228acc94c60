import pytest
from sqlalchemy import select, func

from esg_hub.core import models
from esg_hub.core.assistant import registry
from esg_hub.core.assistant import dispatcher
from esg_hub.core.assistant.dispatcher import execute_tool, READ_HANDLERS, WRITE_HANDLERS
from esg_hub.core.assistant.write import REQUIRED_FIELDS


# =========================
# Registry
# =========================
def test_every_tool_has_exactly_one_handler():
    read_names = {tool.name for tool in registry.READ_TOOLS}
    write_names = {tool.name for tool in registry.WRITE_TOOLS}

    assert read_names == set(READ_HANDLERS)
    assert write_names == set(WRITE_HANDLERS)
    assert not read_names & write_names


def test_write_tool_required_fields_match_schema():
    for tool in registry.WRITE_TOOLS:
        assert tool.parameters["required"] == REQUIRED_FIELDS[tool.name]


def test_function_spec_envelope():
    spec = registry.get_tool("query_licenses").to_function_spec()

    assert spec["type"] == "function"
    assert spec["function"]["name"] == "query_licenses"
    assert spec["function"]["parameters"]["type"] == "object"


def test_lookup_helpers():
    assert registry.is_write_tool("create_goal")
    assert not registry.is_write_tool("query_tasks")
    assert registry.is_read_tool("query_tasks")
    assert registry.get_tool("drop_database") is None
    assert len(registry.all_tools()) == len(registry.READ_TOOLS) + len(registry.WRITE_TOOLS)
    assert len(registry.function_specs("write")) == len(registry.WRITE_TOOLS)


# =========================
# Dispatcher
# =========================
@pytest.mark.asyncio
async def test_unknown_tool(db_session, test_company):
    result = await execute_tool("drop_database", {}, test_company.id, db_session)
    assert result == {"error": "Unknown tool: drop_database"}


@pytest.mark.asyncio
async def test_read_tool_runs_once(db_session, test_company, monkeypatch):
    calls = []

    async def fake_handler(args, company_id, db):
        calls.append((args, company_id))
        return {"success": True, "data": [], "message": "ok"}

    monkeypatch.setitem(dispatcher.READ_HANDLERS, "query_risks", fake_handler)

    result = await execute_tool("query_risks", {"level": "high"}, test_company.id, db_session)

    assert result["success"] is True
    assert calls == [({"level": "high"}, test_company.id)]


@pytest.mark.asyncio
async def test_write_tool_is_audited_before_running(db_session, test_company, test_user):
    args = {
        "goal_name": "Reduce water use",
        "category": "environmental",
        "target_value": 1000,
        "target_date": "2027-12-31",
    }
    result = await execute_tool("create_goal", args, test_company.id, db_session, user_id=test_user.id)

    assert result["success"] is True

    log = (await db_session.execute(select(models.ActivityLog))).scalars().one()
    assert log.action_type == "ai_create_goal"
    assert log.user_id == test_user.id
    assert log.company_id == test_company.id
    assert log.target_id == str(test_company.id)
    assert log.details == {"tool": "create_goal", "args": args}


@pytest.mark.asyncio
async def test_write_tool_requires_user(db_session, test_company):
    result = await execute_tool("create_task", {"name": "x"}, test_company.id, db_session)

    assert result == {"error": "A user is required to run write tools"}
    count = (await db_session.execute(select(func.count(models.ActivityLog.id)))).scalar()
    assert count == 0


@pytest.mark.asyncio
async def test_handler_failure_keeps_audit_row(db_session, test_company, test_user, monkeypatch):
    async def broken_handler(args, company_id, user_id, db):
        raise RuntimeError("database went away")

    monkeypatch.setitem(dispatcher.WRITE_HANDLERS, "create_risk", broken_handler)

    result = await execute_tool(
        "create_risk", {"risk_title": "Flood"}, test_company.id, db_session, user_id=test_user.id
    )

    assert result == {"error": "database went away"}
    count = (await db_session.execute(select(func.count(models.ActivityLog.id)))).scalar()
    assert count == 1


@pytest.mark.asyncio
async def test_read_tool_does_not_write_audit_rows(db_session, test_company):
    await execute_tool("query_tasks", {}, test_company.id, db_session)

    count = (await db_session.execute(select(func.count(models.ActivityLog.id)))).scalar()
    assert count == 0
