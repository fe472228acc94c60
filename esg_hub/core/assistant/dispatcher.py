import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from esg_hub.core import models
from esg_hub.core.assistant import advanced, finance, read, write
from esg_hub.core.assistant.registry import is_read_tool, is_write_tool


# -----------------------------------------------------------------------------
# DISPATCHER
# Purpose: route a tool call by name to exactly one executor.
# Write calls are audited before they run; the audit row is committed on its
# own and survives a failing executor.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

ReadHandler = Callable[[Dict[str, Any], int, AsyncSession], Awaitable[Dict[str, Any]]]
WriteHandler = Callable[[Dict[str, Any], int, int, AsyncSession], Awaitable[Dict[str, Any]]]

READ_HANDLERS: Dict[str, ReadHandler] = {
    "get_comprehensive_company_data": read.get_comprehensive_company_data,
    "get_dashboard_summary": read.get_dashboard_summary,
    "query_emissions_data": read.query_emissions_data,
    "query_goals_progress": read.query_goals_progress,
    "query_licenses": read.query_licenses,
    "query_tasks": read.query_tasks,
    "query_risks": read.query_risks,
    "query_non_conformities": read.query_non_conformities,
    "query_employees": read.query_employees,
    "query_waste_data": read.query_waste_data,
    "query_documents": read.query_documents,
    "query_gri_reports": read.query_gri_reports,
    "query_accounting_entries": read.query_accounting_entries,
    "query_accounts_payable": read.query_accounts_payable,
    "query_accounts_receivable": read.query_accounts_receivable,
    "global_search": read.global_search,
    "analyze_trends": read.analyze_trends,
    "compare_periods": read.compare_periods,
    "predict_future_metrics": read.predict_future_metrics,
    "analyze_correlations": read.analyze_correlations,
    "analyze_compliance_gaps": read.analyze_compliance_gaps,
    "calculate_financial_ratios": finance.calculate_financial_ratios,
    "predict_cash_flow": finance.predict_cash_flow,
    "analyze_financial_trends": finance.analyze_financial_trends,
    "benchmark_performance": advanced.benchmark_performance,
    "identify_optimization_opportunities": advanced.identify_optimization_opportunities,
    "analyze_stakeholder_impact": advanced.analyze_stakeholder_impact,
    "generate_executive_summary": advanced.generate_executive_summary,
}

WRITE_HANDLERS: Dict[str, WriteHandler] = {
    "create_goal": write.create_goal,
    "update_goal_progress": write.update_goal_progress,
    "create_task": write.create_task,
    "update_task_status": write.update_task_status,
    "create_license": write.create_license,
    "create_emission_source": write.create_emission_source,
    "add_activity_data": write.add_activity_data,
    "create_waste_log": write.create_waste_log,
    "create_risk": write.create_risk,
    "create_non_conformity": write.create_non_conformity,
    "bulk_import_employees": write.bulk_import_employees,
    "bulk_import_goals": write.bulk_import_goals,
}


async def log_write_action(
    tool_name: str, args: Dict[str, Any], company_id: int, user_id: int, db: AsyncSession
) -> None:
    entry = models.ActivityLog(
        company_id=company_id,
        user_id=user_id,
        action_type=f"ai_{tool_name}",
        target_id=str(company_id),
        description=f"Assistant ran {tool_name}",
        details={"tool": tool_name, "args": args},
    )
    db.add(entry)
    await db.commit()


async def execute_tool(
    tool_name: str,
    args: Dict[str, Any],
    company_id: int,
    db: AsyncSession,
    user_id: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Run one tool for a company.

    Args:
        tool_name: registered read or write tool
        args: tool arguments as sent by the model
        company_id: tenant scope, taken from the authenticated user
        user_id: required for write tools (audit trail)

    Returns:
        The executor's result, or {"error": ...} for unknown tools and failures
    """
    args = args or {}

    if not (is_read_tool(tool_name) or is_write_tool(tool_name)):
        logger.warning(f"Unknown tool requested: {tool_name}")
        return {"error": f"Unknown tool: {tool_name}"}

    try:
        if is_write_tool(tool_name):
            if user_id is None:
                return {"error": "A user is required to run write tools"}
            await log_write_action(tool_name, args, company_id, user_id, db)
            logger.info(f"Running write tool {tool_name} for company {company_id}")
            return await WRITE_HANDLERS[tool_name](args, company_id, user_id, db)

        logger.debug(f"Running read tool {tool_name} for company {company_id}")
        return await READ_HANDLERS[tool_name](args, company_id, db)

    except Exception as e:
        await db.rollback()
        logger.error(f"Tool {tool_name} failed: {e}")
        return {"error": str(e)}
