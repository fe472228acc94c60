from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# -----------------------------------------------------------------------------
# TOOL REGISTRY
# Purpose: describe every operation the assistant may call, with a JSON Schema
# for its arguments. The orchestrator hands these to the LLM verbatim.
# -----------------------------------------------------------------------------


class ToolDefinition(BaseModel):
    name: str
    description: str
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )

    def to_function_spec(self) -> Dict[str, Any]:
        """Render the OpenAI-style function-calling envelope."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def _params(properties: Dict[str, Any], required: Optional[List[str]] = None):
    return {"type": "object", "properties": properties, "required": required or []}


def _enum(values: List[str], description: str) -> Dict[str, Any]:
    return {"type": "string", "enum": values, "description": description}


ESG_CATEGORIES = ["all", "environmental", "social", "governance"]
TREND_METRICS = ["emissions", "goals", "tasks", "licenses", "risks", "non_conformities"]
CORRELATION_METRICS = ["emissions", "goals", "tasks", "risks", "non_conformities", "employees"]
RATIO_GROUPS = ["liquidity", "profitability", "debt", "esg_impact"]


# =========================
# READ TOOLS
# =========================
READ_TOOLS: List[ToolDefinition] = [
    ToolDefinition(
        name="get_comprehensive_company_data",
        description=(
            "Fetch a snapshot of all relevant company data at once (emissions, goals, "
            "risks, employees, documents, ...). Use it first to get full context."
        ),
        parameters=_params(
            {
                "includeEmissions": {"type": "boolean", "description": "Include emissions (default true)"},
                "includeGoals": {"type": "boolean", "description": "Include goals (default true)"},
                "includeGRI": {"type": "boolean", "description": "Include GRI reports (default false)"},
                "includeRisks": {"type": "boolean", "description": "Include ESG risks (default true)"},
                "includeEmployees": {"type": "boolean", "description": "Include employees (default true)"},
                "includeWaste": {"type": "boolean", "description": "Include waste logs (default false)"},
                "includeDocuments": {"type": "boolean", "description": "Include recent documents (default true)"},
            }
        ),
    ),
    ToolDefinition(
        name="get_dashboard_summary",
        description="Executive summary of the main ESG KPIs and alerts.",
        parameters=_params(
            {"includeAlerts": {"type": "boolean", "description": "Include items that need attention"}}
        ),
    ),
    ToolDefinition(
        name="query_emissions_data",
        description="Query GHG emissions: totals by scope, by period or by source.",
        parameters=_params(
            {
                "scope": _enum(["1", "2", "3", "all"], "Emission scope"),
                "year": {"type": "number", "description": "Reference year (default current year)"},
                "groupBy": _enum(["source", "month", "category"], "Grouping of the results"),
            },
            ["scope"],
        ),
    ),
    ToolDefinition(
        name="query_goals_progress",
        description="Query ESG goal progress, status and deadlines.",
        parameters=_params(
            {
                "status": _enum(["all", "active", "completed", "at_risk"], "Goal status filter"),
                "category": _enum(ESG_CATEGORIES, "Goal category"),
                "sortBy": _enum(["progress", "deadline"], "Sort order"),
            }
        ),
    ),
    ToolDefinition(
        name="query_licenses",
        description="Query environmental licenses: expired, expiring soon, status.",
        parameters=_params(
            {
                "status": _enum(["all", "active", "expired", "expiring_soon"], "License status"),
                "daysUntilExpiry": {
                    "type": "number",
                    "description": "Window in days used by expiring_soon (default 30)",
                },
            }
        ),
    ),
    ToolDefinition(
        name="query_tasks",
        description="Query data collection tasks: pending, overdue, completed.",
        parameters=_params(
            {
                "status": _enum(["all", "pending", "overdue", "completed"], "Task status"),
                "taskType": {"type": "string", "description": "Task type (emissions, waste, ...)"},
                "assignedTo": {"type": "number", "description": "Responsible user id"},
            }
        ),
    ),
    ToolDefinition(
        name="query_risks",
        description="Query identified ESG risks by level, category and status.",
        parameters=_params(
            {
                "level": _enum(["all", "critical", "high", "medium", "low"], "Risk level"),
                "category": _enum(ESG_CATEGORIES, "Risk category"),
                "status": _enum(["active", "mitigated", "all"], "Risk status"),
            }
        ),
    ),
    ToolDefinition(
        name="query_non_conformities",
        description="Query non-conformities by status and severity.",
        parameters=_params(
            {
                "status": _enum(["all", "open", "in_treatment", "closed"], "Status"),
                "severity": _enum(["all", "critical", "major", "minor"], "Severity"),
            }
        ),
    ),
    ToolDefinition(
        name="query_employees",
        description="Query employee headcount, departments and diversity.",
        parameters=_params(
            {
                "status": _enum(["all", "active", "inactive"], "Employee status"),
                "groupBy": _enum(["department", "gender", "position"], "Grouping"),
            }
        ),
    ),
    ToolDefinition(
        name="query_waste_data",
        description="Query waste generation, destination and recycling.",
        parameters=_params(
            {
                "wasteClass": _enum(["all", "I", "IIA", "IIB"], "Waste class (I hazardous, IIA non-inert, IIB inert)"),
                "year": {"type": "number", "description": "Reference year"},
                "groupBy": _enum(["type", "month", "destination"], "Grouping"),
            }
        ),
    ),
    ToolDefinition(
        name="query_documents",
        description="Query documents: reports, policies, certificates, evidence.",
        parameters=_params(
            {
                "documentType": _enum(
                    ["all", "policy", "report", "certificate", "evidence", "procedure"], "Document type"
                ),
                "tags": {"type": "array", "items": {"type": "string"}, "description": "Tags to filter on"},
                "searchTerm": {"type": "string", "description": "Term searched in the file name"},
                "recentOnly": {"type": "boolean", "description": "Only documents from the last 90 days"},
                "limit": {"type": "number", "description": "Maximum results (default 20)"},
            }
        ),
    ),
    ToolDefinition(
        name="query_gri_reports",
        description="Query GRI sustainability reports and indicator completion.",
        parameters=_params(
            {
                "reportYear": {"type": "number", "description": "Report year"},
                "status": _enum(["all", "draft", "in_progress", "completed"], "Report status"),
                "includeIndicators": {"type": "boolean", "description": "Include indicator details"},
            }
        ),
    ),
    ToolDefinition(
        name="query_accounting_entries",
        description="Query accounting entries for expense/revenue analysis.",
        parameters=_params(
            {
                "startDate": {"type": "string", "description": "Start date (YYYY-MM-DD)"},
                "endDate": {"type": "string", "description": "End date (YYYY-MM-DD)"},
                "status": _enum(["all", "draft", "posted", "approved"], "Entry status"),
                "limit": {"type": "number", "description": "Maximum entries listed (default 50)"},
            }
        ),
    ),
    ToolDefinition(
        name="query_accounts_payable",
        description="Query accounts payable: debts, upcoming payments, suppliers.",
        parameters=_params(
            {
                "status": _enum(["all", "pending", "paid", "overdue", "scheduled"], "Status"),
                "dueInDays": {"type": "number", "description": "Due within the next N days"},
                "esgCategory": _enum(ESG_CATEGORIES, "ESG category"),
            }
        ),
    ),
    ToolDefinition(
        name="query_accounts_receivable",
        description="Query accounts receivable: incoming revenue and defaults.",
        parameters=_params(
            {
                "status": _enum(["all", "pending", "received", "overdue"], "Status"),
                "dueInDays": {"type": "number", "description": "Due within the next N days"},
                "esgCategory": _enum(ESG_CATEGORIES, "ESG category"),
            }
        ),
    ),
    ToolDefinition(
        name="global_search",
        description="Search goals, tasks, documents, risks, licenses and non-conformities by keyword.",
        parameters=_params(
            {
                "query": {"type": "string", "description": "Search term"},
                "limit": {"type": "number", "description": "Maximum results (default 20)"},
            },
            ["query"],
        ),
    ),
    ToolDefinition(
        name="analyze_trends",
        description="Analyze how an ESG metric evolved over time.",
        parameters=_params(
            {
                "metric": _enum(TREND_METRICS, "Metric to analyze"),
                "period": _enum(
                    ["last_30_days", "last_90_days", "last_6_months", "last_year", "year_to_date"],
                    "Analysis window",
                ),
                "groupBy": _enum(["day", "week", "month", "quarter"], "Time granularity"),
            },
            ["metric", "period"],
        ),
    ),
    ToolDefinition(
        name="compare_periods",
        description="Compare a metric between two periods ('2025-01', 'Q1-2025', '2025').",
        parameters=_params(
            {
                "metric": _enum(
                    ["emissions", "goals_progress", "task_completion", "license_compliance"],
                    "Metric to compare",
                ),
                "currentPeriod": {"type": "string", "description": "Current period"},
                "previousPeriod": {"type": "string", "description": "Previous period"},
            },
            ["metric", "currentPeriod", "previousPeriod"],
        ),
    ),
    ToolDefinition(
        name="predict_future_metrics",
        description="Forecast a metric from its monthly history with linear regression.",
        parameters=_params(
            {
                "metric": _enum(["emissions", "goal_achievement", "task_completion_rate"], "Metric"),
                "forecastPeriod": _enum(
                    ["next_month", "next_quarter", "next_6_months", "next_year"], "Forecast horizon"
                ),
                "includeConfidence": {"type": "boolean", "description": "Include a confidence band"},
            },
            ["metric", "forecastPeriod"],
        ),
    ),
    ToolDefinition(
        name="analyze_correlations",
        description="Pearson correlation between monthly series of ESG metrics.",
        parameters=_params(
            {
                "metrics": {
                    "type": "array",
                    "items": {"type": "string", "enum": CORRELATION_METRICS},
                    "description": "Metrics to correlate (at least 2)",
                },
                "period": _enum(["last_90_days", "last_6_months", "last_year"], "Analysis window"),
            },
            ["metrics"],
        ),
    ),
    ToolDefinition(
        name="analyze_compliance_gaps",
        description="Find compliance gaps (licenses, GRI, ISO 14001) and remediation steps.",
        parameters=_params(
            {
                "framework": _enum(["all", "licenses", "gri", "iso14001"], "Framework"),
                "includeRemediation": {"type": "boolean", "description": "Include a remediation plan"},
            }
        ),
    ),
    ToolDefinition(
        name="calculate_financial_ratios",
        description="Liquidity, profitability, debt and ESG-spend ratios from the accounting ledgers.",
        parameters=_params(
            {
                "period": _enum(
                    ["current_month", "current_quarter", "current_year", "custom"], "Analysis period"
                ),
                "startDate": {"type": "string", "description": "Custom start (YYYY-MM-DD)"},
                "endDate": {"type": "string", "description": "Custom end (YYYY-MM-DD)"},
                "ratios": {
                    "type": "array",
                    "items": {"type": "string", "enum": ["all", *RATIO_GROUPS]},
                    "description": "Ratio groups (default all)",
                },
            }
        ),
    ),
    ToolDefinition(
        name="predict_cash_flow",
        description="Project monthly cash flow from open receivables and payables.",
        parameters=_params(
            {
                "forecastMonths": {"type": "number", "description": "Months ahead, 1 to 12 (default 3)"},
                "confidence": _enum(["low", "medium", "high"], "Width of the confidence band"),
                "includeESGImpact": {"type": "boolean", "description": "Show ESG-related outflows"},
            }
        ),
    ),
    ToolDefinition(
        name="analyze_financial_trends",
        description="Trend of revenue, expenses, profit, ESG costs or cash flow.",
        parameters=_params(
            {
                "metric": _enum(["revenue", "expenses", "profit", "esg_costs", "cash_flow"], "Metric"),
                "period": _enum(
                    ["last_3_months", "last_6_months", "last_12_months", "year_to_date"],
                    "Analysis window",
                ),
                "groupBy": _enum(["month", "quarter", "category", "esg_pillar"], "Grouping"),
            },
            ["metric"],
        ),
    ),
    ToolDefinition(
        name="benchmark_performance",
        description="Compare a company metric with its sector reference value.",
        parameters=_params(
            {
                "metric": _enum(
                    ["emissions_intensity", "goal_achievement_rate", "compliance_score"],
                    "Metric to benchmark",
                ),
                "sector": {"type": "string", "description": "Sector (defaults to the company's)"},
            },
            ["metric"],
        ),
    ),
    ToolDefinition(
        name="identify_optimization_opportunities",
        description="Find cost, efficiency, risk and goal opportunities with a roadmap.",
        parameters=_params(
            {
                "focus": _enum(
                    ["all", "cost_reduction", "efficiency", "risk_mitigation", "goal_acceleration"],
                    "Opportunity area",
                ),
                "includeImpact": {"type": "boolean", "description": "Include expected impact"},
            }
        ),
    ),
    ToolDefinition(
        name="analyze_stakeholder_impact",
        description="Estimate how an action affects each stakeholder group.",
        parameters=_params(
            {
                "action": {"type": "string", "description": "Action or decision to analyze"},
                "stakeholderGroups": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Groups to analyze (default: all standard groups)",
                },
            },
            ["action"],
        ),
    ),
    ToolDefinition(
        name="generate_executive_summary",
        description="Executive summary with KPIs, highlighted insights and a health score.",
        parameters=_params(
            {
                "scope": _enum(["full", "environmental", "social", "governance"], "Summary scope"),
                "includeRecommendations": {"type": "boolean", "description": "Include recommendations"},
                "priorityLevel": _enum(
                    ["critical_only", "high_priority", "all"], "Which insights to highlight"
                ),
            }
        ),
    ),
]


# =========================
# WRITE TOOLS
# =========================
WRITE_TOOLS: List[ToolDefinition] = [
    ToolDefinition(
        name="create_goal",
        description="Create a new ESG goal.",
        parameters=_params(
            {
                "goal_name": {"type": "string"},
                "category": _enum(["environmental", "social", "governance"], "Goal category"),
                "target_value": {"type": "number"},
                "baseline_value": {"type": "number"},
                "target_date": {"type": "string", "description": "YYYY-MM-DD"},
                "unit": {"type": "string"},
                "description": {"type": "string"},
            },
            ["goal_name", "category", "target_value", "target_date"],
        ),
    ),
    ToolDefinition(
        name="update_goal_progress",
        description="Record a new current value for a goal and recompute its progress.",
        parameters=_params(
            {
                "goal_id": {"type": "number"},
                "current_value": {"type": "number"},
                "update_date": {"type": "string", "description": "YYYY-MM-DD (default today)"},
                "notes": {"type": "string"},
            },
            ["goal_id", "current_value"],
        ),
    ),
    ToolDefinition(
        name="create_task",
        description="Create a data collection task.",
        parameters=_params(
            {
                "name": {"type": "string"},
                "task_type": {"type": "string"},
                "due_date": {"type": "string", "description": "YYYY-MM-DD"},
                "description": {"type": "string"},
                "assigned_to": {"type": "number"},
            },
            ["name", "task_type", "due_date"],
        ),
    ),
    ToolDefinition(
        name="update_task_status",
        description="Change the status of a data collection task.",
        parameters=_params(
            {
                "task_id": {"type": "number"},
                "status": _enum(["pending", "in_progress", "overdue", "completed"], "New status"),
            },
            ["task_id", "status"],
        ),
    ),
    ToolDefinition(
        name="create_license",
        description="Register an environmental license.",
        parameters=_params(
            {
                "license_name": {"type": "string"},
                "license_number": {"type": "string"},
                "license_type": {"type": "string"},
                "issuing_body": {"type": "string"},
                "issue_date": {"type": "string", "description": "YYYY-MM-DD"},
                "expiration_date": {"type": "string", "description": "YYYY-MM-DD"},
            },
            ["license_name", "license_type", "issuing_body", "expiration_date"],
        ),
    ),
    ToolDefinition(
        name="create_emission_source",
        description="Register an emission source in the GHG inventory.",
        parameters=_params(
            {
                "source_name": {"type": "string"},
                "scope": {"type": "number", "enum": [1, 2, 3]},
                "category": {"type": "string"},
                "unit": {"type": "string"},
            },
            ["source_name", "scope", "category"],
        ),
    ),
    ToolDefinition(
        name="add_activity_data",
        description="Add activity data (consumption) for an emission source.",
        parameters=_params(
            {
                "emission_source_id": {"type": "number"},
                "quantity": {"type": "number"},
                "unit": {"type": "string"},
                "period_start_date": {"type": "string", "description": "YYYY-MM-DD"},
                "period_end_date": {"type": "string", "description": "YYYY-MM-DD"},
            },
            ["emission_source_id", "quantity", "period_start_date", "period_end_date"],
        ),
    ),
    ToolDefinition(
        name="create_waste_log",
        description="Register a waste disposal record.",
        parameters=_params(
            {
                "waste_type": {"type": "string"},
                "waste_class": _enum(["I", "IIA", "IIB"], "Waste class"),
                "quantity": {"type": "number"},
                "unit": {"type": "string"},
                "final_destination": {"type": "string"},
                "log_date": {"type": "string", "description": "YYYY-MM-DD"},
            },
            ["waste_type", "quantity", "unit", "log_date"],
        ),
    ),
    ToolDefinition(
        name="create_risk",
        description="Register an ESG risk.",
        parameters=_params(
            {
                "risk_title": {"type": "string"},
                "category": _enum(["environmental", "social", "governance"], "Risk category"),
                "risk_level": _enum(["low", "medium", "high", "critical"], "Risk level"),
                "mitigation_plan": {"type": "string"},
            },
            ["risk_title", "category", "risk_level"],
        ),
    ),
    ToolDefinition(
        name="create_non_conformity",
        description="Open a non-conformity.",
        parameters=_params(
            {
                "title": {"type": "string"},
                "severity": _enum(["minor", "major", "critical"], "Severity"),
                "description": {"type": "string"},
                "detected_date": {"type": "string", "description": "YYYY-MM-DD"},
            },
            ["title", "severity"],
        ),
    ),
    ToolDefinition(
        name="bulk_import_employees",
        description="Import a list of employees, one row at a time.",
        parameters=_params(
            {
                "employees": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "full_name": {"type": "string"},
                            "department": {"type": "string"},
                            "position": {"type": "string"},
                            "gender": {"type": "string"},
                            "hire_date": {"type": "string"},
                        },
                    },
                }
            },
            ["employees"],
        ),
    ),
    ToolDefinition(
        name="bulk_import_goals",
        description="Import a list of goals, one row at a time.",
        parameters=_params(
            {
                "goals": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "goal_name": {"type": "string"},
                            "category": {"type": "string"},
                            "baseline_value": {"type": "number"},
                            "target_value": {"type": "number"},
                            "target_date": {"type": "string"},
                        },
                    },
                }
            },
            ["goals"],
        ),
    ),
]


_READ_BY_NAME = {tool.name: tool for tool in READ_TOOLS}
_WRITE_BY_NAME = {tool.name: tool for tool in WRITE_TOOLS}


def get_tool(name: str) -> Optional[ToolDefinition]:
    return _READ_BY_NAME.get(name) or _WRITE_BY_NAME.get(name)


def is_write_tool(name: str) -> bool:
    return name in _WRITE_BY_NAME


def is_read_tool(name: str) -> bool:
    return name in _READ_BY_NAME


def all_tools() -> List[ToolDefinition]:
    return READ_TOOLS + WRITE_TOOLS


def function_specs(kind: Optional[str] = None) -> List[Dict[str, Any]]:
    """Tool specs for the LLM, optionally only "read" or only "write"."""
    if kind == "read":
        tools = READ_TOOLS
    elif kind == "write":
        tools = WRITE_TOOLS
    else:
        tools = all_tools()
    return [tool.to_function_spec() for tool in tools]
