from datetime import date, timedelta

import pytest

from esg_hub.core import models
from esg_hub.core.assistant import finance


def first_of_next_month(day: date) -> date:
    return (day.replace(day=1) + timedelta(days=32)).replace(day=1)


def first_of_previous_month(day: date) -> date:
    return (day.replace(day=1) - timedelta(days=1)).replace(day=1)


def entry(company_id, amount, entry_type, day=None, esg_category=None):
    return models.AccountingEntry(
        company_id=company_id,
        entry_date=day or date.today(),
        total_amount=amount,
        entry_type=entry_type,
        status="posted",
        esg_category=esg_category,
    )


def test_financial_period_quarter():
    bounds = finance.financial_period({"period": "current_quarter"}, date(2026, 8, 20))

    assert bounds.start == date(2026, 7, 1)
    assert bounds.end == date(2026, 8, 20)


@pytest.mark.parametrize(
    "args",
    [
        {"period": "last_decade"},
        {"period": "custom", "startDate": "2026-01-01"},
        {"period": "custom", "startDate": "2026-05-01", "endDate": "2026-01-01"},
    ],
)
def test_financial_period_rejects_bad_input(args):
    with pytest.raises(ValueError):
        finance.financial_period(args, date(2026, 8, 20))


def test_future_months_cross_year():
    assert finance.future_months(3, date(2026, 11, 30)) == ["2026-11", "2026-12", "2027-01"]


# =========================
# Ratios
# =========================
@pytest.mark.asyncio
async def test_calculate_financial_ratios(db_session, test_company):
    today = date.today()
    db_session.add_all(
        [
            entry(test_company.id, 1000, "revenue"),
            entry(test_company.id, 300, "expense"),
            entry(test_company.id, 100, "expense", esg_category="environmental"),
            entry(test_company.id, 999, None),
            models.AccountPayable(
                company_id=test_company.id,
                supplier_name="Energy Co",
                amount=200,
                due_date=today - timedelta(days=1),
                status="pending",
            ),
            models.AccountReceivable(
                company_id=test_company.id,
                customer_name="Retailer",
                amount=500,
                due_date=today + timedelta(days=10),
                status="pending",
            ),
        ]
    )
    await db_session.commit()

    result = await finance.calculate_financial_ratios(
        {"period": "current_month"}, test_company.id, db_session
    )

    assert result["success"] is True
    ratios = result["data"]["ratios"]
    assert ratios["profitability"]["revenue"] == 1000
    assert ratios["profitability"]["expenses"] == 400
    assert ratios["profitability"]["net_margin_percent"] == 60.0
    assert ratios["liquidity"]["current_ratio"] == 2.5
    assert ratios["debt"]["overdue_share_percent"] == 100.0
    assert ratios["esg_impact"]["esg_share_of_expenses_percent"] == 25.0
    assert ratios["esg_impact"]["by_pillar"]["environmental"] == 100


@pytest.mark.asyncio
async def test_ratios_can_be_selected(db_session, test_company):
    result = await finance.calculate_financial_ratios(
        {"ratios": ["liquidity"]}, test_company.id, db_session
    )

    assert list(result["data"]["ratios"]) == ["liquidity"]
    assert result["data"]["ratios"]["liquidity"]["current_ratio"] is None


@pytest.mark.asyncio
async def test_ratios_reject_unknown_groups(db_session, test_company):
    result = await finance.calculate_financial_ratios(
        {"ratios": ["solvency"]}, test_company.id, db_session
    )

    assert result == {"success": False, "error": "Unsupported ratios: solvency"}


# =========================
# Cash flow
# =========================
@pytest.mark.asyncio
@pytest.mark.parametrize("months", [0, 13])
async def test_cash_flow_months_are_limited(db_session, test_company, months):
    result = await finance.predict_cash_flow({"forecastMonths": months}, test_company.id, db_session)

    assert result == {"success": False, "error": "forecastMonths must be between 1 and 12"}


@pytest.mark.asyncio
async def test_cash_flow_buckets_by_due_month(db_session, test_company):
    today = date.today()
    db_session.add_all(
        [
            # past due, still expected
            models.AccountReceivable(
                company_id=test_company.id,
                customer_name="Retailer",
                amount=300,
                due_date=today - timedelta(days=45),
                status="overdue",
            ),
            models.AccountPayable(
                company_id=test_company.id,
                supplier_name="Waste hauler",
                amount=100,
                due_date=first_of_next_month(today),
                status="scheduled",
                esg_category="environmental",
            ),
            # outside the horizon
            models.AccountPayable(
                company_id=test_company.id,
                supplier_name="Landlord",
                amount=5000,
                due_date=today + timedelta(days=400),
                status="pending",
            ),
            # already settled
            models.AccountReceivable(
                company_id=test_company.id,
                customer_name="Distributor",
                amount=800,
                due_date=today,
                status="received",
            ),
        ]
    )
    await db_session.commit()

    result = await finance.predict_cash_flow(
        {"forecastMonths": 2, "includeESGImpact": True}, test_company.id, db_session
    )

    assert result["success"] is True
    current, following = result["data"]["projection"]
    assert current["month"] == today.strftime("%Y-%m")
    assert current["inflow"] == 300
    assert current["net"] == 300
    assert following["outflow"] == 100
    assert following["esg_outflow"] == 100
    assert following["cumulative"] == 200
    assert result["data"]["total_net"] == 200
    # no booked history, so the band collapses on the projection
    assert current["lower"] == current["upper"] == 300


@pytest.mark.asyncio
async def test_cash_flow_rejects_unknown_confidence(db_session, test_company):
    result = await finance.predict_cash_flow({"confidence": "total"}, test_company.id, db_session)

    assert result["success"] is False


# =========================
# Trends
# =========================
@pytest.mark.asyncio
async def test_revenue_trend_by_month(db_session, test_company):
    today = date.today()
    db_session.add_all(
        [
            entry(test_company.id, 100, "revenue", first_of_previous_month(today)),
            entry(test_company.id, 200, "revenue", today),
            entry(test_company.id, 50, "expense", today),
        ]
    )
    await db_session.commit()

    result = await finance.analyze_financial_trends(
        {"metric": "revenue", "period": "last_3_months"}, test_company.id, db_session
    )

    assert result["data"]["total"] == 300
    assert [p["value"] for p in result["data"]["series"]] == [100, 200]
    assert result["data"]["trend"] == "increasing"


@pytest.mark.asyncio
async def test_expense_breakdown_by_esg_pillar(db_session, test_company):
    db_session.add_all(
        [
            entry(test_company.id, 300, "expense", esg_category="environmental"),
            entry(test_company.id, 100, "expense", esg_category="Social"),
            entry(test_company.id, 100, "expense"),
        ]
    )
    await db_session.commit()

    result = await finance.analyze_financial_trends(
        {"metric": "expenses", "groupBy": "esg_pillar"}, test_company.id, db_session
    )

    breakdown = result["data"]["breakdown"]
    assert breakdown[0] == {"group": "environmental", "value": 300, "share_percent": 60.0}
    assert {row["group"] for row in breakdown} == {"environmental", "social", "other"}


@pytest.mark.asyncio
async def test_cash_flow_trend_uses_settled_items(db_session, test_company):
    today = date.today()
    db_session.add_all(
        [
            models.AccountReceivable(
                company_id=test_company.id, customer_name="A", amount=500, due_date=today, status="received"
            ),
            models.AccountPayable(
                company_id=test_company.id, supplier_name="B", amount=200, due_date=today, status="paid"
            ),
            models.AccountPayable(
                company_id=test_company.id, supplier_name="C", amount=900, due_date=today, status="pending"
            ),
        ]
    )
    await db_session.commit()

    result = await finance.analyze_financial_trends(
        {"metric": "cash_flow", "period": "year_to_date"}, test_company.id, db_session
    )

    assert result["data"]["total"] == 300


@pytest.mark.asyncio
async def test_financial_trends_reject_unknown_metric(db_session, test_company):
    result = await finance.analyze_financial_trends({"metric": "ebitda"}, test_company.id, db_session)

    assert result == {"success": False, "error": "Unsupported metric: ebitda"}
