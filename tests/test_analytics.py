from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from esg_hub.core import models
from esg_hub.core.assistant import analytics


TODAY = date(2026, 6, 15)


async def add_emission(db, company_id, day, total):
    source = models.EmissionSource(
        company_id=company_id, source_name="Boiler", scope=1, category="Stationary combustion"
    )
    db.add(source)
    await db.flush()
    activity = models.ActivityData(
        emission_source_id=source.id, quantity=1, period_start_date=day, period_end_date=day
    )
    db.add(activity)
    await db.flush()
    db.add(
        models.CalculatedEmission(
            company_id=company_id,
            activity_data_id=activity.id,
            total_co2e=total,
            calculation_date=day,
        )
    )
    await db.commit()


# =========================
# Pure functions
# =========================
def test_linear_regression_reproduces_linear_series():
    slope, intercept = analytics.linear_regression([3, 5, 7, 9, 11])

    assert slope == pytest.approx(2.0)
    assert intercept == pytest.approx(3.0)


def test_linear_regression_small_inputs():
    assert analytics.linear_regression([]) == (0.0, 0.0)
    assert analytics.linear_regression([4]) == (0.0, 4.0)


def test_forecast_extends_the_line():
    result = analytics.forecast([3, 5, 7, 9], 1)

    assert result["value"] == pytest.approx(11.0)
    assert result["trend"] == "increasing"


def test_forecast_floors_at_zero():
    result = analytics.forecast([10, 8, 6, 4, 2], 3)

    assert result["value"] == 0.0
    assert result["trend"] == "decreasing"


def test_forecast_needs_two_points():
    assert analytics.forecast([5], 1)["trend"] == "insufficient_data"


def test_confidence_interval_uses_population_std():
    band = analytics.confidence_interval([2, 4, 4, 4, 5, 5, 7, 9], 10)

    assert band["lower"] == pytest.approx(6.08)
    assert band["upper"] == pytest.approx(13.92)
    assert band["level"] == 0.95


def test_pearson_self_and_negation():
    series = [1.5, 3.2, 2.8, 7.1, 4.4, 9.0]

    assert analytics.pearson_correlation(series, series) == pytest.approx(1.0, abs=1e-6)
    assert analytics.pearson_correlation(series, [-v for v in series]) == pytest.approx(-1.0, abs=1e-6)


def test_pearson_undefined_is_zero():
    assert analytics.pearson_correlation([2, 2, 2], [1, 5, 9]) == 0.0
    assert analytics.pearson_correlation([], []) == 0.0


def test_pearson_uses_common_prefix():
    r = analytics.pearson_correlation([1, 2, 3], [2, 4, 6, 100, -50])
    assert r == pytest.approx(1.0)


@pytest.mark.parametrize(
    "r, expected",
    [(0.85, "strong"), (-0.5, "moderate"), (0.3, "weak"), (0.1, "very_weak")],
)
def test_correlation_strength(r, expected):
    assert analytics.correlation_strength(r) == expected


@pytest.mark.parametrize(
    "day, group_by, expected",
    [
        (date(2025, 5, 14), "day", "2025-05-14"),
        (date(2025, 5, 14), "month", "2025-05"),
        (date(2025, 5, 14), "quarter", "2025-Q2"),
        (date(2025, 1, 1), "week", "2025-W01"),
        (date(2024, 12, 30), "week", "2025-W01"),
    ],
)
def test_period_key(day, group_by, expected):
    assert analytics.period_key(day, group_by) == expected


def test_aggregate_by_period_sums_and_tracks_change():
    points = [
        (date(2025, 2, 3), 30),
        (date(2025, 1, 5), 10),
        (date(2025, 1, 20), 5),
    ]
    trend = analytics.aggregate_by_period(points, "month", "sum")

    assert [p.period for p in trend] == ["2025-01", "2025-02"]
    assert trend[0].value == 15
    assert trend[0].change is None
    assert trend[1].change == 15
    assert trend[1].percent_change == pytest.approx(100.0)


def test_aggregate_by_period_mean_and_count():
    points = [(date(2025, 1, 5), 10), (date(2025, 1, 20), 20)]

    assert analytics.aggregate_by_period(points, "month", "mean")[0].value == 15
    assert analytics.aggregate_by_period(points, "month", "count")[0].value == 2


def test_trend_pattern_directions():
    def trend(*values):
        return analytics.aggregate_by_period(
            [(date(2025, m + 1, 1), v) for m, v in enumerate(values)], "month", "sum"
        )

    assert analytics.analyze_trend_pattern(trend(100, 103))["direction"] == "stable"
    assert analytics.analyze_trend_pattern(trend(100, 150))["direction"] == "increasing"
    assert analytics.analyze_trend_pattern(trend(100, 50))["direction"] == "decreasing"
    assert analytics.analyze_trend_pattern(trend(100))["direction"] == "insufficient_data"


@pytest.mark.parametrize(
    "label, start, end",
    [
        ("2025", date(2025, 1, 1), date(2025, 12, 31)),
        ("2024-02", date(2024, 2, 1), date(2024, 2, 29)),
        ("2025-12", date(2025, 12, 1), date(2025, 12, 31)),
        ("Q1-2025", date(2025, 1, 1), date(2025, 3, 31)),
        ("2025-Q4", date(2025, 10, 1), date(2025, 12, 31)),
    ],
)
def test_parse_period(label, start, end):
    bounds = analytics.parse_period(label)
    assert (bounds.start, bounds.end) == (start, end)


@pytest.mark.parametrize("label", ["garbage", "2025-13", "Q5-2025", ""])
def test_parse_period_rejects_bad_labels(label):
    with pytest.raises(ValueError):
        analytics.parse_period(label)


def test_compare_values():
    assert analytics.compare_values(120, 100) == {
        "absolute_change": 20,
        "percent_change": 20.0,
        "direction": "increase",
    }
    assert analytics.compare_values(50, 0)["percent_change"] == 0
    assert analytics.compare_values(7, 7)["direction"] == "stable"


def test_month_grid_crosses_year():
    assert analytics.month_grid(3, date(2026, 1, 15)) == ["2025-11", "2025-12", "2026-01"]


def test_predict_goal_completion_linear_pace():
    goal = SimpleNamespace(
        progress_percentage=10,
        start_date=date(2026, 1, 1),
        target_date=date(2026, 12, 31),
    )
    predicted = analytics.predict_goal_completion(goal, [], today=date(2026, 7, 1))

    assert predicted == pytest.approx(10 * 364 / 181)


def test_predict_goal_completion_regresses_updates():
    goal = SimpleNamespace(
        progress_percentage=20,
        start_date=date(2026, 1, 1),
        target_date=date(2026, 1, 31),
    )
    updates = [
        SimpleNamespace(update_date=date(2026, 1, 1), progress_percentage=0),
        SimpleNamespace(update_date=date(2026, 1, 11), progress_percentage=20),
    ]
    # 2 points per day over the 30 days to target
    assert analytics.predict_goal_completion(goal, updates, today=date(2026, 1, 11)) == pytest.approx(60.0)


def test_new_goal_has_no_projection():
    goal = SimpleNamespace(
        progress_percentage=0,
        start_date=TODAY,
        target_date=date(2030, 12, 31),
    )

    assert analytics.predict_goal_completion(goal, [], today=TODAY) is None
    assert analytics.goal_at_risk(goal, [], today=TODAY) is False


def test_goal_near_deadline_under_half_is_at_risk():
    goal = SimpleNamespace(
        progress_percentage=30,
        start_date=TODAY,
        target_date=TODAY + timedelta(days=60),
    )

    assert analytics.goal_at_risk(goal, [], today=TODAY) is True
    goal.progress_percentage = 55
    assert analytics.goal_at_risk(goal, [], today=TODAY) is False


def test_goal_behind_pace_is_at_risk():
    goal = SimpleNamespace(
        progress_percentage=10,
        start_date=date(2026, 1, 1),
        target_date=date(2027, 12, 31),
    )

    assert analytics.goal_at_risk(goal, [], today=TODAY) is True


# =========================
# Store-backed analyses
# =========================
@pytest.mark.asyncio
async def test_analyze_trends_for_emissions(db_session, test_company):
    for month, total in ((3, 10), (4, 20), (5, 30), (6, 40)):
        await add_emission(db_session, test_company.id, date(2026, month, 10), total)

    result = await analytics.analyze_trends(
        "emissions", "last_6_months", "month", test_company.id, db_session, today=TODAY
    )

    assert [p["period"] for p in result["data_points"]] == ["2026-03", "2026-04", "2026-05", "2026-06"]
    assert [p["value"] for p in result["data_points"]] == [10, 20, 30, 40]
    assert result["trend"] == "increasing"
    assert result["velocity"] == 10


@pytest.mark.asyncio
async def test_compare_periods_for_emissions(db_session, test_company):
    await add_emission(db_session, test_company.id, date(2026, 3, 10), 10)
    await add_emission(db_session, test_company.id, date(2026, 4, 10), 20)

    result = await analytics.compare_periods(
        "emissions", "2026-04", "2026-03", test_company.id, db_session
    )

    assert result["current_period"]["value"] == 20
    assert result["previous_period"]["value"] == 10
    assert result["comparison"]["direction"] == "increase"
    assert result["comparison"]["percent_change"] == 100.0


@pytest.mark.asyncio
async def test_compare_periods_rejects_bad_period(db_session, test_company):
    with pytest.raises(ValueError):
        await analytics.compare_periods("emissions", "soon", "2026-03", test_company.id, db_session)


@pytest.mark.asyncio
async def test_predict_future_emissions(db_session, test_company):
    for month, total in ((3, 10), (4, 20), (5, 30), (6, 40)):
        await add_emission(db_session, test_company.id, date(2026, month, 10), total)

    result = await analytics.predict_future_metrics(
        "emissions", "next_month", True, test_company.id, db_session, today=TODAY
    )

    assert result["prediction"]["value"] == pytest.approx(50.0)
    assert result["prediction"]["trend"] == "increasing"
    assert "confidence" in result["prediction"]
    assert len(result["history"]) == 4


@pytest.mark.asyncio
async def test_correlations_share_the_monthly_grid(db_session, test_company):
    for month, total in ((3, 10), (4, 20), (5, 30), (6, 40)):
        await add_emission(db_session, test_company.id, date(2026, month, 10), total)
        for _ in range(month - 2):
            db_session.add(
                models.NonConformity(
                    company_id=test_company.id,
                    title="Spill",
                    detected_date=date(2026, month, 12),
                )
            )
    await db_session.commit()

    result = await analytics.analyze_correlations(
        ["emissions", "non_conformities"], "last_year", test_company.id, db_session, today=TODAY
    )

    pair = result["correlations"][0]
    assert result["months"] == 12
    assert pair["correlation"] == pytest.approx(1.0)
    assert pair["strength"] == "strong"
    assert pair["direction"] == "positive"
