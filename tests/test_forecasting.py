"""Tests for monthly cash flow, projection and scenario simulation."""

from datetime import date
from types import SimpleNamespace

import pytest

from budgetexec.forecasting import (
    CashFlowForecaster,
    ModelAssumptions,
    MonthlyCashFlow,
    ScenarioPreset,
    ScenarioSimulator,
    SimulationScenario,
)
from budgetexec.forecasting.cash_flow_forecaster import add_months


def _flow(flow_type, planned, amount):
    return SimpleNamespace(flow_type=flow_type, planned_date=planned, effective_amount=amount)


@pytest.fixture
def series():
    return MonthlyCashFlow(
        months=['2025-01', '2025-02', '2025-03', '2025-04'],
        inflows=[0.0, 0.0, 500000.0, 600000.0],
        outflows=[400000.0, 300000.0, 100000.0, 0.0],
    )


@pytest.fixture
def assumptions():
    return ModelAssumptions(
        total_revenue=1200000.0,
        presale_rate=100.0,
        land_cost=300000.0,
        construction_cost=500000.0,
        other_costs=100000.0,
        loan_amount=600000.0,
        interest_rate=5.0,
        construction_period_months=24,
    )


class TestMonths:
    @pytest.mark.parametrize("start,count,expected", [
        ('2025-11', 3, '2026-02'),
        ('2025-01', -1, '2024-12'),
        ('2025-06', 0, '2025-06'),
    ])
    def test_add_months(self, start, count, expected):
        assert add_months(start, count) == expected


class TestMonthlyCashFlow:
    def test_from_items_fills_gaps(self):
        series = MonthlyCashFlow.from_items([
            _flow('OUTFLOW', date(2025, 1, 5), 100.0),
            _flow('INFLOW', date(2025, 3, 5), 300.0),
            _flow('OUTFLOW', date(2025, 3, 25), 50.0),
        ])

        assert series.months == ['2025-01', '2025-02', '2025-03']
        assert series.inflows == [0.0, 0.0, 300.0]
        assert series.outflows == [100.0, 0.0, 50.0]
        assert series.net_cash_flow == [-100.0, 0.0, 250.0]
        assert series.cumulative_cash_flow == [-100.0, -100.0, 150.0]

    def test_min_cash_point(self, series):
        assert series.min_cash_point == {'month': '2025-02', 'amount': -700000.0}

    def test_empty(self):
        series = MonthlyCashFlow.from_items([])
        assert series.months == []
        assert series.min_cash_point is None


class TestCashFlowForecaster:
    def test_projection_shape(self, series):
        result = CashFlowForecaster().project(series, periods=3)

        assert result.months == ['2025-05', '2025-06', '2025-07']
        assert len(result.predicted_cumulative) == 3
        assert all(lo <= mid <= hi for lo, mid, hi in
                   zip(result.lower_bound, result.predicted_cumulative, result.upper_bound))

    def test_bands_widen(self, series):
        result = CashFlowForecaster().project(series, periods=4)
        widths = [hi - lo for lo, hi in zip(result.lower_bound, result.upper_bound)]
        assert widths == sorted(widths)

    def test_negative_cash_month(self):
        burning = MonthlyCashFlow(months=['2025-01', '2025-02'],
                                  inflows=[100.0, 100.0], outflows=[50.0, 200.0])
        result = CashFlowForecaster().project(burning, periods=6)
        assert result.negative_cash_month is not None

    def test_empty_series_rejected(self):
        with pytest.raises(ValueError):
            CashFlowForecaster().project(MonthlyCashFlow([], [], []))

    def test_periods_must_be_positive(self, series):
        with pytest.raises(ValueError):
            CashFlowForecaster().project(series, periods=0)


class TestScenarioSimulator:
    def test_baseline(self, assumptions, series):
        result = ScenarioSimulator().simulate(assumptions, series, SimulationScenario(name="Base"))

        # interest = 600,000 * 5% * 24 / 12
        assert result.interest_cost == 60000.0
        assert result.total_cost == 960000.0
        assert result.expected_profit == 240000.0
        assert result.roi == 25.0
        assert result.profit_change == 0.0
        assert result.cash_flow['months'] == series.months

    def test_presale_delay(self, assumptions, series):
        result = ScenarioSimulator().simulate(
            assumptions, series, SimulationScenario(name="Delay", presale_delay=3)
        )

        assert result.interest_cost == 67500.0
        assert result.profit_change == -7500.0
        assert len(result.cash_flow['months']) == 7
        assert result.cash_flow['inflows'][:3] == [0.0, 0.0, 0.0]
        assert any('presale delay' in r for r in result.recommendations)

    def test_low_presale_loss(self, assumptions, series):
        result = ScenarioSimulator().simulate(
            assumptions, series, SimulationScenario(name="Low", presale_rate=50.0)
        )
        assert result.expected_profit == -360000.0
        assert 'loss' in result.recommendations[0]

    def test_cost_overrun(self, assumptions, series):
        result = ScenarioSimulator().simulate(
            assumptions, series, SimulationScenario(name="Overrun", construction_cost_change=10)
        )
        assert result.total_cost == 1010000.0

    @pytest.mark.parametrize("kwargs", [
        {'presale_delay': -1},
        {'presale_rate': 120.0},
        {'construction_cost_change': 150.0},
    ])
    def test_invalid_scenarios(self, kwargs):
        with pytest.raises(ValueError):
            SimulationScenario(name="Bad", **kwargs)

    def test_all_presets(self, assumptions, series):
        results = ScenarioSimulator().multi_scenario(assumptions, series)
        assert set(results) == {p.value for p in ScenarioPreset}
        assert results['stress'].expected_profit < results['baseline'].expected_profit
