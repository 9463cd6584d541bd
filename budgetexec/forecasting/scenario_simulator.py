"""
Scenario Simulator

What-if analysis on a project's financial model: presale delays, presale
rate changes, construction cost overruns and interest rate moves, with
their effect on expected profit, ROI and the cumulative cash position.
"""

import logging
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, List, Any, Optional

from .cash_flow_forecaster import MonthlyCashFlow, add_months

logger = logging.getLogger(__name__)


class ScenarioPreset(Enum):
    """Named scenario presets"""
    BASELINE = "baseline"               # Model assumptions as-is
    PRESALE_DELAY = "presale_delay"     # Sales start 3 months late
    LOW_PRESALE = "low_presale"         # Only 70% of units sold
    COST_OVERRUN = "cost_overrun"       # Construction cost +10%
    RATE_HIKE = "rate_hike"             # Interest +2%p
    STRESS = "stress"                   # All of the above


@dataclass
class SimulationScenario:
    """Scenario parameters"""
    name: str
    presale_delay: int = 0                     # months
    presale_rate: Optional[float] = None       # % of units sold, None = model value
    construction_cost_change: float = 0.0      # % change, -100 to 100
    interest_rate_change: float = 0.0          # percentage points

    def __post_init__(self):
        if self.presale_delay < 0:
            raise ValueError("presale_delay cannot be negative")
        if self.presale_rate is not None and not 0 <= self.presale_rate <= 100:
            raise ValueError("presale_rate must be between 0 and 100")
        if not -100 <= self.construction_cost_change <= 100:
            raise ValueError("construction_cost_change must be between -100 and 100")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SimulationScenario':
        presale_rate = data.get('presale_rate')
        return cls(
            name=data.get('name') or 'Custom scenario',
            presale_delay=int(data.get('presale_delay') or 0),
            presale_rate=float(presale_rate) if presale_rate is not None else None,
            construction_cost_change=float(data.get('construction_cost_change') or 0),
            interest_rate_change=float(data.get('interest_rate_change') or 0),
        )

    @classmethod
    def preset(cls, preset: ScenarioPreset) -> 'SimulationScenario':
        return {
            ScenarioPreset.BASELINE: cls(name="Baseline"),
            ScenarioPreset.PRESALE_DELAY: cls(name="Presale delay", presale_delay=3),
            ScenarioPreset.LOW_PRESALE: cls(name="Low presale", presale_rate=70.0),
            ScenarioPreset.COST_OVERRUN: cls(name="Cost overrun", construction_cost_change=10.0),
            ScenarioPreset.RATE_HIKE: cls(name="Rate hike", interest_rate_change=2.0),
            ScenarioPreset.STRESS: cls(name="Stress", presale_delay=3, presale_rate=70.0,
                                       construction_cost_change=10.0, interest_rate_change=2.0),
        }[preset]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ModelAssumptions:
    """Financial model inputs as plain floats"""
    total_revenue: float
    presale_rate: float
    land_cost: float
    construction_cost: float
    other_costs: float
    loan_amount: float
    interest_rate: float
    construction_period_months: int

    @classmethod
    def from_model(cls, model) -> 'ModelAssumptions':
        return cls(
            total_revenue=float(model.total_revenue or 0),
            presale_rate=float(model.presale_rate if model.presale_rate is not None else 100.0),
            land_cost=float(model.land_cost or 0),
            construction_cost=float(model.construction_cost or 0),
            other_costs=float(model.other_costs or 0),
            loan_amount=float(model.loan_amount or 0),
            interest_rate=float(model.interest_rate or 0),
            construction_period_months=int(model.construction_period_months or 0),
        )


@dataclass
class SimulationResult:
    """Result of simulating one scenario"""
    scenario_name: str
    revenue: float
    total_cost: float
    interest_cost: float
    expected_profit: float
    roi: float
    profit_change: float
    min_cash_point: Optional[Dict[str, Any]]
    cash_flow: Dict[str, Any]
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scenario_name": self.scenario_name,
            "revenue": self.revenue,
            "total_cost": self.total_cost,
            "interest_cost": self.interest_cost,
            "expected_profit": self.expected_profit,
            "roi": self.roi,
            "profit_change": self.profit_change,
            "min_cash_point": self.min_cash_point,
            "cash_flow": self.cash_flow,
            "recommendations": self.recommendations
        }


class ScenarioSimulator:
    """
    Applies a scenario to model assumptions and a monthly cash flow series.

    Example:
    ```python
    simulator = ScenarioSimulator()
    result = simulator.simulate(
        ModelAssumptions.from_model(model),
        MonthlyCashFlow.from_items(items),
        SimulationScenario(name="Delay", presale_delay=3)
    )
    print(result.expected_profit, result.min_cash_point)
    ```
    """

    LOW_ROI_THRESHOLD = 10.0

    def _profitability(self, assumptions: ModelAssumptions, scenario: SimulationScenario) -> Dict[str, float]:
        presale_rate = scenario.presale_rate if scenario.presale_rate is not None else assumptions.presale_rate
        revenue = assumptions.total_revenue * presale_rate / 100

        construction = assumptions.construction_cost * (1 + scenario.construction_cost_change / 100)
        rate = max(0.0, assumptions.interest_rate + scenario.interest_rate_change)
        financing_months = assumptions.construction_period_months + scenario.presale_delay
        interest_cost = assumptions.loan_amount * rate / 100 * financing_months / 12

        total_cost = assumptions.land_cost + construction + assumptions.other_costs + interest_cost
        profit = revenue - total_cost
        roi = profit / total_cost * 100 if total_cost > 0 else 0.0

        return {
            "presale_rate": presale_rate,
            "revenue": revenue,
            "construction": construction,
            "rate": rate,
            "interest_cost": interest_cost,
            "total_cost": total_cost,
            "profit": profit,
            "roi": roi,
        }

    def _adjust_cash_flow(
        self,
        assumptions: ModelAssumptions,
        series: MonthlyCashFlow,
        scenario: SimulationScenario,
        figures: Dict[str, float]
    ) -> MonthlyCashFlow:
        """Scale and shift the monthly series to match the scenario"""
        if not series.months:
            return series

        delay = scenario.presale_delay
        base_rate = assumptions.presale_rate or 100.0
        inflow_factor = figures["presale_rate"] / base_rate

        base_cost = assumptions.land_cost + assumptions.construction_cost + assumptions.other_costs
        new_cost = assumptions.land_cost + figures["construction"] + assumptions.other_costs
        outflow_factor = new_cost / base_cost if base_cost > 0 else 1.0

        monthly_interest_delta = assumptions.loan_amount * (figures["rate"] - assumptions.interest_rate) / 100 / 12
        monthly_interest = assumptions.loan_amount * figures["rate"] / 100 / 12

        months = series.months + [add_months(series.months[-1], i + 1) for i in range(delay)]
        inflows = [0.0] * delay + [v * inflow_factor for v in series.inflows]
        outflows = [v * outflow_factor + monthly_interest_delta for v in series.outflows]
        # Loan keeps accruing while sales are pushed back
        outflows += [monthly_interest] * delay

        return MonthlyCashFlow(
            months=months,
            inflows=[round(v, 2) for v in inflows],
            outflows=[round(v, 2) for v in outflows],
        )

    def _recommendations(
        self,
        scenario: SimulationScenario,
        figures: Dict[str, float],
        min_point: Optional[Dict[str, Any]]
    ) -> List[str]:
        recommendations = []

        if figures["profit"] < 0:
            recommendations.append(
                f"Scenario produces a loss of {abs(figures['profit']):,.0f}; "
                "revisit the sales plan or cost structure before proceeding."
            )
        elif figures["roi"] < self.LOW_ROI_THRESHOLD:
            recommendations.append(
                f"ROI of {figures['roi']:.1f}% is below {self.LOW_ROI_THRESHOLD:.0f}%; "
                "margin is thin against further shocks."
            )

        if min_point and min_point["amount"] < 0:
            recommendations.append(
                f"Funding gap of {abs(min_point['amount']):,.0f} in {min_point['month']}; "
                "arrange bridge financing or reschedule outflows."
            )

        if scenario.presale_delay > 0:
            recommendations.append(
                f"A {scenario.presale_delay}-month presale delay adds "
                f"{scenario.presale_delay} months of interest on the project loan."
            )

        if scenario.construction_cost_change > 5:
            recommendations.append(
                "Construction cost overrun: tighten change-order control and "
                "re-check the construction budget items before approving executions."
            )

        if scenario.interest_rate_change > 0:
            recommendations.append(
                "Consider fixing the rate or refinancing part of the PF loan."
            )

        if not recommendations:
            recommendations.append("Scenario stays within acceptable profit and liquidity bounds.")

        return recommendations

    def simulate(
        self,
        assumptions: ModelAssumptions,
        series: MonthlyCashFlow,
        scenario: SimulationScenario
    ) -> SimulationResult:
        """Simulate a single scenario"""
        baseline = self._profitability(assumptions, SimulationScenario(name="Baseline"))
        figures = self._profitability(assumptions, scenario)

        adjusted = self._adjust_cash_flow(assumptions, series, scenario, figures)
        min_point = adjusted.min_cash_point

        logger.info(
            f"Simulated '{scenario.name}': profit {figures['profit']:.0f}, ROI {figures['roi']:.2f}%"
        )

        return SimulationResult(
            scenario_name=scenario.name,
            revenue=round(figures["revenue"], 2),
            total_cost=round(figures["total_cost"], 2),
            interest_cost=round(figures["interest_cost"], 2),
            expected_profit=round(figures["profit"], 2),
            roi=round(figures["roi"], 2),
            profit_change=round(figures["profit"] - baseline["profit"], 2),
            min_cash_point=min_point,
            cash_flow=adjusted.to_dict(),
            recommendations=self._recommendations(scenario, figures, min_point)
        )

    def multi_scenario(
        self,
        assumptions: ModelAssumptions,
        series: MonthlyCashFlow
    ) -> Dict[str, SimulationResult]:
        """Simulate every preset scenario"""
        return {
            preset.value: self.simulate(assumptions, series, SimulationScenario.preset(preset))
            for preset in ScenarioPreset
        }
