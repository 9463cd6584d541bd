"""
Forecasting Module for Budget Execution Manager

Cash flow projection and scenario simulation.
"""

from .cash_flow_forecaster import (
    CashFlowForecaster,
    MonthlyCashFlow,
    ProjectionResult
)
from .scenario_simulator import (
    ScenarioSimulator,
    SimulationScenario,
    SimulationResult,
    ScenarioPreset,
    ModelAssumptions
)

__all__ = [
    'CashFlowForecaster',
    'MonthlyCashFlow',
    'ProjectionResult',
    'ScenarioSimulator',
    'SimulationScenario',
    'SimulationResult',
    'ScenarioPreset',
    'ModelAssumptions',
]
