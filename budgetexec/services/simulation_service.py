"""
Simulation Service

Runs what-if scenarios against a project's active financial model and
cash flow, and keeps each run as a Simulation row.
"""

import logging
from typing import Any, Dict, List, Optional

from werkzeug.exceptions import BadRequest

from ..database.models import db, Simulation
from ..database.session import transaction
from ..forecasting import ModelAssumptions, ScenarioPreset, ScenarioSimulator, SimulationScenario
from .common import get_or_404, get_project
from .financial_service import active_financial_model, monthly_series

logger = logging.getLogger(__name__)


def list_simulations(project_id: str) -> List[Simulation]:
    get_project(project_id)
    return Simulation.query.filter_by(project_id=project_id)\
                           .order_by(Simulation.created_at.desc())\
                           .all()


def get_simulation(simulation_id: str) -> Simulation:
    return get_or_404(Simulation, simulation_id, 'Simulation')


def list_presets() -> List[Dict[str, Any]]:
    return [
        {'key': preset.value, **SimulationScenario.preset(preset).to_dict()}
        for preset in ScenarioPreset
    ]


def _build_scenario(data: Dict[str, Any]) -> SimulationScenario:
    preset = data.get('preset')
    try:
        if preset:
            return SimulationScenario.preset(ScenarioPreset(preset))
        return SimulationScenario.from_dict(data)
    except (ValueError, TypeError) as e:
        raise BadRequest(f"Invalid scenario: {e}")


def _load_inputs(project_id: str):
    model = active_financial_model(project_id)
    if model is None:
        raise BadRequest("Project has no active financial model")
    return ModelAssumptions.from_model(model), monthly_series(project_id)


def run_simulation(project_id: str, scenario: Dict[str, Any],
                   user_id: Optional[str] = None) -> Simulation:
    """
    Simulate one scenario and store it.

    ``scenario`` is either ``{'preset': <key>}`` or explicit parameters:
    presale_delay (months), presale_rate (%), construction_cost_change (%),
    interest_rate_change (percentage points).
    """
    project = get_project(project_id)
    parsed = _build_scenario(scenario or {})
    assumptions, series = _load_inputs(project.id)

    result = ScenarioSimulator().simulate(assumptions, series, parsed)

    with transaction():
        simulation = Simulation(
            project_id=project.id,
            name=parsed.name,
            scenario=parsed.to_dict(),
            results=result.to_dict(),
            created_by_id=user_id
        )
        db.session.add(simulation)

    logger.info(f"Simulation '{parsed.name}' stored for project {project.code}")
    return simulation


def compare_scenarios(project_id: str) -> Dict[str, Any]:
    """Every preset side by side; nothing is stored."""
    get_project(project_id)
    assumptions, series = _load_inputs(project_id)
    results = ScenarioSimulator().multi_scenario(assumptions, series)
    return {key: result.to_dict() for key, result in results.items()}
