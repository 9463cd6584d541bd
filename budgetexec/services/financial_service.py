"""
Financial Service

Financial model lookup, cash flow items and monthly cash flow analysis.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from werkzeug.exceptions import BadRequest

from ..database.models import CashFlowItem, FinancialModel, money, as_number
from ..forecasting import CashFlowForecaster, MonthlyCashFlow
from .common import get_project

logger = logging.getLogger(__name__)


def active_financial_model(project_id: str) -> Optional[FinancialModel]:
    return FinancialModel.query.filter_by(project_id=project_id, is_active=True)\
                               .order_by(FinancialModel.version.desc())\
                               .first()


def get_financial_model(project_id: str) -> Dict[str, Any]:
    get_project(project_id)
    model = active_financial_model(project_id)
    if model is None:
        return {'message': 'No financial model found'}
    return model.to_dict()


def cash_flow_items(project_id: str) -> List[CashFlowItem]:
    return CashFlowItem.query.filter_by(project_id=project_id)\
                             .order_by(CashFlowItem.planned_date.asc())\
                             .all()


def get_cash_flow(project_id: str) -> List[Dict[str, Any]]:
    get_project(project_id)
    return [item.to_dict() for item in cash_flow_items(project_id)]


def monthly_series(project_id: str) -> MonthlyCashFlow:
    return MonthlyCashFlow.from_items(cash_flow_items(project_id))


def get_cash_flow_summary(project_id: str) -> Dict[str, Any]:
    """Monthly series plus budget/forecast/actual totals and variances."""
    get_project(project_id)
    items = cash_flow_items(project_id)
    series = MonthlyCashFlow.from_items(items)

    totals = {}
    for flow_type in ('INFLOW', 'OUTFLOW'):
        selected = [item for item in items if item.flow_type == flow_type]
        totals[flow_type.lower()] = {
            'budget': as_number(sum((money(i.budget_amount) for i in selected), Decimal('0'))),
            'forecast': as_number(sum((money(i.forecast_amount) for i in selected), Decimal('0'))),
            'actual': as_number(sum((money(i.actual_amount) for i in selected), Decimal('0'))),
            'variance': as_number(sum((money(i.variance_amount) for i in selected), Decimal('0'))),
        }

    unapproved = [
        item for item in items
        if money(item.variance_amount) != 0 and not item.is_variance_approved
    ]

    return {
        'project_id': project_id,
        **series.to_dict(),
        'totals': totals,
        'unapproved_variances': [item.to_dict() for item in unapproved],
    }


def project_cash_flow(project_id: str, periods: int = 6,
                      confidence_level: float = 0.80) -> Dict[str, Any]:
    get_project(project_id)
    series = monthly_series(project_id)

    try:
        result = CashFlowForecaster(confidence_level=confidence_level).project(series, periods)
    except ValueError as e:
        raise BadRequest(str(e))

    if result.negative_cash_month:
        logger.warning(f"Project {project_id} cash position projected negative "
                       f"in {result.negative_cash_month}")

    return {
        'project_id': project_id,
        'history': series.to_dict(),
        'projection': result.to_dict(),
    }
