"""
Dashboard Service

Portfolio overview across active projects.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy import func

from ..database.models import db, BudgetItem, BudgetTransfer, ExecutionRequest, Project, money, as_number
from ..forecasting.cash_flow_forecaster import month_key, add_months
from ..patterns import create_execution_rate_classifier
from .approval_service import get_pending_approvals
from .common import get_user, setting

logger = logging.getLogger(__name__)

TREND_MONTHS = 6


def _monthly_trends(now: datetime) -> List[Dict[str, Any]]:
    """Approved execution totals for the last six months, oldest first."""
    current = month_key(now)
    months = [add_months(current, -offset) for offset in range(TREND_MONTHS - 1, -1, -1)]
    buckets = {m: {'month': m, 'total_amount': 0.0, 'count': 0} for m in months}

    executions = ExecutionRequest.query.filter(
        ExecutionRequest.status == 'APPROVED',
        ExecutionRequest.created_at >= datetime.strptime(months[0], '%Y-%m')
    ).all()

    for execution in executions:
        bucket = buckets.get(month_key(execution.created_at))
        if bucket:
            bucket['total_amount'] += float(execution.amount)
            bucket['count'] += 1

    return [buckets[m] for m in months]


def _category_breakdown(projects: List[Project]) -> List[Dict[str, Any]]:
    project_ids = [p.id for p in projects]
    if not project_ids:
        return []

    rows = db.session.query(
        BudgetItem.category,
        func.sum(BudgetItem.current_budget),
        func.sum(BudgetItem.executed_amount)
    ).filter(BudgetItem.project_id.in_(project_ids), BudgetItem.is_active.is_(True))\
     .group_by(BudgetItem.category)\
     .all()

    breakdown = []
    for category, budget, executed in rows:
        budget = float(budget or 0)
        executed = float(executed or 0)
        breakdown.append({
            'category': category,
            'budget': budget,
            'executed': executed,
            'execution_rate': executed / budget * 100 if budget > 0 else 0.0,
        })
    return breakdown


def _transfer_stats() -> List[Dict[str, Any]]:
    rows = db.session.query(
        BudgetTransfer.status,
        func.sum(BudgetTransfer.amount),
        func.count(BudgetTransfer.id)
    ).group_by(BudgetTransfer.status).all()

    return [
        {'status': status, 'total_amount': as_number(total or 0), 'count': count}
        for status, total, count in rows
    ]


def get_dashboard_stats(user_id: str) -> Dict[str, Any]:
    user = get_user(user_id)
    projects = Project.query.filter_by(status='ACTIVE').all()

    total_budget = sum((money(p.current_budget) for p in projects), Decimal('0'))
    total_executed = sum((money(p.executed_amount) for p in projects), Decimal('0'))
    avg_rate = sum((p.execution_rate or 0.0) for p in projects) / (len(projects) or 1)

    warning_rate = setting('DASHBOARD_WARNING_RATE', 75.0)
    classifier = create_execution_rate_classifier(
        warning_rate=warning_rate,
        critical_rate=setting('DASHBOARD_CRITICAL_RATE', 90.0)
    )

    recent = ExecutionRequest.query.order_by(ExecutionRequest.created_at.desc()).limit(10).all()

    return {
        'stats': {
            'total_projects': len(projects),
            'total_budget': as_number(total_budget),
            'total_executed': as_number(total_executed),
            'avg_execution_rate': avg_rate,
            'pending_approvals': len(get_pending_approvals(user.id)),
        },
        'recent_executions': [e.to_dict(include_approvals=False) for e in recent],
        'risk_alerts': [
            {
                'project_id': p.id,
                'project_name': p.name,
                'execution_rate': p.execution_rate,
                'risk_score': p.risk_score,
            }
            for p in projects if (p.execution_rate or 0.0) > warning_rate
        ],
        'charts': {
            'execution_heatmap': [
                {
                    'project_id': p.id,
                    'project_code': p.code,
                    'project_name': p.name,
                    'execution_rate': p.execution_rate,
                    'risk_level': classifier.level_for(p.execution_rate or 0.0).level.value,
                }
                for p in projects
            ],
            'monthly_trends': _monthly_trends(datetime.utcnow()),
            'category_breakdown': _category_breakdown(projects),
            'transfer_stats': _transfer_stats(),
        },
    }
