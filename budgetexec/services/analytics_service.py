"""
Analytics Service

Read-side views for requesters and approvers: the project budget
landscape, execution and transfer timelines, risk indicators, per-request
analysis and transfer suggestions when a request exceeds its item's
remaining budget.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from werkzeug.exceptions import BadRequest

from ..database.models import (
    db, Approval, BudgetItem, BudgetTransfer, ExecutionRequest,
    money, as_number, calculate_execution_rate
)
from ..database.session import transaction
from ..patterns import create_project_risk_classifier, create_project_risk_engine
from .budget_service import sum_amounts, serialize_totals
from .common import get_or_404, get_project, parse_amount, setting

logger = logging.getLogger(__name__)


def _is_construction(item: BudgetItem, expense_only: bool = True) -> bool:
    keyword = setting('CONSTRUCTION_KEYWORD', '공사비')
    if expense_only and item.category != setting('EXPENSE_CATEGORY', '지출'):
        return False
    return keyword in (item.main_item or '')


def _landscape_items(project_id: str) -> List[BudgetItem]:
    return BudgetItem.query.filter_by(project_id=project_id, is_active=True)\
                           .order_by(BudgetItem.category.asc(),
                                     BudgetItem.main_item.asc(),
                                     BudgetItem.display_order.asc())\
                           .all()


def get_project_landscape(project_id: str) -> Dict[str, Any]:
    """Whole-project budget picture: category aggregates plus every active item."""
    project = get_project(project_id)
    items = _landscape_items(project_id)

    grouped: Dict[str, List[BudgetItem]] = {}
    for item in items:
        grouped.setdefault(item.category, []).append(item)

    categories = []
    for category, category_items in grouped.items():
        categories.append({
            'category': category,
            **serialize_totals(sum_amounts(category_items)),
            'items': [item.id for item in category_items],
        })

    return {
        'project': project.to_dict(),
        'categories': categories,
        'budget_items': [item.to_dict() for item in items],
    }


def _final_approval(execution: ExecutionRequest) -> Optional[Approval]:
    approved = [a for a in execution.approvals if a.status == 'APPROVED']
    if not approved:
        return None
    return max(approved, key=lambda a: a.step)


def get_execution_history(project_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    """Approved executions, most recently completed first."""
    get_project(project_id)
    executions = ExecutionRequest.query.filter_by(project_id=project_id, status='APPROVED')\
                                       .order_by(ExecutionRequest.completed_at.desc())\
                                       .limit(limit)\
                                       .all()

    history = []
    for execution in executions:
        final = _final_approval(execution)
        history.append({
            **execution.to_dict(include_approvals=False),
            'approved_by': final.approver.to_summary() if final and final.approver else None,
            'approved_at': final.decided_at.isoformat() if final and final.decided_at else None,
            'decision': final.decision if final else None,
        })
    return history


def get_budget_transfer_history(project_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    get_project(project_id)
    item_ids = [row.id for row in db.session.query(BudgetItem.id).filter_by(project_id=project_id)]
    transfers = BudgetTransfer.query.filter(
        or_(BudgetTransfer.source_item_id.in_(item_ids),
            BudgetTransfer.target_item_id.in_(item_ids)),
        BudgetTransfer.status == 'APPROVED'
    ).order_by(BudgetTransfer.approved_at.desc()).limit(limit).all()

    return [transfer.to_dict() for transfer in transfers]


def calculate_risk_indicators(project_id: str) -> Dict[str, Any]:
    """
    Score the project's budget risk and store it on the project.

    Construction items are expense items whose main item names the
    construction cost. Points: overall rate above 90 (+30), construction
    rate above 95 (+40), more than three items above 90 (+20), construction
    reserve under 5% of the project budget (+10); capped at 100.
    """
    project = get_project(project_id)
    items = BudgetItem.query.filter_by(project_id=project_id, is_active=True).all()

    rate_threshold = setting('RISK_EXECUTION_RATE_THRESHOLD', 90.0)
    construction_threshold = setting('CONSTRUCTION_RATE_THRESHOLD', 95.0)
    reserve_ratio = Decimal(str(setting('CONSTRUCTION_RESERVE_RATIO', 0.05)))

    construction = [item for item in items if _is_construction(item)]
    construction_budget = sum((money(i.current_budget) for i in construction), Decimal('0'))
    construction_executed = sum((money(i.executed_amount) for i in construction), Decimal('0'))
    construction_remaining = sum((money(i.remaining_budget) for i in construction), Decimal('0'))
    construction_rate = calculate_execution_rate(construction_executed, construction_budget)

    over_budget = [item for item in items if (item.execution_rate or 0) > rate_threshold]

    damage_risk = (
        construction_rate > construction_threshold
        or construction_remaining < money(project.current_budget) * reserve_ratio
    )

    metrics = {
        'overall_execution_rate': project.execution_rate or 0.0,
        'construction_rate': construction_rate,
        'over_budget_count': len(over_budget),
        'construction_damage_risk': damage_risk,
    }

    engine = create_project_risk_engine(
        execution_rate_threshold=rate_threshold,
        construction_rate_threshold=construction_threshold,
        over_budget_item_limit=setting('OVER_BUDGET_ITEM_LIMIT', 3)
    )
    scored = engine.score(metrics, entity_id=project.id)
    classification = create_project_risk_classifier().classify(
        scored.overall_score, entity_id=project.id
    )

    with transaction():
        project.risk_score = scored.overall_score

    if classification.level.value != 'LOW':
        logger.info(f"Project {project.code} risk {classification.level.value} "
                    f"(score {scored.overall_score}, rules: {', '.join(scored.triggered)})")

    return {
        'overall_execution_rate': metrics['overall_execution_rate'],
        'construction_budget': as_number(construction_budget),
        'construction_executed': as_number(construction_executed),
        'construction_remaining': as_number(construction_remaining),
        'construction_rate': construction_rate,
        'construction_damage_risk': damage_risk,
        'over_budget_risk': [
            {**item.to_summary(), 'execution_rate': item.execution_rate} for item in over_budget
        ],
        'risk_score': scored.overall_score,
        'risk_level': classification.level.value,
        'triggered_rules': scored.triggered,
        'action_required': classification.action_required,
    }


def _construction_impact(execution: ExecutionRequest) -> Optional[Dict[str, Any]]:
    if not _is_construction(execution.budget_item, expense_only=False):
        return None

    items = [
        item for item in BudgetItem.query.filter_by(project_id=execution.project_id,
                                                    is_active=True)
        if _is_construction(item, expense_only=False)
    ]
    total_budget = sum((money(i.current_budget) for i in items), Decimal('0'))
    total_remaining = sum((money(i.remaining_budget) for i in items), Decimal('0'))
    amount = money(execution.amount)
    projected = total_remaining - amount
    reserve_ratio = Decimal(str(setting('CONSTRUCTION_RESERVE_RATIO', 0.05)))

    return {
        'total_construction_budget': as_number(total_budget),
        'total_construction_remaining': as_number(total_remaining),
        'impact_rate': calculate_execution_rate(amount, total_budget),
        'projected_construction_remaining': as_number(projected),
        'damage_risk': projected < total_budget * reserve_ratio,
    }


def analyze_execution_request(execution_id: str) -> Dict[str, Any]:
    """What an approver needs to judge one request."""
    execution = get_or_404(ExecutionRequest, execution_id, 'Execution request')
    item = execution.budget_item
    amount = money(execution.amount)

    budget_available = money(item.remaining_budget) >= amount
    projected_remaining = money(item.remaining_budget) - amount
    projected_rate = calculate_execution_rate(money(item.executed_amount) + amount,
                                              item.current_budget)

    recent = ExecutionRequest.query.filter(
        ExecutionRequest.budget_item_id == item.id,
        ExecutionRequest.status == 'APPROVED',
        ExecutionRequest.id != execution.id
    ).order_by(ExecutionRequest.completed_at.desc()).limit(5).all()

    transfers = execution.budget_transfers.all()
    impact = _construction_impact(execution)

    recommendations = []
    if not budget_available:
        recommendations.append({'level': 'CRITICAL',
                                'message': 'Insufficient budget: a budget transfer is required.'})
    if projected_rate > setting('RISK_EXECUTION_RATE_THRESHOLD', 90.0):
        recommendations.append({'level': 'WARNING',
                                'message': f'Execution rate reaches {projected_rate:.1f}% '
                                           f'after this request.'})
    if impact and impact['damage_risk']:
        recommendations.append({'level': 'CRITICAL',
                                'message': 'Construction cost at risk: total construction '
                                           'remaining falls below 5%.'})
    if transfers:
        recommendations.append({'level': 'INFO',
                                'message': f'{len(transfers)} budget transfer(s) linked '
                                           f'to this request.'})

    return {
        'execution': execution.to_dict(include_approvals=False),
        'budget_item': item.to_dict(),
        'budget_available': budget_available,
        'projected_remaining': as_number(projected_remaining),
        'projected_execution_rate': projected_rate,
        'recent_executions': [e.to_summary() for e in recent],
        'budget_transfers': [t.to_dict() for t in transfers],
        'construction_impact': impact,
        'recommendations': recommendations,
        'approval_history': [a.to_dict() for a in execution.approvals],
    }


def get_proposal_assistance(project_id: str, item_id: str, amount) -> Dict[str, Any]:
    """
    Check whether an item can cover a requested amount and, if not,
    suggest transfers from sibling items of the same category.
    """
    get_project(project_id)
    item = get_or_404(BudgetItem, item_id, 'Budget item')
    if item.project_id != project_id:
        raise BadRequest("Budget item does not belong to the project")
    amount = parse_amount(amount)

    remaining = money(item.remaining_budget)
    sufficient = remaining >= amount
    shortage = Decimal('0') if sufficient else amount - remaining

    siblings = BudgetItem.query.filter(
        BudgetItem.project_id == item.project_id,
        BudgetItem.is_active.is_(True),
        BudgetItem.category == item.category,
        BudgetItem.id != item.id
    ).all()

    candidates = sorted(
        (s for s in siblings if money(s.remaining_budget) > 0),
        key=lambda s: s.execution_rate or 0.0
    )

    scenarios = []
    if not sufficient and candidates:
        full_cover = next((c for c in candidates if money(c.remaining_budget) >= shortage), None)
        if full_cover:
            scenarios.append({
                'type': 'SINGLE_FULL',
                'description': 'Transfer the whole shortage from one item',
                'transfers': [{
                    'source_item_id': full_cover.id,
                    'source_item': full_cover.label,
                    'amount': as_number(shortage),
                    'transfer_type': 'PARTIAL',
                }],
            })

        outstanding = shortage
        split = []
        for candidate in candidates[:3]:
            if outstanding <= 0:
                break
            available = money(candidate.remaining_budget)
            portion = min(available, outstanding)
            split.append({
                'source_item_id': candidate.id,
                'source_item': candidate.label,
                'amount': as_number(portion),
                'transfer_type': 'FULL' if portion == available else 'PARTIAL',
            })
            outstanding -= portion

        if outstanding <= 0:
            scenarios.append({
                'type': 'MULTIPLE',
                'description': 'Split the shortage across several items',
                'transfers': split,
            })

    return {
        'budget_item': item.to_dict(),
        'request_amount': as_number(amount),
        'is_sufficient': sufficient,
        'shortage': as_number(shortage),
        'transfer_required': not sufficient,
        'transfer_candidates': [
            {
                **c.to_summary(),
                'execution_rate': c.execution_rate,
                'can_cover_shortage': money(c.remaining_budget) >= shortage,
            }
            for c in candidates
        ],
        'transfer_scenarios': scenarios,
    }


def get_approver_dashboard(project_id: str, execution_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        'landscape': get_project_landscape(project_id),
        'execution_history': get_execution_history(project_id, 20),
        'transfer_history': get_budget_transfer_history(project_id, 10),
        'risk_indicators': calculate_risk_indicators(project_id),
        'execution_analysis': analyze_execution_request(execution_id) if execution_id else None,
        'generated_at': datetime.utcnow().isoformat(),
    }
