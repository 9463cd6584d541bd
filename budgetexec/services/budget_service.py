"""
Budget Service

Budget item management and project budget aggregation.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from werkzeug.exceptions import BadRequest

from ..database.models import (
    db, BudgetItem, BudgetTransfer, Project, money, as_number, calculate_execution_rate
)
from ..database.session import transaction
from .common import get_or_404, get_project, parse_amount

logger = logging.getLogger(__name__)

AMOUNT_FIELDS = ('initial_budget', 'current_budget', 'executed_amount', 'remaining_budget')

EDITABLE_FIELDS = ('category', 'main_item', 'sub_item', 'display_order', 'change_reason')


def sum_amounts(items: List[BudgetItem]) -> Dict[str, Decimal]:
    totals = {name: Decimal('0') for name in AMOUNT_FIELDS}
    for item in items:
        for name in AMOUNT_FIELDS:
            totals[name] += money(getattr(item, name))
    return totals


def serialize_totals(totals: Dict[str, Decimal]) -> Dict[str, Any]:
    data = {name: as_number(value) for name, value in totals.items()}
    data['execution_rate'] = calculate_execution_rate(
        totals['executed_amount'], totals['current_budget']
    )
    return data


def active_items(project_id: str) -> List[BudgetItem]:
    return BudgetItem.query.filter_by(project_id=project_id, is_active=True)\
                           .order_by(BudgetItem.display_order.asc())\
                           .all()


def recalculate_project_totals(project_id: str) -> Project:
    """
    Refresh a project's budget totals from its active budget items.

    Does not commit; callers run it inside their own transaction.
    """
    project = get_project(project_id)
    db.session.flush()

    totals = sum_amounts(active_items(project_id))
    project.current_budget = totals['current_budget']
    project.executed_amount = totals['executed_amount']
    project.remaining_budget = totals['current_budget'] - totals['executed_amount']
    project.execution_rate = calculate_execution_rate(
        totals['executed_amount'], totals['current_budget']
    )
    project.initial_budget = totals['initial_budget']
    return project


def get_project_budget(project_id: str) -> Dict[str, Any]:
    """Active items grouped by category with category and grand totals."""
    get_project(project_id)
    items = active_items(project_id)

    grouped: Dict[str, List[BudgetItem]] = {}
    for item in items:
        grouped.setdefault(item.category, []).append(item)

    summary = [
        {
            'category': category,
            'items': [item.to_dict() for item in category_items],
            'totals': serialize_totals(sum_amounts(category_items)),
        }
        for category, category_items in grouped.items()
    ]

    return {
        'project_id': project_id,
        'summary': summary,
        'grand_totals': serialize_totals(sum_amounts(items)),
    }


def get_budget_item(item_id: str) -> BudgetItem:
    return get_or_404(BudgetItem, item_id, 'Budget item')


def _build_item(project_id: str, data: Dict[str, Any], display_order: int) -> BudgetItem:
    category = (data.get('category') or '').strip()
    main_item = (data.get('main_item') or '').strip()
    if not category:
        raise BadRequest("Category is required")
    if not main_item:
        raise BadRequest("Main item is required")

    budget = parse_amount(data.get('current_budget'), 'current_budget', allow_zero=True)

    item = BudgetItem(
        project_id=project_id,
        category=category,
        main_item=main_item,
        sub_item=data.get('sub_item') or None,
        initial_budget=budget,
        current_budget=budget,
        executed_amount=Decimal('0'),
        pending_execution_amount=Decimal('0'),
        display_order=display_order,
        is_active=True
    )
    item.recalculate()
    return item


def create_budget_item(data: Dict[str, Any]) -> BudgetItem:
    project_id = data.get('project_id')
    get_project(project_id)

    with transaction():
        item = _build_item(project_id, data, data.get('display_order') or 0)
        db.session.add(item)
        recalculate_project_totals(project_id)

    logger.info(f"Created budget item {item.label} ({item.current_budget}) in project {project_id}")
    return item


def bulk_import(items: List[Dict[str, Any]]) -> Dict[str, Any]:
    if not items:
        raise BadRequest("No items to import")

    project_id = items[0].get('project_id')
    if any(entry.get('project_id') != project_id for entry in items):
        raise BadRequest("All items must belong to the same project")
    get_project(project_id)

    with transaction():
        created = []
        for index, entry in enumerate(items):
            item = _build_item(project_id, entry, index)
            db.session.add(item)
            created.append(item)
        recalculate_project_totals(project_id)

    logger.info(f"Imported {len(created)} budget items into project {project_id}")
    return {
        'created': len(created),
        'items': [item.to_dict() for item in created],
    }


def _editable_changes(data: Dict[str, Any]) -> Dict[str, Any]:
    changes = {}
    for name in EDITABLE_FIELDS:
        if name not in data:
            continue
        value = data[name]
        if name in ('category', 'main_item'):
            if not isinstance(value, str) or not value.strip():
                raise BadRequest(f"{name} must be a non-empty string")
            value = value.strip()
        elif name == 'display_order':
            if isinstance(value, bool) or not isinstance(value, int):
                raise BadRequest("display_order must be an integer")
        elif value is not None and not isinstance(value, str):
            raise BadRequest(f"{name} must be a string")
        changes[name] = value
    return changes


def update_budget_item(item_id: str, data: Dict[str, Any]) -> BudgetItem:
    item = get_budget_item(item_id)

    changes = _editable_changes(data)

    with transaction():
        for name, value in changes.items():
            setattr(item, name, value)

        if 'current_budget' in data:
            new_budget = parse_amount(data['current_budget'], 'current_budget', allow_zero=True)
            committed = money(item.executed_amount) + money(item.pending_execution_amount)
            if new_budget < committed:
                raise BadRequest(
                    f"Budget cannot be lower than executed plus pending amount ({committed})"
                )
            if new_budget != money(item.current_budget):
                item.change_reason = data.get('change_reason') or \
                    f"Budget changed: {item.current_budget} -> {new_budget}"
                item.changed_at = datetime.utcnow()
            item.current_budget = new_budget
            item.recalculate()

        recalculate_project_totals(item.project_id)

    logger.info(f"Updated budget item {item.id}")
    return item


def remove_budget_item(item_id: str) -> Dict[str, str]:
    item = get_budget_item(item_id)

    if money(item.pending_execution_amount) > 0:
        raise BadRequest("Budget item has pending execution requests")

    pending_transfers = BudgetTransfer.query.filter(
        BudgetTransfer.status == 'PENDING',
        or_(BudgetTransfer.source_item_id == item.id, BudgetTransfer.target_item_id == item.id)
    ).count()
    if pending_transfers:
        raise BadRequest("Budget item has pending budget transfers")

    with transaction():
        item.is_active = False
        recalculate_project_totals(item.project_id)

    logger.info(f"Deactivated budget item {item.id}")
    return {'message': 'Budget item removed successfully'}


def get_budget_comparison(project_id: str) -> Dict[str, Any]:
    """Initial against current budget per active item, with execution variance."""
    get_project(project_id)
    items = active_items(project_id)

    rows = []
    for item in items:
        initial = money(item.initial_budget)
        current = money(item.current_budget)
        difference = current - initial
        rows.append({
            'budget_item_id': item.id,
            'category': item.category,
            'main_item': item.main_item,
            'sub_item': item.sub_item,
            'initial_budget': as_number(initial),
            'current_budget': as_number(current),
            'executed_amount': as_number(item.executed_amount),
            'remaining_budget': as_number(item.remaining_budget),
            'execution_rate': item.execution_rate,
            'difference': as_number(difference),
            'change_rate': round(float(difference / initial * 100), 2) if initial else 0.0,
            'planned_vs_actual': as_number(current - money(item.executed_amount)),
        })

    return {
        'project_id': project_id,
        'items': rows,
        'totals': serialize_totals(sum_amounts(items)),
    }


def search_budget_items(project_id: str, query: Optional[str] = None,
                        category: Optional[str] = None) -> List[BudgetItem]:
    """Active items whose category, main item or sub item contains the query text."""
    get_project(project_id)
    needle = (query or '').strip()
    if not needle and not category:
        raise BadRequest("Search query or category is required")

    items = BudgetItem.query.filter_by(project_id=project_id, is_active=True)
    if category:
        items = items.filter(BudgetItem.category == category)
    if needle:
        pattern = f"%{needle}%"
        items = items.filter(or_(
            BudgetItem.category.ilike(pattern),
            BudgetItem.main_item.ilike(pattern),
            BudgetItem.sub_item.ilike(pattern),
        ))
    return items.order_by(BudgetItem.display_order.asc()).all()
