"""
Execution Service

Execution requests against budget items. Creating a request reserves its
amount on the budget item (pending_execution_amount) and opens the
approval chain; the budget is consumed by the final approval.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from werkzeug.exceptions import BadRequest, Forbidden

from ..database.models import db, BudgetItem, ExecutionRequest, money
from ..database.session import transaction
from .approval_service import build_approval_chain, cancel_open_steps, release_reservation
from .common import get_or_404, get_user, get_project, parse_amount, parse_date, setting

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = ('created_at', 'execution_date', 'amount', 'request_number', 'status')

EDITABLE_FIELDS = ('purpose', 'description', 'attachments')


def list_executions(
    project_id: Optional[str] = None,
    status: Optional[str] = None,
    sort_by: str = 'created_at',
    order: str = 'desc'
) -> List[ExecutionRequest]:
    query = ExecutionRequest.query
    if project_id:
        query = query.filter_by(project_id=project_id)
    if status:
        query = query.filter_by(status=status.upper())

    if sort_by not in SORTABLE_FIELDS:
        raise BadRequest(f"Cannot sort by '{sort_by}'")
    column = getattr(ExecutionRequest, sort_by)
    query = query.order_by(column.asc() if order == 'asc' else column.desc())

    return query.all()


def get_execution(execution_id: str) -> ExecutionRequest:
    return get_or_404(ExecutionRequest, execution_id, 'Execution request')


def generate_request_number(year: Optional[int] = None) -> str:
    """Next EXE-<year>-<nnnn> number."""
    year = year or datetime.utcnow().year
    prefix = f"{setting('REQUEST_NUMBER_PREFIX', 'EXE')}-{year}-"
    count = ExecutionRequest.query.filter(ExecutionRequest.request_number.startswith(prefix)).count()
    return f"{prefix}{count + 1:04d}"


def create_execution(data: Dict[str, Any], user_id: str) -> ExecutionRequest:
    """
    Create a PENDING execution request with its approval chain.

    Raises:
        NotFound: unknown user, project or budget item
        BadRequest: invalid fields or amount above the item's remaining budget
    """
    get_user(user_id)
    project = get_project(data.get('project_id'))
    item = get_or_404(BudgetItem, data.get('budget_item_id'), 'Budget item')

    if item.project_id != project.id:
        raise BadRequest("Budget item does not belong to the project")
    if not item.is_active:
        raise BadRequest("Budget item is inactive")

    amount = parse_amount(data.get('amount'))
    execution_date = parse_date(data.get('execution_date'), 'execution_date')

    purpose = (data.get('purpose') or '').strip()
    if not purpose:
        raise BadRequest("Purpose is required")

    if amount > money(item.remaining_budget):
        raise BadRequest("Insufficient budget balance")

    with transaction():
        execution = ExecutionRequest(
            request_number=generate_request_number(),
            project_id=project.id,
            budget_item_id=item.id,
            requested_by_id=user_id,
            amount=amount,
            execution_date=execution_date,
            purpose=purpose,
            description=data.get('description'),
            attachments=data.get('attachments') or [],
            status='PENDING'
        )
        db.session.add(execution)
        build_approval_chain(execution, user_id)

        item.pending_execution_amount = money(item.pending_execution_amount) + amount

    logger.info(f"Execution {execution.request_number} created: {amount} on {item.label}")
    return execution


def update_execution(execution_id: str, data: Dict[str, Any], user_id: Optional[str] = None) -> ExecutionRequest:
    """Edit a request while it is still waiting on its first real approval."""
    execution = get_execution(execution_id)

    if user_id and execution.requested_by_id != user_id:
        raise Forbidden("Only the requester can edit the request")

    if execution.status != 'PENDING':
        raise BadRequest("Can only edit pending requests")

    decided = [a for a in execution.approvals if a.step > 1 and a.status != 'PENDING']
    if decided:
        raise BadRequest("Request is already under review")

    with transaction():
        for name in EDITABLE_FIELDS:
            if name in data:
                setattr(execution, name, data[name])

        if 'execution_date' in data:
            execution.execution_date = parse_date(data['execution_date'], 'execution_date')

        if 'amount' in data:
            new_amount = parse_amount(data['amount'])
            item = execution.budget_item
            if new_amount > money(item.remaining_budget):
                raise BadRequest("Insufficient budget balance")
            item.pending_execution_amount = (
                money(item.pending_execution_amount) - money(execution.amount) + new_amount
            )
            execution.amount = new_amount

    logger.info(f"Execution {execution.request_number} updated")
    return execution


def cancel_execution(execution_id: str, user_id: str) -> ExecutionRequest:
    execution = get_execution(execution_id)

    if execution.requested_by_id != user_id:
        raise BadRequest("Only the requester can cancel")

    if execution.status != 'PENDING':
        raise BadRequest("Can only cancel pending requests")

    with transaction():
        cancel_open_steps(execution, datetime.utcnow())
        execution.status = 'CANCELLED'
        release_reservation(execution)

    logger.info(f"Execution {execution.request_number} cancelled")
    return execution
