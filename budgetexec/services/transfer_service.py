"""
Budget Transfer Service

Reallocation of remaining budget between line items of one project.
A transfer is created PENDING and moves money only when approved; the
approval updates both items and the transfer in a single transaction.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from werkzeug.exceptions import BadRequest, Forbidden

from ..database.models import db, BudgetItem, BudgetTransfer, ExecutionRequest, money, as_number
from ..database.session import transaction
from .budget_service import recalculate_project_totals
from .common import get_or_404, get_user, get_project, parse_amount

logger = logging.getLogger(__name__)

TRANSFER_TYPES = ('PARTIAL', 'FULL')
TRANSFER_APPROVER_ROLES = ('APPROVER', 'CFO', 'RM_TEAM', 'ADMIN')


def _project_item_ids(project_id: str) -> List[str]:
    return [row.id for row in db.session.query(BudgetItem.id).filter_by(project_id=project_id)]


def _touching(item_ids: List[str]):
    return or_(
        BudgetTransfer.source_item_id.in_(item_ids),
        BudgetTransfer.target_item_id.in_(item_ids),
    )


def _move_budget(item: BudgetItem, delta: Decimal, reason: str):
    """Shift an item's current budget by delta and refresh derived amounts."""
    item.current_budget = money(item.current_budget) + delta
    item.recalculate()
    item.change_reason = reason
    item.changed_at = datetime.utcnow()


def create_transfer(user_id: str, data: Dict[str, Any]) -> BudgetTransfer:
    """
    Create a PENDING transfer request.

    Raises:
        NotFound: unknown source or target item
        BadRequest: cross-project, self transfer, bad amount, insufficient balance
    """
    get_user(user_id)

    source = get_or_404(BudgetItem, data.get('source_item_id'), 'Source budget item')
    target = get_or_404(BudgetItem, data.get('target_item_id'), 'Target budget item')

    if source.project_id != target.project_id:
        raise BadRequest("Source and target budget items must be in the same project")

    if source.id == target.id:
        raise BadRequest("Cannot transfer to the same budget item")

    if not source.is_active or not target.is_active:
        raise BadRequest("Cannot transfer between inactive budget items")

    transfer_type = (data.get('transfer_type') or 'PARTIAL').upper()
    if transfer_type not in TRANSFER_TYPES:
        raise BadRequest("Transfer type must be either PARTIAL or FULL")

    reason = (data.get('reason') or '').strip()
    if not reason:
        raise BadRequest("Reason is required")

    available = money(source.remaining_budget)
    if transfer_type == 'FULL':
        amount = available
        if amount <= 0:
            raise BadRequest("Source budget item has no remaining budget")
    else:
        amount = parse_amount(data.get('amount'))
        if amount > available:
            raise BadRequest(f"Insufficient budget. Available: {available}, Requested: {amount}")

    execution_request_id = data.get('execution_request_id')
    if execution_request_id:
        get_or_404(ExecutionRequest, execution_request_id, 'Execution request')

    with transaction():
        transfer = BudgetTransfer(
            source_item_id=source.id,
            target_item_id=target.id,
            amount=amount,
            transfer_type=transfer_type,
            reason=reason,
            description=data.get('description'),
            execution_request_id=execution_request_id,
            created_by_id=user_id,
            status='PENDING'
        )
        db.session.add(transfer)

    logger.info(f"Transfer {transfer.id} requested: {amount} from {source.label} to {target.label}")
    return transfer


def approve_transfer(
    transfer_id: str,
    user_id: str,
    approved: bool = True,
    rejection_reason: Optional[str] = None
) -> Dict[str, Any]:
    """
    Approve or reject a PENDING transfer.

    Approval decrements the source and increments the target current
    budget by exactly the transfer amount, recomputing remaining budget and
    execution rate of both. Nothing is written if any check fails.
    """
    transfer = get_transfer(transfer_id)

    if transfer.status != 'PENDING':
        raise BadRequest(f"This transfer has already been {transfer.status.lower()}")

    user = get_user(user_id)
    if user.role not in TRANSFER_APPROVER_ROLES:
        raise Forbidden("Only APPROVER, CFO, RM_TEAM, or ADMIN can approve transfers")

    now = datetime.utcnow()

    if not approved:
        with transaction():
            transfer.status = 'REJECTED'
            transfer.approved_by_id = user.id
            transfer.approved_at = now
            transfer.rejection_reason = rejection_reason

        logger.info(f"Transfer {transfer.id} rejected by {user.email}")
        return {
            'success': True,
            'message': 'Budget transfer rejected',
            'transfer': transfer.to_dict(),
        }

    with transaction():
        source = transfer.source_item
        target = transfer.target_item
        amount = money(transfer.amount)

        if source.project_id != target.project_id:
            raise BadRequest("Source and target budget items must be in the same project")

        if not source.is_active or not target.is_active:
            raise BadRequest("Cannot transfer between inactive budget items")

        if amount > money(source.remaining_budget):
            raise BadRequest(
                f"Insufficient budget. Available: {source.remaining_budget}, Requested: {amount}"
            )

        _move_budget(source, -amount, f"Budget transfer: {amount} out (transfer {transfer.id})")
        _move_budget(target, amount, f"Budget transfer: {amount} in (transfer {transfer.id})")

        transfer.status = 'APPROVED'
        transfer.approved_by_id = user.id
        transfer.approved_at = now

        recalculate_project_totals(source.project_id)

    logger.info(f"Transfer {transfer.id} approved by {user.email}: {amount} "
                f"{source.label} -> {target.label}")
    return {
        'success': True,
        'message': 'Budget transfer approved successfully',
        'transfer': transfer.to_dict(),
    }


def cancel_transfer(transfer_id: str, user_id: str) -> BudgetTransfer:
    transfer = get_transfer(transfer_id)

    if transfer.created_by_id != user_id:
        raise Forbidden("Only the requester can cancel a transfer")

    if transfer.status != 'PENDING':
        raise BadRequest("Can only cancel pending transfers")

    with transaction():
        transfer.status = 'CANCELLED'

    logger.info(f"Transfer {transfer.id} cancelled")
    return transfer


def get_transfer_history(project_id: str, status: Optional[str] = None) -> List[BudgetTransfer]:
    get_project(project_id)
    query = BudgetTransfer.query.filter(_touching(_project_item_ids(project_id)))
    if status:
        query = query.filter(BudgetTransfer.status == status.upper())
    return query.order_by(BudgetTransfer.created_at.desc()).all()


def get_pending_transfers(project_id: Optional[str] = None) -> List[BudgetTransfer]:
    query = BudgetTransfer.query.filter_by(status='PENDING')
    if project_id:
        query = query.filter(_touching(_project_item_ids(project_id)))
    return query.order_by(BudgetTransfer.created_at.asc()).all()


def get_transfer(transfer_id: str) -> BudgetTransfer:
    return get_or_404(BudgetTransfer, transfer_id, 'Budget transfer')


def calculate_available_for_transfer(item_id: str) -> Dict[str, Any]:
    """Remaining budget minus pending outgoing transfers, never below 0."""
    item = get_or_404(BudgetItem, item_id, 'Budget item')

    pending_out = sum(
        (money(t.amount) for t in BudgetTransfer.query.filter_by(source_item_id=item_id,
                                                                 status='PENDING')),
        Decimal('0')
    )
    available = money(item.remaining_budget) - pending_out

    return {
        'budget_item_id': item.id,
        'current_budget': as_number(item.current_budget),
        'executed_amount': as_number(item.executed_amount),
        'remaining_budget': as_number(item.remaining_budget),
        'remaining_after_execution': as_number(item.remaining_after_execution),
        'pending_execution_amount': as_number(item.pending_execution_amount),
        'pending_transfer_out': as_number(pending_out),
        'available_for_transfer': as_number(max(available, Decimal('0'))),
    }
