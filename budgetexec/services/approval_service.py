"""
Approval Service

Sequential approval chain of execution requests. Step 1 (STAFF) is the
requester's own submission and is approved automatically; the request then
waits on each following step in order. Approving the last step consumes
the budget; rejecting any step closes the request.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from werkzeug.exceptions import BadRequest, Forbidden

from ..database.models import db, Approval, ExecutionRequest, money
from ..database.session import transaction
from .budget_service import recalculate_project_totals
from .common import get_or_404, get_user, setting

logger = logging.getLogger(__name__)

WORKFLOWS = {
    'standard': ('STAFF', 'APPROVER'),
    'extended': ('STAFF', 'TEAM_LEAD', 'RM_TEAM', 'CFO'),
}


def workflow_roles(name: Optional[str] = None) -> tuple:
    """Roles of the configured approval chain, in step order."""
    name = name or setting('APPROVAL_WORKFLOW', 'standard')
    if name not in WORKFLOWS:
        logger.warning(f"Unknown approval workflow '{name}', using 'standard'")
        name = 'standard'
    return WORKFLOWS[name]


def build_approval_chain(execution: ExecutionRequest, requester_id: str,
                         workflow: Optional[str] = None) -> List[Approval]:
    """Create the approval rows for a new request; step 1 is pre-approved."""
    now = datetime.utcnow()
    approvals = []
    for step, role in enumerate(workflow_roles(workflow), start=1):
        submitted = step == 1
        approval = Approval(
            step=step,
            approver_role=role,
            status='APPROVED' if submitted else 'PENDING',
            approver_id=requester_id if submitted else None,
            decided_at=now if submitted else None,
        )
        # Appended on the parent side so the rows cascade into the session
        execution.approvals.append(approval)
        approvals.append(approval)
    db.session.add_all(approvals)
    execution.current_step = 2 if len(approvals) > 1 else 1
    return approvals


def release_reservation(execution: ExecutionRequest):
    """Give back the amount a pending request held on its budget item."""
    item = execution.budget_item
    pending = money(item.pending_execution_amount) - money(execution.amount)
    item.pending_execution_amount = max(pending, money(0))


def cancel_open_steps(execution: ExecutionRequest, now: datetime):
    for approval in execution.approvals:
        if approval.status == 'PENDING':
            approval.status = 'CANCELLED'
            approval.decided_at = now


def get_approval(approval_id: str) -> Approval:
    return get_or_404(Approval, approval_id, 'Approval')


def get_pending_approvals(user_id: str) -> List[Approval]:
    """Pending approvals for the user's role that are the request's current step."""
    user = get_user(user_id)

    query = Approval.query.join(ExecutionRequest)\
                          .filter(Approval.status == 'PENDING',
                                  ExecutionRequest.status == 'PENDING',
                                  Approval.step == ExecutionRequest.current_step)
    if user.role != 'ADMIN':
        query = query.filter(Approval.approver_role == user.role)

    return query.order_by(Approval.created_at.asc()).all()


def _check_actionable(approval: Approval, user) -> ExecutionRequest:
    if approval.status != 'PENDING':
        raise BadRequest("Approval already processed")

    execution = approval.execution_request
    if execution.status != 'PENDING':
        raise BadRequest(f"Execution request is {execution.status.lower()}")

    if approval.step != execution.current_step:
        raise BadRequest(
            f"Approval step {approval.step} is not the current step ({execution.current_step})"
        )

    if user.role != 'ADMIN' and user.role != approval.approver_role:
        raise Forbidden(f"Step {approval.step} must be approved by {approval.approver_role}")

    return execution


def approve(approval_id: str, user_id: str, decision: Optional[str] = None) -> Dict[str, Any]:
    """
    Approve the current step of a request.

    The final step marks the request APPROVED and moves its amount from
    pending to executed on the budget item, all in one transaction.
    """
    approval = get_approval(approval_id)
    user = get_user(user_id)
    execution = _check_actionable(approval, user)

    total_steps = len(execution.approvals)
    now = datetime.utcnow()

    with transaction():
        approval.status = 'APPROVED'
        approval.approver_id = user.id
        approval.decision = decision
        approval.decided_at = now

        if approval.step < total_steps:
            execution.current_step = approval.step + 1
            final = False
        else:
            item = execution.budget_item
            amount = money(execution.amount)

            if amount > money(item.remaining_budget):
                raise BadRequest(
                    f"Insufficient budget balance. Available: {item.remaining_budget}, "
                    f"Requested: {amount}"
                )

            execution.status = 'APPROVED'
            execution.completed_at = now

            release_reservation(execution)
            item.executed_amount = money(item.executed_amount) + amount
            item.recalculate()

            recalculate_project_totals(execution.project_id)
            final = True

    if final:
        logger.info(f"Execution {execution.request_number} approved: {execution.amount} executed")
        return {'message': 'Approved successfully', 'final': True,
                'execution': execution.to_dict()}

    logger.info(f"Execution {execution.request_number} advanced to step {execution.current_step}")
    return {'message': 'Approved successfully', 'final': False,
            'execution': execution.to_dict()}


def reject(approval_id: str, user_id: str, reason: str) -> Dict[str, Any]:
    """Reject the current step; the request is closed and its reservation released."""
    if not reason or not str(reason).strip():
        raise BadRequest("Rejection reason is required")

    approval = get_approval(approval_id)
    user = get_user(user_id)
    execution = _check_actionable(approval, user)

    now = datetime.utcnow()

    with transaction():
        approval.status = 'REJECTED'
        approval.approver_id = user.id
        approval.decision = reason
        approval.decided_at = now

        cancel_open_steps(execution, now)
        execution.status = 'REJECTED'
        execution.rejection_reason = reason
        release_reservation(execution)

    logger.info(f"Execution {execution.request_number} rejected at step {approval.step}")
    return {'message': 'Rejected successfully', 'execution': execution.to_dict()}
