"""
Database Models for Budget Execution Manager

SQLAlchemy models for projects, budget items, execution requests,
approvals, budget transfers, cash flow items, financial models and
simulations.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import JSON

db = SQLAlchemy()

ZERO = Decimal('0')


def generate_uuid():
    return str(uuid.uuid4())


def money(value) -> Decimal:
    """Coerce a column value or request field to a Decimal amount."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def as_number(value):
    """Decimal -> JSON friendly number"""
    if value is None:
        return None
    return float(value)


def calculate_execution_rate(executed, budget) -> float:
    """Executed amount as a percentage of budget, 0 when the budget is 0."""
    budget = money(budget)
    if budget == 0:
        return 0.0
    return float(money(executed) / budget * 100)


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    """
    Application user.

    Only the role matters to the workflows: it decides which approval
    steps a user may act on.
    """
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    email = db.Column(db.String(200), unique=True, nullable=False)
    name = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='STAFF')
    department = db.Column(db.String(100))
    position = db.Column(db.String(100))
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_summary(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
        }

    def to_dict(self):
        return {
            **self.to_summary(),
            'department': self.department,
            'position': self.position,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
        }


class Project(db.Model):
    """
    Construction / real-estate development project.

    Budget totals are denormalized from the active budget items and
    refreshed whenever an item changes.
    """
    __tablename__ = 'projects'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    code = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(200), nullable=False)
    location = db.Column(db.String(200))
    project_type = db.Column(db.String(50))  # SELF, JOINT, SPC, COOPERATIVE
    status = db.Column(db.String(20), default='ACTIVE')  # PLANNING, ACTIVE, COMPLETED, SUSPENDED

    # Budget totals
    initial_budget = db.Column(db.Numeric(18, 2), default=ZERO)
    current_budget = db.Column(db.Numeric(18, 2), default=ZERO)
    executed_amount = db.Column(db.Numeric(18, 2), default=ZERO)
    remaining_budget = db.Column(db.Numeric(18, 2), default=ZERO)
    execution_rate = db.Column(db.Float, default=0.0)

    # Profitability
    expected_profit = db.Column(db.Numeric(18, 2))
    roi = db.Column(db.Float)
    risk_score = db.Column(db.Float, default=0.0)

    start_date = db.Column(db.Date)
    completion_date = db.Column(db.Date)

    created_by_id = db.Column(db.String(36), db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    budget_items = db.relationship('BudgetItem', backref='project', lazy='dynamic',
                                   cascade='all, delete-orphan')
    execution_requests = db.relationship('ExecutionRequest', backref='project', lazy='dynamic',
                                         cascade='all, delete-orphan')
    cash_flow_items = db.relationship('CashFlowItem', backref='project', lazy='dynamic',
                                      cascade='all, delete-orphan')
    financial_models = db.relationship('FinancialModel', backref='project', lazy='dynamic',
                                       cascade='all, delete-orphan')
    simulations = db.relationship('Simulation', backref='project', lazy='dynamic',
                                  cascade='all, delete-orphan')

    def to_summary(self):
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
        }

    def to_dict(self):
        return {
            **self.to_summary(),
            'location': self.location,
            'project_type': self.project_type,
            'status': self.status,
            'initial_budget': as_number(self.initial_budget),
            'current_budget': as_number(self.current_budget),
            'executed_amount': as_number(self.executed_amount),
            'remaining_budget': as_number(self.remaining_budget),
            'execution_rate': self.execution_rate,
            'expected_profit': as_number(self.expected_profit),
            'roi': self.roi,
            'risk_score': self.risk_score,
            'start_date': _iso(self.start_date),
            'completion_date': _iso(self.completion_date),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class BudgetItem(db.Model):
    """
    A line item of a project's budget.

    remaining_budget = current_budget - executed_amount
    pending_execution_amount is reserved by execution requests still
    waiting for approval.
    """
    __tablename__ = 'budget_items'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    project_id = db.Column(db.String(36), db.ForeignKey('projects.id'), nullable=False)

    # Classification, e.g. 지출 / 공사비 / 건축공사
    category = db.Column(db.String(50), nullable=False)
    main_item = db.Column(db.String(100), nullable=False)
    sub_item = db.Column(db.String(100))

    # Amounts
    initial_budget = db.Column(db.Numeric(18, 2), default=ZERO)
    current_budget = db.Column(db.Numeric(18, 2), default=ZERO)
    executed_amount = db.Column(db.Numeric(18, 2), default=ZERO)
    remaining_budget = db.Column(db.Numeric(18, 2), default=ZERO)
    pending_execution_amount = db.Column(db.Numeric(18, 2), default=ZERO)
    execution_rate = db.Column(db.Float, default=0.0)

    display_order = db.Column(db.Integer, default=0)
    is_active = db.Column(db.Boolean, default=True)

    # Last budget change
    change_reason = db.Column(db.String(500))
    changed_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def remaining_after_execution(self) -> Decimal:
        """Remaining budget once every pending execution is approved"""
        return money(self.remaining_budget) - money(self.pending_execution_amount)

    @property
    def label(self) -> str:
        if self.sub_item:
            return f"{self.main_item} - {self.sub_item}"
        return self.main_item

    def recalculate(self):
        """Refresh remaining budget and execution rate from current/executed."""
        self.remaining_budget = money(self.current_budget) - money(self.executed_amount)
        self.execution_rate = calculate_execution_rate(self.executed_amount, self.current_budget)

    def to_summary(self):
        return {
            'id': self.id,
            'category': self.category,
            'main_item': self.main_item,
            'sub_item': self.sub_item,
            'remaining_budget': as_number(self.remaining_budget),
            'remaining_after_execution': as_number(self.remaining_after_execution),
            'pending_execution_amount': as_number(self.pending_execution_amount),
        }

    def to_dict(self):
        return {
            **self.to_summary(),
            'project_id': self.project_id,
            'initial_budget': as_number(self.initial_budget),
            'current_budget': as_number(self.current_budget),
            'executed_amount': as_number(self.executed_amount),
            'execution_rate': self.execution_rate,
            'display_order': self.display_order,
            'is_active': self.is_active,
            'change_reason': self.change_reason,
            'changed_at': _iso(self.changed_at),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class ExecutionRequest(db.Model):
    """
    A request to spend against a budget item.

    Consumes budget only when the last approval step is approved.
    """
    __tablename__ = 'execution_requests'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    request_number = db.Column(db.String(30), unique=True, nullable=False)
    project_id = db.Column(db.String(36), db.ForeignKey('projects.id'), nullable=False)
    budget_item_id = db.Column(db.String(36), db.ForeignKey('budget_items.id'), nullable=False)
    requested_by_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)

    amount = db.Column(db.Numeric(18, 2), nullable=False)
    execution_date = db.Column(db.Date, nullable=False)
    purpose = db.Column(db.String(1000), nullable=False)
    description = db.Column(db.String(2000))
    attachments = db.Column(JSON)

    status = db.Column(db.String(20), default='PENDING')  # PENDING, APPROVED, REJECTED, CANCELLED
    current_step = db.Column(db.Integer, default=1)
    rejection_reason = db.Column(db.String(1000))
    completed_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    budget_item = db.relationship('BudgetItem', backref=db.backref('execution_requests', lazy='dynamic'))
    requested_by = db.relationship('User', foreign_keys=[requested_by_id])
    approvals = db.relationship('Approval', backref='execution_request',
                                order_by='Approval.step',
                                cascade='all, delete-orphan')
    budget_transfers = db.relationship('BudgetTransfer', backref='execution_request', lazy='dynamic')

    def to_summary(self):
        return {
            'id': self.id,
            'request_number': self.request_number,
            'purpose': self.purpose,
            'amount': as_number(self.amount),
            'status': self.status,
        }

    def to_dict(self, include_approvals=True):
        data = {
            **self.to_summary(),
            'project_id': self.project_id,
            'project': self.project.to_summary() if self.project else None,
            'budget_item_id': self.budget_item_id,
            'budget_item': self.budget_item.to_summary() if self.budget_item else None,
            'requested_by': self.requested_by.to_summary() if self.requested_by else None,
            'execution_date': _iso(self.execution_date),
            'description': self.description,
            'attachments': self.attachments or [],
            'current_step': self.current_step,
            'rejection_reason': self.rejection_reason,
            'completed_at': _iso(self.completed_at),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_approvals:
            data['approvals'] = [a.to_dict() for a in self.approvals]
        return data


class Approval(db.Model):
    """One step of an execution request's approval chain."""
    __tablename__ = 'approvals'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    execution_request_id = db.Column(db.String(36), db.ForeignKey('execution_requests.id'),
                                     nullable=False)
    step = db.Column(db.Integer, nullable=False)
    approver_role = db.Column(db.String(20), nullable=False)
    approver_id = db.Column(db.String(36), db.ForeignKey('users.id'))

    status = db.Column(db.String(20), default='PENDING')  # PENDING, APPROVED, REJECTED, CANCELLED
    decision = db.Column(db.String(1000))
    decided_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    approver = db.relationship('User', foreign_keys=[approver_id])

    def to_dict(self):
        return {
            'id': self.id,
            'execution_request_id': self.execution_request_id,
            'step': self.step,
            'approver_role': self.approver_role,
            'approver': self.approver.to_summary() if self.approver else None,
            'status': self.status,
            'decision': self.decision,
            'decided_at': _iso(self.decided_at),
            'created_at': _iso(self.created_at)
        }


class BudgetTransfer(db.Model):
    """
    Reallocation of remaining budget from one item to another.

    Balances move only when the transfer is approved.
    """
    __tablename__ = 'budget_transfers'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    source_item_id = db.Column(db.String(36), db.ForeignKey('budget_items.id'), nullable=False)
    target_item_id = db.Column(db.String(36), db.ForeignKey('budget_items.id'), nullable=False)
    execution_request_id = db.Column(db.String(36), db.ForeignKey('execution_requests.id'))

    amount = db.Column(db.Numeric(18, 2), nullable=False)
    transfer_type = db.Column(db.String(20), default='PARTIAL')  # PARTIAL, FULL
    reason = db.Column(db.String(1000), nullable=False)
    description = db.Column(db.String(2000))

    status = db.Column(db.String(20), default='PENDING')  # PENDING, APPROVED, REJECTED, CANCELLED
    created_by_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    approved_by_id = db.Column(db.String(36), db.ForeignKey('users.id'))
    approved_at = db.Column(db.DateTime)
    rejection_reason = db.Column(db.String(1000))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    source_item = db.relationship('BudgetItem', foreign_keys=[source_item_id])
    target_item = db.relationship('BudgetItem', foreign_keys=[target_item_id])
    created_by = db.relationship('User', foreign_keys=[created_by_id])
    approved_by = db.relationship('User', foreign_keys=[approved_by_id])

    def to_dict(self):
        return {
            'id': self.id,
            'source_item_id': self.source_item_id,
            'target_item_id': self.target_item_id,
            'source_item': self.source_item.to_summary() if self.source_item else None,
            'target_item': self.target_item.to_summary() if self.target_item else None,
            'execution_request_id': self.execution_request_id,
            'amount': as_number(self.amount),
            'transfer_type': self.transfer_type,
            'reason': self.reason,
            'description': self.description,
            'status': self.status,
            'created_by': self.created_by.to_summary() if self.created_by else None,
            'approved_by': self.approved_by.to_summary() if self.approved_by else None,
            'approved_at': _iso(self.approved_at),
            'rejection_reason': self.rejection_reason,
            'created_at': _iso(self.created_at)
        }


class CashFlowItem(db.Model):
    """
    Planned / forecast / actual cash movement for a project month.
    """
    __tablename__ = 'cash_flow_items'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    project_id = db.Column(db.String(36), db.ForeignKey('projects.id'), nullable=False)

    flow_type = db.Column(db.String(10), nullable=False)  # INFLOW, OUTFLOW
    category = db.Column(db.String(50))
    main_item = db.Column(db.String(100))
    sub_item = db.Column(db.String(100))
    description = db.Column(db.String(500))

    budget_amount = db.Column(db.Numeric(18, 2), default=ZERO)
    forecast_amount = db.Column(db.Numeric(18, 2), default=ZERO)
    actual_amount = db.Column(db.Numeric(18, 2), default=ZERO)
    variance_amount = db.Column(db.Numeric(18, 2), default=ZERO)
    variance_reason = db.Column(db.String(500))
    is_variance_approved = db.Column(db.Boolean, default=False)

    planned_date = db.Column(db.Date, nullable=False)
    forecast_date = db.Column(db.Date)
    actual_date = db.Column(db.Date)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @property
    def effective_amount(self) -> Decimal:
        """Actual amount once booked, otherwise the forecast (or budget)."""
        if self.actual_date is not None:
            return money(self.actual_amount)
        if self.forecast_amount:
            return money(self.forecast_amount)
        return money(self.budget_amount)

    def to_dict(self):
        return {
            'id': self.id,
            'project_id': self.project_id,
            'flow_type': self.flow_type,
            'category': self.category,
            'main_item': self.main_item,
            'sub_item': self.sub_item,
            'description': self.description,
            'budget_amount': as_number(self.budget_amount),
            'forecast_amount': as_number(self.forecast_amount),
            'actual_amount': as_number(self.actual_amount),
            'variance_amount': as_number(self.variance_amount),
            'variance_reason': self.variance_reason,
            'is_variance_approved': self.is_variance_approved,
            'planned_date': _iso(self.planned_date),
            'forecast_date': _iso(self.forecast_date),
            'actual_date': _iso(self.actual_date)
        }


class FinancialModel(db.Model):
    """
    Versioned feasibility model of a project.

    Holds the assumptions the simulation engine perturbs.
    """
    __tablename__ = 'financial_models'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    project_id = db.Column(db.String(36), db.ForeignKey('projects.id'), nullable=False)
    version = db.Column(db.Integer, default=1)
    is_active = db.Column(db.Boolean, default=True)

    # Revenue
    total_revenue = db.Column(db.Numeric(18, 2), default=ZERO)
    presale_rate = db.Column(db.Float, default=100.0)  # % of units sold
    sales_period_months = db.Column(db.Integer, default=12)

    # Costs
    land_cost = db.Column(db.Numeric(18, 2), default=ZERO)
    construction_cost = db.Column(db.Numeric(18, 2), default=ZERO)
    other_costs = db.Column(db.Numeric(18, 2), default=ZERO)
    construction_period_months = db.Column(db.Integer, default=24)

    # Financing
    loan_amount = db.Column(db.Numeric(18, 2), default=ZERO)
    interest_rate = db.Column(db.Float, default=0.0)  # annual %

    # Outputs
    expected_profit = db.Column(db.Numeric(18, 2))
    roi = db.Column(db.Float)
    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @property
    def total_cost(self) -> Decimal:
        return money(self.land_cost) + money(self.construction_cost) + money(self.other_costs)

    def to_dict(self):
        return {
            'id': self.id,
            'project_id': self.project_id,
            'version': self.version,
            'is_active': self.is_active,
            'total_revenue': as_number(self.total_revenue),
            'presale_rate': self.presale_rate,
            'sales_period_months': self.sales_period_months,
            'land_cost': as_number(self.land_cost),
            'construction_cost': as_number(self.construction_cost),
            'other_costs': as_number(self.other_costs),
            'total_cost': as_number(self.total_cost),
            'construction_period_months': self.construction_period_months,
            'loan_amount': as_number(self.loan_amount),
            'interest_rate': self.interest_rate,
            'expected_profit': as_number(self.expected_profit),
            'roi': self.roi,
            'notes': self.notes,
            'created_at': _iso(self.created_at)
        }


class Simulation(db.Model):
    """Stored what-if scenario run."""
    __tablename__ = 'simulations'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    project_id = db.Column(db.String(36), db.ForeignKey('projects.id'), nullable=False)
    name = db.Column(db.String(200), nullable=False)

    # Scenario input and computed output (JSON)
    scenario = db.Column(JSON)
    results = db.Column(JSON)

    created_by_id = db.Column(db.String(36), db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'project_id': self.project_id,
            'name': self.name,
            'scenario': self.scenario,
            'results': self.results,
            'created_by_id': self.created_by_id,
            'created_at': _iso(self.created_at)
        }
