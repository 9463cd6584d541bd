"""
Database Module for Budget Execution Manager

SQLAlchemy models and database utilities.
"""

from .models import (
    db,
    User,
    Project,
    BudgetItem,
    ExecutionRequest,
    Approval,
    BudgetTransfer,
    CashFlowItem,
    FinancialModel,
    Simulation,
    money,
    calculate_execution_rate
)
from .session import transaction

__all__ = [
    'db',
    'User',
    'Project',
    'BudgetItem',
    'ExecutionRequest',
    'Approval',
    'BudgetTransfer',
    'CashFlowItem',
    'FinancialModel',
    'Simulation',
    'money',
    'calculate_execution_rate',
    'transaction',
]
