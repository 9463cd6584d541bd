"""
Service layer for Budget Execution Manager

Each module owns one area of the domain and raises werkzeug HTTP
exceptions on invalid input or state.
"""

from . import (
    analytics_service,
    approval_service,
    budget_service,
    dashboard_service,
    execution_service,
    financial_service,
    simulation_service,
    transfer_service,
)

__all__ = [
    'analytics_service',
    'approval_service',
    'budget_service',
    'dashboard_service',
    'execution_service',
    'financial_service',
    'simulation_service',
    'transfer_service',
]
