"""
Helpers shared by the service layer.
"""

from datetime import date
from decimal import Decimal, InvalidOperation

from flask import current_app
from werkzeug.exceptions import BadRequest, NotFound

from ..database.models import db, User, Project

CENT = Decimal('0.01')
# Numeric(18, 2) columns hold 16 integer digits
MAX_AMOUNT = Decimal('1e16')


def get_or_404(model, object_id, label=None):
    """Primary-key lookup raising NotFound with a readable message."""
    instance = db.session.get(model, object_id) if object_id else None
    if instance is None:
        raise NotFound(f"{label or model.__name__} not found: {object_id}")
    return instance


def get_user(user_id) -> User:
    if not user_id:
        raise BadRequest("User ID is required")
    return get_or_404(User, user_id, 'User')


def get_project(project_id) -> Project:
    return get_or_404(Project, project_id, 'Project')


def parse_amount(value, field='amount', allow_zero=False) -> Decimal:
    """Request value -> Decimal, BadRequest if not a valid amount."""
    if value is None or isinstance(value, bool):
        raise BadRequest(f"{field} is required")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise BadRequest(f"{field} must be a number")
    if not amount.is_finite():
        raise BadRequest(f"{field} must be a number")
    if amount < 0 or (amount == 0 and not allow_zero):
        raise BadRequest(f"{field} must be greater than {'or equal to ' if allow_zero else ''}0")
    if amount >= MAX_AMOUNT:
        raise BadRequest(f"{field} is too large")
    if amount != amount.quantize(CENT):
        raise BadRequest(f"{field} must have at most 2 decimal places")
    return amount


def parse_date(value, field='date') -> date:
    if isinstance(value, date):
        return value
    if not value:
        raise BadRequest(f"{field} is required")
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise BadRequest(f"{field} must be a valid date (YYYY-MM-DD)")


def setting(name, default=None):
    return current_app.config.get(name, default)
