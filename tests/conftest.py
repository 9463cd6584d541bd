"""
Shared test fixtures for Budget Execution Manager.

Every test gets a fresh app on an in-memory SQLite database, pushed into
an application context, with one user per role and a seeded project.

Seeded project (PRJ-T-001), all current budgets:
    지출 / 공사비 / 직접공사비    1,000,000
    지출 / 설계비 / 건축설계        500,000
    지출 / 마케팅비 / 광고선전비    300,000
    수입 / 분양수입 / 아파트 분양  2,000,000
"""

from datetime import date
from decimal import Decimal

import pytest

from config.settings import TestingConfig
from web.app import create_app
from budgetexec.database.models import db, User, Project, CashFlowItem, FinancialModel
from budgetexec.services import budget_service

ROLES = ('STAFF', 'TEAM_LEAD', 'APPROVER', 'RM_TEAM', 'CFO', 'ADMIN')


@pytest.fixture
def app():
    """Application with tables created, inside an app context."""
    app = create_app(TestingConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def users(app):
    """One user per role, keyed by role."""
    created = {}
    for role in ROLES:
        user = User(email=f"{role.lower()}@test.local", name=f"Test {role.title()}", role=role)
        db.session.add(user)
        created[role] = user
    db.session.commit()
    return created


@pytest.fixture
def staff(users):
    return users['STAFF']


@pytest.fixture
def approver(users):
    return users['APPROVER']


def make_project(code, created_by=None):
    project = Project(code=code, name=f"Project {code}", status='ACTIVE',
                      created_by_id=created_by.id if created_by else None)
    db.session.add(project)
    db.session.commit()
    return project


@pytest.fixture
def project(users):
    return make_project('PRJ-T-001', users['ADMIN'])


@pytest.fixture
def items(project):
    """Budget items of the seeded project, keyed by a short name."""
    specs = {
        'construction': ('지출', '공사비', '직접공사비', '1000000'),
        'design': ('지출', '설계비', '건축설계', '500000'),
        'marketing': ('지출', '마케팅비', '광고선전비', '300000'),
        'sales': ('수입', '분양수입', '아파트 분양', '2000000'),
    }
    created = {}
    for order, (key, (category, main_item, sub_item, budget)) in enumerate(specs.items()):
        created[key] = budget_service.create_budget_item({
            'project_id': project.id,
            'category': category,
            'main_item': main_item,
            'sub_item': sub_item,
            'current_budget': budget,
            'display_order': order,
        })
    return created


@pytest.fixture
def other_project(users):
    """Second project with one item, for cross-project checks."""
    project = make_project('PRJ-T-002', users['ADMIN'])
    item = budget_service.create_budget_item({
        'project_id': project.id,
        'category': '지출',
        'main_item': '토지비',
        'current_budget': '800000',
    })
    return project, item


@pytest.fixture
def financial_model(project):
    model = FinancialModel(
        project_id=project.id,
        version=1,
        total_revenue=Decimal('1200000'),
        presale_rate=100.0,
        land_cost=Decimal('300000'),
        construction_cost=Decimal('500000'),
        other_costs=Decimal('100000'),
        construction_period_months=24,
        loan_amount=Decimal('600000'),
        interest_rate=5.0,
    )
    db.session.add(model)
    db.session.commit()
    return model


@pytest.fixture
def cash_flow(project):
    """Four months: outflows first, sales money in the last two."""
    rows = [
        ('OUTFLOW', date(2025, 1, 10), '400000'),
        ('OUTFLOW', date(2025, 2, 10), '300000'),
        ('INFLOW', date(2025, 3, 10), '500000'),
        ('OUTFLOW', date(2025, 3, 20), '100000'),
        ('INFLOW', date(2025, 4, 10), '600000'),
    ]
    for flow_type, planned, amount in rows:
        db.session.add(CashFlowItem(
            project_id=project.id,
            flow_type=flow_type,
            budget_amount=Decimal(amount),
            forecast_amount=Decimal(amount),
            planned_date=planned,
        ))
    db.session.commit()


@pytest.fixture
def set_executed(app):
    """Put an item into an executed state without going through approvals."""
    def _set(item, amount):
        item.executed_amount = Decimal(str(amount))
        item.recalculate()
        budget_service.recalculate_project_totals(item.project_id)
        db.session.commit()
    return _set
