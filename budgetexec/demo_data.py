"""
Demo Data Generator for Budget Execution Manager

Generates realistic development-project data for demonstrations and
testing: users for every approval role, projects with a full budget
breakdown, a year of monthly cash flow and a financial model per project.
"""

import random
import uuid
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Any
from dataclasses import dataclass

DEMO_USERS = [
    ("admin@demo.local", "시스템 관리자", "ADMIN", "IT", "Administrator"),
    ("cfo@demo.local", "김재무", "CFO", "재무본부", "CFO"),
    ("rm@demo.local", "박리스크", "RM_TEAM", "RM팀", "RM Team Leader"),
    ("teamlead@demo.local", "이팀장", "TEAM_LEAD", "개발사업팀", "Team Leader"),
    ("staff1@demo.local", "최담당", "STAFF", "개발사업팀", "Staff"),
    ("staff2@demo.local", "정사원", "STAFF", "개발사업팀", "Staff"),
    ("approver@demo.local", "한승인", "APPROVER", "재무본부", "Approver"),
]

# Budget breakdown as (category, main item, sub item, share of total budget)
BUDGET_TEMPLATE = [
    ("수입", "PF대출", "PF 총액", 0.62),
    ("수입", "분양수입", "아파트 분양", 0.28),
    ("수입", "분양수입", "상가 분양", 0.08),
    ("지출", "토지비", "토지 매입비", 0.235),
    ("지출", "토지비", "취득세 및 등록세", 0.038),
    ("지출", "공사비", "직접공사비", 0.32),
    ("지출", "공사비", "간접공사비", 0.095),
    ("지출", "공사비", "가설공사비", 0.023),
    ("지출", "공사비", "토목공사비", 0.041),
    ("지출", "설계비", "건축설계", 0.0165),
    ("지출", "설계비", "감리비", 0.0125),
    ("지출", "부담금", "학교용지부담금", 0.028),
    ("지출", "부담금", "광역교통시설부담금", 0.022),
    ("지출", "마케팅비", "분양대행수수료", 0.0185),
    ("지출", "마케팅비", "모델하우스 운영비", 0.0092),
    ("지출", "금융비용", "PF 이자", 0.035),
    ("지출", "금융비용", "PF 수수료", 0.012),
]

# Project profiles: (code, name, location, type, total budget, target execution rate)
PROJECT_PROFILES = {
    "early_stage": {
        "code": "PRJ-DEMO-001",
        "name": "부산 재개발",
        "location": "부산시 해운대구",
        "project_type": "COOPERATIVE",
        "total_budget": 180_000_000_000,
        "execution_rate": (0.20, 0.40),
        "presale_rate": 85.0,
        "roi": 15.0,
    },
    "on_track": {
        "code": "PRJ-DEMO-002",
        "name": "강남 아파트 개발",
        "location": "서울시 강남구",
        "project_type": "SELF",
        "total_budget": 155_000_000_000,
        "execution_rate": (0.55, 0.70),
        "presale_rate": 95.0,
        "roi": 20.0,
    },
    "near_exhaustion": {
        "code": "PRJ-DEMO-003",
        "name": "송도 주상복합",
        "location": "인천시 송도",
        "project_type": "SPC",
        "total_budget": 210_000_000_000,
        "execution_rate": (0.88, 0.99),
        "presale_rate": 78.0,
        "roi": 11.9,
    },
}

CENT = Decimal('0.01')


def _amount(value: float) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def _month_start(start: date, offset: int) -> date:
    return date(start.year + (start.month + offset - 1) // 12,
                (start.month + offset - 1) % 12 + 1,
                1)


@dataclass
class GeneratedProject:
    """Generated project data structure"""
    project: Dict[str, Any]
    budget_items: List[Dict[str, Any]]
    cash_flow_items: List[Dict[str, Any]]
    financial_model: Dict[str, Any]


class DemoDataGenerator:
    """
    Generate realistic demo data for Budget Execution Manager.

    Example:
        generator = DemoDataGenerator(seed=42)
        project = generator.generate_project("on_track")
        projects = generator.generate_demo_set()
    """

    def __init__(self, seed: Optional[int] = None):
        """Initialize generator with optional random seed for reproducibility"""
        self.random = random.Random(seed)

    def generate_project(self, profile_key: str = "on_track",
                         months_of_history: int = 12) -> GeneratedProject:
        profile = PROJECT_PROFILES.get(profile_key, PROJECT_PROFILES["on_track"])
        project_id = str(uuid.UUID(int=self.random.getrandbits(128)))
        total = profile["total_budget"]

        items = []
        for order, (category, main_item, sub_item, share) in enumerate(BUDGET_TEMPLATE):
            budget = _amount(total * share)
            if category == "지출":
                rate = min(self.random.uniform(*profile["execution_rate"]), 1.0)
                executed = _amount(float(budget) * rate)
            else:
                executed = Decimal('0')
            items.append({
                "project_id": project_id,
                "category": category,
                "main_item": main_item,
                "sub_item": sub_item,
                "initial_budget": budget,
                "current_budget": budget,
                "executed_amount": executed,
                "display_order": order,
            })

        today = date.today()
        start = date(today.year - 1, today.month, 1)
        expense_total = sum(float(i["current_budget"]) for i in items if i["category"] == "지출")
        revenue_total = total * 0.36

        cash_flow = []
        for offset in range(months_of_history):
            planned = _month_start(start, offset)
            past = planned <= today.replace(day=1)
            # Sales money arrives in the second half of the year
            inflow = revenue_total / months_of_history * (0.4 if offset < 6 else 1.6)
            outflow = expense_total / months_of_history * self.random.uniform(0.85, 1.15)

            for flow_type, planned_amount, main_item in (("INFLOW", inflow, "분양수입"),
                                                         ("OUTFLOW", outflow, "공사비")):
                actual = planned_amount * self.random.uniform(0.9, 1.1) if past else 0.0
                cash_flow.append({
                    "project_id": project_id,
                    "flow_type": flow_type,
                    "category": "수입" if flow_type == "INFLOW" else "지출",
                    "main_item": main_item,
                    "budget_amount": _amount(planned_amount),
                    "forecast_amount": _amount(planned_amount),
                    "actual_amount": _amount(actual),
                    "variance_amount": _amount(actual - planned_amount) if past else Decimal('0'),
                    "planned_date": planned,
                    "actual_date": planned if past else None,
                })

        land = sum(float(i["current_budget"]) for i in items if i["main_item"] == "토지비")
        construction = sum(float(i["current_budget"]) for i in items if i["main_item"] == "공사비")
        other = expense_total - land - construction

        financial_model = {
            "project_id": project_id,
            "version": 1,
            "total_revenue": _amount((land + construction + other) * (1 + profile["roi"] / 100)),
            "presale_rate": profile["presale_rate"],
            "sales_period_months": 18,
            "land_cost": _amount(land),
            "construction_cost": _amount(construction),
            "other_costs": _amount(other),
            "construction_period_months": 30,
            "loan_amount": _amount(total * 0.62),
            "interest_rate": round(self.random.uniform(5.5, 7.5), 2),
            "roi": profile["roi"],
        }

        return GeneratedProject(
            project={
                "id": project_id,
                "code": profile["code"],
                "name": profile["name"],
                "location": profile["location"],
                "project_type": profile["project_type"],
                "status": "ACTIVE",
                "start_date": start,
                "roi": profile["roi"],
            },
            budget_items=items,
            cash_flow_items=cash_flow,
            financial_model=financial_model,
        )

    def generate_demo_set(self, count: int = 3) -> List[GeneratedProject]:
        return [self.generate_project(key) for key in list(PROJECT_PROFILES)[:count]]


def load_demo_data_to_db(db_session, count: int = 3) -> List[str]:
    """
    Load demo users and projects into the database.

    Args:
        db_session: SQLAlchemy database session
        count: Number of demo projects to create

    Returns:
        List of created project IDs
    """
    from .database.models import User, Project, BudgetItem, CashFlowItem, FinancialModel
    from .services.budget_service import recalculate_project_totals

    admin = None
    for email, name, role, department, position in DEMO_USERS:
        user = User.query.filter_by(email=email).first()
        if user is None:
            user = User(email=email, name=name, role=role,
                        department=department, position=position)
            db_session.add(user)
        if role == "ADMIN":
            admin = user
    db_session.flush()

    generator = DemoDataGenerator(seed=42)  # Reproducible demos
    project_ids = []

    for generated in generator.generate_demo_set(count=count):
        if Project.query.filter_by(code=generated.project["code"]).first():
            continue

        db_session.add(Project(created_by_id=admin.id, **generated.project))

        for item_data in generated.budget_items:
            item = BudgetItem(**item_data)
            item.recalculate()
            db_session.add(item)

        for flow_data in generated.cash_flow_items:
            db_session.add(CashFlowItem(**flow_data))

        db_session.add(FinancialModel(**generated.financial_model))
        db_session.flush()

        recalculate_project_totals(generated.project["id"])
        project_ids.append(generated.project["id"])

    db_session.commit()
    return project_ids
