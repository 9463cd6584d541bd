"""Tests for budget transfers between line items."""

from decimal import Decimal

import pytest
from werkzeug.exceptions import BadRequest, Forbidden, NotFound

from budgetexec.database.models import db, BudgetItem, Project
from budgetexec.services import transfer_service


def _request(staff, source, target, amount='200000', **extra):
    return transfer_service.create_transfer(staff.id, {
        'source_item_id': source.id,
        'target_item_id': target.id,
        'amount': amount,
        'reason': 'Design change needs more budget',
        **extra,
    })


class TestCreateTransfer:
    def test_created_pending_without_moving_money(self, staff, items):
        transfer = _request(staff, items['marketing'], items['design'])

        assert transfer.status == 'PENDING'
        assert transfer.amount == Decimal('200000')
        assert db.session.get(BudgetItem, items['marketing'].id).current_budget == Decimal('300000')

    def test_amount_above_remaining_rejected(self, staff, items):
        with pytest.raises(BadRequest, match="Insufficient budget"):
            _request(staff, items['marketing'], items['design'], amount='300000.01')

    def test_exact_remaining_allowed(self, staff, items):
        transfer = _request(staff, items['marketing'], items['design'], amount='300000')
        assert transfer.amount == Decimal('300000')

    def test_same_item_rejected(self, staff, items):
        with pytest.raises(BadRequest, match="same budget item"):
            _request(staff, items['design'], items['design'])

    def test_cross_project_rejected(self, staff, items, other_project):
        _, foreign_item = other_project
        with pytest.raises(BadRequest, match="same project"):
            _request(staff, items['design'], foreign_item)

    def test_unknown_source(self, staff, items):
        with pytest.raises(NotFound, match="Source budget item"):
            transfer_service.create_transfer(staff.id, {
                'source_item_id': 'missing', 'target_item_id': items['design'].id,
                'amount': 1, 'reason': 'x'
            })

    @pytest.mark.parametrize("amount", [0, -5, 'abc', None, '0.001', '100.005', 'NaN'])
    def test_invalid_amount(self, staff, items, amount):
        with pytest.raises(BadRequest):
            _request(staff, items['marketing'], items['design'], amount=amount)

    def test_reason_required(self, staff, items):
        with pytest.raises(BadRequest, match="Reason"):
            _request(staff, items['marketing'], items['design'], reason='  ')

    def test_full_transfer_takes_whole_remaining(self, staff, items, set_executed):
        set_executed(items['marketing'], 100000)
        transfer = _request(staff, items['marketing'], items['design'],
                            amount=None, transfer_type='FULL')
        assert transfer.amount == Decimal('200000')
        assert transfer.transfer_type == 'FULL'


class TestApproveTransfer:
    def test_moves_exact_amount(self, staff, approver, project, items):
        transfer = _request(staff, items['marketing'], items['design'], amount='120000.50')

        result = transfer_service.approve_transfer(transfer.id, approver.id)

        source = db.session.get(BudgetItem, items['marketing'].id)
        target = db.session.get(BudgetItem, items['design'].id)
        assert result['success'] is True
        assert result['transfer']['status'] == 'APPROVED'
        assert source.current_budget == Decimal('179999.50')
        assert source.remaining_budget == Decimal('179999.50')
        assert target.current_budget == Decimal('620000.50')
        assert target.remaining_budget == Decimal('620000.50')
        assert source.change_reason and target.change_reason

        # Money only moved inside the project
        assert db.session.get(Project, project.id).current_budget == Decimal('3800000')

    def test_rates_recomputed(self, staff, approver, items, set_executed):
        set_executed(items['design'], 250000)
        transfer = _request(staff, items['marketing'], items['design'], amount='300000')

        transfer_service.approve_transfer(transfer.id, approver.id)

        target = db.session.get(BudgetItem, items['design'].id)
        assert target.current_budget == Decimal('800000')
        assert target.execution_rate == pytest.approx(31.25)
        assert db.session.get(BudgetItem, items['marketing'].id).execution_rate == 0.0

    def test_staff_cannot_approve(self, staff, items):
        transfer = _request(staff, items['marketing'], items['design'])
        with pytest.raises(Forbidden):
            transfer_service.approve_transfer(transfer.id, staff.id)

    @pytest.mark.parametrize("role", ['APPROVER', 'CFO', 'RM_TEAM', 'ADMIN'])
    def test_approver_roles(self, users, items, role):
        transfer = _request(users['STAFF'], items['marketing'], items['design'])
        result = transfer_service.approve_transfer(transfer.id, users[role].id)
        assert result['transfer']['status'] == 'APPROVED'

    def test_not_pending_rejected(self, staff, approver, items):
        transfer = _request(staff, items['marketing'], items['design'])
        transfer_service.approve_transfer(transfer.id, approver.id)

        with pytest.raises(BadRequest):
            transfer_service.approve_transfer(transfer.id, approver.id)

    def test_unknown_transfer(self, approver):
        with pytest.raises(NotFound):
            transfer_service.approve_transfer('missing', approver.id)

    def test_balance_revalidated_and_nothing_written(self, staff, approver, items, set_executed):
        transfer = _request(staff, items['marketing'], items['design'], amount='250000')
        set_executed(items['marketing'], 100000)

        with pytest.raises(BadRequest, match="Insufficient budget"):
            transfer_service.approve_transfer(transfer.id, approver.id)

        assert transfer_service.get_transfer(transfer.id).status == 'PENDING'
        assert db.session.get(BudgetItem, items['marketing'].id).current_budget == Decimal('300000')
        assert db.session.get(BudgetItem, items['design'].id).current_budget == Decimal('500000')

    def test_inactive_target_rejected_and_nothing_written(self, staff, approver, project, items):
        transfer = _request(staff, items['marketing'], items['design'])
        design = db.session.get(BudgetItem, items['design'].id)
        design.is_active = False
        db.session.commit()

        with pytest.raises(BadRequest, match="inactive"):
            transfer_service.approve_transfer(transfer.id, approver.id)

        assert transfer_service.get_transfer(transfer.id).status == 'PENDING'
        assert db.session.get(BudgetItem, items['marketing'].id).current_budget == Decimal('300000')
        assert db.session.get(BudgetItem, items['design'].id).current_budget == Decimal('500000')
        assert db.session.get(Project, project.id).current_budget == Decimal('3800000')

    def test_rejection(self, staff, approver, items):
        transfer = _request(staff, items['marketing'], items['design'])

        result = transfer_service.approve_transfer(transfer.id, approver.id, approved=False,
                                                   rejection_reason='Not justified')

        assert result['transfer']['status'] == 'REJECTED'
        assert result['transfer']['rejection_reason'] == 'Not justified'
        assert db.session.get(BudgetItem, items['marketing'].id).current_budget == Decimal('300000')


class TestCancelAndQueries:
    def test_only_creator_cancels(self, staff, approver, items):
        transfer = _request(staff, items['marketing'], items['design'])
        with pytest.raises(Forbidden):
            transfer_service.cancel_transfer(transfer.id, approver.id)

        assert transfer_service.cancel_transfer(transfer.id, staff.id).status == 'CANCELLED'

    def test_history_and_pending(self, staff, approver, project, items):
        first = _request(staff, items['marketing'], items['design'], amount='1000')
        second = _request(staff, items['construction'], items['design'], amount='2000')
        transfer_service.approve_transfer(first.id, approver.id)

        pending = transfer_service.get_pending_transfers(project.id)
        assert [t.id for t in pending] == [second.id]

        approved = transfer_service.get_transfer_history(project.id, status='approved')
        assert [t.id for t in approved] == [first.id]
        assert len(transfer_service.get_transfer_history(project.id)) == 2

    def test_available_for_transfer(self, staff, items):
        _request(staff, items['marketing'], items['design'], amount='100000')
        _request(staff, items['marketing'], items['construction'], amount='150000')

        available = transfer_service.calculate_available_for_transfer(items['marketing'].id)
        assert available['pending_transfer_out'] == 250000.0
        assert available['available_for_transfer'] == 50000.0

    def test_available_never_negative(self, staff, items):
        _request(staff, items['marketing'], items['design'], amount='300000')
        _request(staff, items['marketing'], items['construction'], amount='300000')

        available = transfer_service.calculate_available_for_transfer(items['marketing'].id)
        assert available['available_for_transfer'] == 0.0
