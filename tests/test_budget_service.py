"""Tests for budget item management and project totals."""

from decimal import Decimal

import pytest
from werkzeug.exceptions import BadRequest, NotFound

from budgetexec.database.models import db, Project, calculate_execution_rate
from budgetexec.services import budget_service, transfer_service


class TestExecutionRate:
    def test_rate_is_percentage_of_budget(self):
        assert calculate_execution_rate(Decimal('250'), Decimal('1000')) == 25.0

    def test_zero_budget_gives_zero_rate(self):
        assert calculate_execution_rate(Decimal('100'), Decimal('0')) == 0.0
        assert calculate_execution_rate(None, None) == 0.0


class TestCreateBudgetItem:
    def test_new_item_starts_unexecuted(self, items):
        item = items['construction']
        assert item.initial_budget == Decimal('1000000')
        assert item.current_budget == Decimal('1000000')
        assert item.remaining_budget == Decimal('1000000')
        assert item.executed_amount == 0
        assert item.execution_rate == 0.0

    def test_project_totals_follow_items(self, project, items):
        project = db.session.get(Project, project.id)
        assert project.current_budget == Decimal('3800000')
        assert project.remaining_budget == Decimal('3800000')
        assert project.execution_rate == 0.0

    def test_project_initial_budget_covers_every_item(self, project, items):
        project = db.session.get(Project, project.id)
        assert project.initial_budget == Decimal('3800000')

    def test_initial_budget_drops_removed_item(self, project, items):
        budget_service.remove_budget_item(items['marketing'].id)
        assert db.session.get(Project, project.id).initial_budget == Decimal('3500000')

    def test_unknown_project(self, app):
        with pytest.raises(NotFound):
            budget_service.create_budget_item({'project_id': 'missing', 'category': '지출',
                                               'main_item': '공사비', 'current_budget': 10})

    def test_negative_budget_rejected(self, project):
        with pytest.raises(BadRequest):
            budget_service.create_budget_item({'project_id': project.id, 'category': '지출',
                                               'main_item': '공사비', 'current_budget': -1})

    def test_main_item_required(self, project):
        with pytest.raises(BadRequest, match="Main item"):
            budget_service.create_budget_item({'project_id': project.id, 'category': '지출',
                                               'current_budget': 10})

    def test_sub_cent_budget_rejected(self, project):
        with pytest.raises(BadRequest, match="2 decimal places"):
            budget_service.create_budget_item({'project_id': project.id, 'category': '지출',
                                               'main_item': '공사비', 'current_budget': '10.005'})

    def test_trailing_zeros_accepted(self, project):
        item = budget_service.create_budget_item({'project_id': project.id, 'category': '지출',
                                                  'main_item': '공사비', 'current_budget': '10.500'})
        assert item.current_budget == Decimal('10.50')


class TestProjectBudget:
    def test_grouped_by_category(self, project, items):
        budget = budget_service.get_project_budget(project.id)

        categories = {group['category']: group for group in budget['summary']}
        assert set(categories) == {'지출', '수입'}
        assert len(categories['지출']['items']) == 3
        assert categories['지출']['totals']['current_budget'] == 1800000.0
        assert budget['grand_totals']['current_budget'] == 3800000.0

    def test_inactive_items_excluded(self, project, items):
        budget_service.remove_budget_item(items['marketing'].id)
        budget = budget_service.get_project_budget(project.id)
        assert budget['grand_totals']['current_budget'] == 3500000.0


class TestBulkImport:
    def test_imports_in_order(self, project):
        result = budget_service.bulk_import([
            {'project_id': project.id, 'category': '지출', 'main_item': '토지비',
             'current_budget': 100},
            {'project_id': project.id, 'category': '지출', 'main_item': '공사비',
             'current_budget': 200},
        ])
        assert result['created'] == 2
        assert [i['display_order'] for i in result['items']] == [0, 1]

    def test_empty_list_rejected(self, app):
        with pytest.raises(BadRequest):
            budget_service.bulk_import([])

    def test_mixed_projects_rejected(self, project, other_project):
        other, _ = other_project
        with pytest.raises(BadRequest, match="same project"):
            budget_service.bulk_import([
                {'project_id': project.id, 'category': '지출', 'main_item': 'A',
                 'current_budget': 1},
                {'project_id': other.id, 'category': '지출', 'main_item': 'B',
                 'current_budget': 1},
            ])


class TestUpdateBudgetItem:
    def test_budget_change_recomputes_rate(self, items, set_executed):
        item = items['design']
        set_executed(item, 250000)

        updated = budget_service.update_budget_item(item.id, {
            'current_budget': 1000000, 'change_reason': 'Design scope increase'
        })

        assert updated.remaining_budget == Decimal('750000')
        assert updated.execution_rate == 25.0
        assert updated.change_reason == 'Design scope increase'
        assert updated.changed_at is not None

    def test_budget_below_executed_rejected(self, items, set_executed):
        item = items['design']
        set_executed(item, 400000)

        with pytest.raises(BadRequest):
            budget_service.update_budget_item(item.id, {'current_budget': 300000})

        assert budget_service.get_budget_item(item.id).current_budget == Decimal('500000')

    def test_unknown_item(self, app):
        with pytest.raises(NotFound):
            budget_service.update_budget_item('missing', {'sub_item': 'x'})

    @pytest.mark.parametrize("changes", [
        {'category': None},
        {'category': '   '},
        {'main_item': 42},
        {'display_order': 'first'},
        {'display_order': True},
    ])
    def test_invalid_fields_rejected(self, items, changes):
        item = items['design']

        with pytest.raises(BadRequest):
            budget_service.update_budget_item(item.id, changes)

        item = budget_service.get_budget_item(item.id)
        assert item.category == '지출'
        assert item.main_item == '설계비'
        assert item.display_order == 1

    def test_text_fields_stripped(self, items):
        updated = budget_service.update_budget_item(items['design'].id, {
            'main_item': ' 설계비(변경) ', 'sub_item': None, 'display_order': 7
        })
        assert updated.main_item == '설계비(변경)'
        assert updated.sub_item is None
        assert updated.display_order == 7


class TestRemoveBudgetItem:
    def test_soft_delete(self, items):
        result = budget_service.remove_budget_item(items['marketing'].id)
        assert result['message'] == 'Budget item removed successfully'
        assert budget_service.get_budget_item(items['marketing'].id).is_active is False

    def test_item_with_pending_execution_kept(self, items):
        item = items['marketing']
        item.pending_execution_amount = Decimal('1000')
        db.session.commit()

        with pytest.raises(BadRequest):
            budget_service.remove_budget_item(item.id)

    def test_item_with_pending_transfer_kept(self, staff, items):
        transfer_service.create_transfer(staff.id, {
            'source_item_id': items['marketing'].id,
            'target_item_id': items['design'].id,
            'amount': '1000',
            'reason': 'Move marketing budget to design',
        })

        for key in ('marketing', 'design'):
            with pytest.raises(BadRequest, match="pending budget transfers"):
                budget_service.remove_budget_item(items[key].id)
            assert budget_service.get_budget_item(items[key].id).is_active is True


class TestBudgetComparison:
    def test_difference_and_change_rate(self, project, items):
        budget_service.update_budget_item(items['design'].id, {'current_budget': 750000})

        comparison = budget_service.get_budget_comparison(project.id)
        rows = {row['main_item']: row for row in comparison['items']}

        assert rows['설계비']['initial_budget'] == 500000.0
        assert rows['설계비']['current_budget'] == 750000.0
        assert rows['설계비']['difference'] == 250000.0
        assert rows['설계비']['change_rate'] == 50.0
        assert rows['공사비']['difference'] == 0.0
        assert comparison['totals']['initial_budget'] == 3800000.0
        assert comparison['totals']['current_budget'] == 4050000.0

    def test_planned_vs_actual(self, project, items, set_executed):
        set_executed(items['construction'], 400000)

        comparison = budget_service.get_budget_comparison(project.id)
        row = next(r for r in comparison['items'] if r['main_item'] == '공사비')
        assert row['planned_vs_actual'] == 600000.0
        assert row['execution_rate'] == 40.0

    def test_zero_initial_budget(self, project):
        budget_service.create_budget_item({'project_id': project.id, 'category': '지출',
                                           'main_item': '예비비', 'current_budget': 0})
        row = budget_service.get_budget_comparison(project.id)['items'][0]
        assert row['change_rate'] == 0.0

    def test_unknown_project(self, app):
        with pytest.raises(NotFound):
            budget_service.get_budget_comparison('missing')


class TestSearchBudgetItems:
    def test_matches_main_and_sub_item(self, project, items):
        assert [i.id for i in budget_service.search_budget_items(project.id, '설계')] == \
            [items['design'].id]
        assert [i.id for i in budget_service.search_budget_items(project.id, '분양')] == \
            [items['sales'].id]

    def test_category_filter(self, project, items):
        found = budget_service.search_budget_items(project.id, category='지출')
        assert [i.id for i in found] == [items['construction'].id, items['design'].id,
                                         items['marketing'].id]

        assert budget_service.search_budget_items(project.id, '공사', category='수입') == []

    def test_inactive_items_hidden(self, project, items):
        budget_service.remove_budget_item(items['design'].id)
        assert budget_service.search_budget_items(project.id, '설계') == []

    def test_other_projects_not_searched(self, project, items, other_project):
        assert budget_service.search_budget_items(project.id, '토지') == []

    def test_query_or_category_required(self, project, items):
        with pytest.raises(BadRequest):
            budget_service.search_budget_items(project.id, '  ')
