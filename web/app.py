"""
Budget Execution Manager - Flask Web Application

JSON API for project budgets, execution requests, approvals, budget
transfers, cash flow and scenario simulation.
"""

import os
import sys
import logging
from flask import Flask, request, jsonify
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import BadRequest, HTTPException

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.settings import get_config
from budgetexec.database.models import db
from budgetexec.services import (
    analytics_service,
    approval_service,
    budget_service,
    dashboard_service,
    execution_service,
    financial_service,
    simulation_service,
    transfer_service,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _payload():
    return request.get_json(silent=True) or {}


def _user_id():
    """Acting user, identified by the X-User-Id header"""
    return request.headers.get('X-User-Id')


# =============================================================================
# App Factory
# =============================================================================

def create_app(config_class=None):
    """Create Flask application"""
    app = Flask(__name__)

    # Load configuration
    if config_class is None:
        config_class = get_config()
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)

    # Rate limiting
    Limiter(
        key_func=get_remote_address,
        app=app,
        default_limits=[app.config.get('RATELIMIT_DEFAULT', "100 per minute")]
    )

    # Create tables
    with app.app_context():
        db.create_all()
        logger.info("Database tables created")

    # =============================================================================
    # API Routes - Budget
    # =============================================================================

    @app.route('/api/projects/<project_id>/budget', methods=['GET'])
    def api_project_budget(project_id):
        """Budget items grouped by category with totals"""
        return jsonify(budget_service.get_project_budget(project_id))

    @app.route('/api/projects/<project_id>/budget/comparison', methods=['GET'])
    def api_budget_comparison(project_id):
        """Initial vs current budget per item"""
        return jsonify(budget_service.get_budget_comparison(project_id))

    @app.route('/api/projects/<project_id>/budget-items/search', methods=['GET'])
    def api_search_budget_items(project_id):
        items = budget_service.search_budget_items(
            project_id, request.args.get('q'), request.args.get('category')
        )
        return jsonify({'items': [item.to_dict() for item in items]})

    @app.route('/api/budget-items', methods=['POST'])
    def api_create_budget_item():
        item = budget_service.create_budget_item(_payload())
        return jsonify({'success': True, 'budget_item': item.to_dict()}), 201

    @app.route('/api/budget-items/bulk-import', methods=['POST'])
    def api_bulk_import():
        data = _payload()
        result = budget_service.bulk_import(data.get('items') or [])
        return jsonify(result), 201

    @app.route('/api/budget-items/<item_id>', methods=['GET'])
    def api_get_budget_item(item_id):
        return jsonify(budget_service.get_budget_item(item_id).to_dict())

    @app.route('/api/budget-items/<item_id>', methods=['PATCH'])
    def api_update_budget_item(item_id):
        item = budget_service.update_budget_item(item_id, _payload())
        return jsonify({'success': True, 'budget_item': item.to_dict()})

    @app.route('/api/budget-items/<item_id>', methods=['DELETE'])
    def api_remove_budget_item(item_id):
        return jsonify(budget_service.remove_budget_item(item_id))

    @app.route('/api/budget-items/<item_id>/available-for-transfer', methods=['GET'])
    def api_available_for_transfer(item_id):
        return jsonify(transfer_service.calculate_available_for_transfer(item_id))

    # =============================================================================
    # API Routes - Budget Transfers
    # =============================================================================

    @app.route('/api/budget-transfers', methods=['POST'])
    def api_create_transfer():
        """Request a transfer between two budget items"""
        transfer = transfer_service.create_transfer(_user_id(), _payload())
        return jsonify({'success': True, 'transfer': transfer.to_dict()}), 201

    @app.route('/api/budget-transfers/pending', methods=['GET'])
    def api_pending_transfers():
        transfers = transfer_service.get_pending_transfers(request.args.get('project_id'))
        return jsonify({'transfers': [t.to_dict() for t in transfers]})

    @app.route('/api/projects/<project_id>/budget-transfers', methods=['GET'])
    def api_transfer_history(project_id):
        transfers = transfer_service.get_transfer_history(project_id, request.args.get('status'))
        return jsonify({'transfers': [t.to_dict() for t in transfers]})

    @app.route('/api/budget-transfers/<transfer_id>', methods=['GET'])
    def api_get_transfer(transfer_id):
        return jsonify(transfer_service.get_transfer(transfer_id).to_dict())

    @app.route('/api/budget-transfers/<transfer_id>/approve', methods=['POST'])
    def api_approve_transfer(transfer_id):
        """Approve or reject ({"approved": false, "rejection_reason": ...})"""
        data = _payload()
        approved = data.get('approved', True)
        if not isinstance(approved, bool):
            raise BadRequest("approved must be true or false")
        result = transfer_service.approve_transfer(
            transfer_id,
            _user_id(),
            approved=approved,
            rejection_reason=data.get('rejection_reason')
        )
        return jsonify(result)

    @app.route('/api/budget-transfers/<transfer_id>/cancel', methods=['POST'])
    def api_cancel_transfer(transfer_id):
        transfer = transfer_service.cancel_transfer(transfer_id, _user_id())
        return jsonify({'success': True, 'transfer': transfer.to_dict()})

    # =============================================================================
    # API Routes - Execution Requests
    # =============================================================================

    @app.route('/api/executions', methods=['GET'])
    def api_list_executions():
        executions = execution_service.list_executions(
            project_id=request.args.get('project_id'),
            status=request.args.get('status'),
            sort_by=request.args.get('sort_by', 'created_at'),
            order=request.args.get('order', 'desc')
        )
        return jsonify({'executions': [e.to_dict(include_approvals=False) for e in executions]})

    @app.route('/api/executions', methods=['POST'])
    def api_create_execution():
        execution = execution_service.create_execution(_payload(), _user_id())
        return jsonify({'success': True, 'execution': execution.to_dict()}), 201

    @app.route('/api/executions/<execution_id>', methods=['GET'])
    def api_get_execution(execution_id):
        return jsonify(execution_service.get_execution(execution_id).to_dict())

    @app.route('/api/executions/<execution_id>', methods=['PATCH'])
    def api_update_execution(execution_id):
        execution = execution_service.update_execution(execution_id, _payload(), _user_id())
        return jsonify({'success': True, 'execution': execution.to_dict()})

    @app.route('/api/executions/<execution_id>/cancel', methods=['POST'])
    def api_cancel_execution(execution_id):
        execution = execution_service.cancel_execution(execution_id, _user_id())
        return jsonify({'success': True, 'execution': execution.to_dict()})

    # =============================================================================
    # API Routes - Approvals
    # =============================================================================

    @app.route('/api/approvals/pending', methods=['GET'])
    def api_pending_approvals():
        approvals = approval_service.get_pending_approvals(_user_id())
        return jsonify({
            'approvals': [
                {**a.to_dict(), 'execution': a.execution_request.to_dict(include_approvals=False)}
                for a in approvals
            ]
        })

    @app.route('/api/approvals/<approval_id>/approve', methods=['POST'])
    def api_approve(approval_id):
        data = _payload()
        return jsonify(approval_service.approve(approval_id, _user_id(), data.get('decision')))

    @app.route('/api/approvals/<approval_id>/reject', methods=['POST'])
    def api_reject(approval_id):
        data = _payload()
        return jsonify(approval_service.reject(approval_id, _user_id(), data.get('reason')))

    # =============================================================================
    # API Routes - Analytics
    # =============================================================================

    @app.route('/api/analytics/projects/<project_id>/landscape', methods=['GET'])
    def api_landscape(project_id):
        return jsonify(analytics_service.get_project_landscape(project_id))

    @app.route('/api/analytics/projects/<project_id>/execution-history', methods=['GET'])
    def api_execution_history(project_id):
        limit = request.args.get('limit', 50, type=int)
        return jsonify({'executions': analytics_service.get_execution_history(project_id, limit)})

    @app.route('/api/analytics/projects/<project_id>/transfer-history', methods=['GET'])
    def api_budget_transfer_history(project_id):
        limit = request.args.get('limit', 50, type=int)
        return jsonify({'transfers': analytics_service.get_budget_transfer_history(project_id, limit)})

    @app.route('/api/analytics/projects/<project_id>/risk', methods=['GET'])
    def api_risk_indicators(project_id):
        return jsonify(analytics_service.calculate_risk_indicators(project_id))

    @app.route('/api/analytics/executions/<execution_id>', methods=['GET'])
    def api_analyze_execution(execution_id):
        return jsonify(analytics_service.analyze_execution_request(execution_id))

    @app.route('/api/analytics/projects/<project_id>/proposal-assistance', methods=['GET'])
    def api_proposal_assistance(project_id):
        return jsonify(analytics_service.get_proposal_assistance(
            project_id,
            request.args.get('budget_item_id'),
            request.args.get('amount')
        ))

    @app.route('/api/analytics/projects/<project_id>/approver-dashboard', methods=['GET'])
    def api_approver_dashboard(project_id):
        return jsonify(analytics_service.get_approver_dashboard(
            project_id, request.args.get('execution_id')
        ))

    @app.route('/api/dashboard', methods=['GET'])
    def api_dashboard():
        return jsonify(dashboard_service.get_dashboard_stats(_user_id()))

    # =============================================================================
    # API Routes - Financial
    # =============================================================================

    @app.route('/api/projects/<project_id>/financial-model', methods=['GET'])
    def api_financial_model(project_id):
        return jsonify(financial_service.get_financial_model(project_id))

    @app.route('/api/projects/<project_id>/cash-flow', methods=['GET'])
    def api_cash_flow(project_id):
        return jsonify({'items': financial_service.get_cash_flow(project_id)})

    @app.route('/api/projects/<project_id>/cash-flow/summary', methods=['GET'])
    def api_cash_flow_summary(project_id):
        return jsonify(financial_service.get_cash_flow_summary(project_id))

    @app.route('/api/projects/<project_id>/cash-flow/projection', methods=['GET'])
    def api_cash_flow_projection(project_id):
        periods = request.args.get('periods', 6, type=int)
        confidence = request.args.get('confidence', 0.80, type=float)
        return jsonify(financial_service.project_cash_flow(project_id, periods, confidence))

    # =============================================================================
    # API Routes - Simulations
    # =============================================================================

    @app.route('/api/simulations/presets', methods=['GET'])
    def api_simulation_presets():
        return jsonify({'presets': simulation_service.list_presets()})

    @app.route('/api/projects/<project_id>/simulations', methods=['GET'])
    def api_list_simulations(project_id):
        simulations = simulation_service.list_simulations(project_id)
        return jsonify({'simulations': [s.to_dict() for s in simulations]})

    @app.route('/api/projects/<project_id>/simulations', methods=['POST'])
    def api_run_simulation(project_id):
        simulation = simulation_service.run_simulation(project_id, _payload(), _user_id())
        return jsonify({'success': True, 'simulation': simulation.to_dict()}), 201

    @app.route('/api/projects/<project_id>/simulations/compare', methods=['GET'])
    def api_compare_scenarios(project_id):
        return jsonify({'scenarios': simulation_service.compare_scenarios(project_id)})

    @app.route('/api/simulations/<simulation_id>', methods=['GET'])
    def api_get_simulation(simulation_id):
        return jsonify(simulation_service.get_simulation(simulation_id).to_dict())

    # =============================================================================
    # Error Handlers
    # =============================================================================

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({'error': e.name, 'message': e.description}), e.code

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f"Server error: {e}")
        return jsonify({'error': 'Internal Server Error',
                        'message': 'Internal server error'}), 500

    return app


# =============================================================================
# Main
# =============================================================================

if __name__ == '__main__':
    app = create_app()
    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('FLASK_DEBUG', 'True').lower() == 'true'
    app.run(debug=debug, port=port, host='0.0.0.0')
