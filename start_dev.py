#!/usr/bin/env python3
"""
Budget Execution Manager - Development Server Launcher

Prepares a local SQLite database, optionally seeds demo projects and
runs the JSON API with the Flask development server.

Usage:
    python start_dev.py                        # Run against instance/budget_execution.db
    python start_dev.py --demo                 # Seed demo users and projects first
    python start_dev.py --reset --demo         # Start over from an empty database
    python start_dev.py --workflow extended    # Four-step approval chain
"""

import os
import sys
import argparse
from pathlib import Path

ROOT = Path(__file__).parent
DB_PATH = ROOT / 'instance' / 'budget_execution.db'

REQUIRED_MODULES = ('flask', 'flask_sqlalchemy', 'flask_limiter', 'numpy')


class Colors:
    OK = '\033[92m'
    WARN = '\033[93m'
    FAIL = '\033[91m'
    INFO = '\033[96m'
    BOLD = '\033[1m'
    END = '\033[0m'


STATUS_ICONS = {
    'running': f"{Colors.WARN}..{Colors.END}",
    'done': f"{Colors.OK}ok{Colors.END}",
    'skip': f"{Colors.INFO}->{Colors.END}",
    'error': f"{Colors.FAIL}!!{Colors.END}",
}


def announce(step, message, status='running'):
    print(f"  {STATUS_ICONS[status]} [{step}] {message}")


def missing_modules():
    """Required third-party modules that fail to import"""
    missing = []
    for name in REQUIRED_MODULES:
        try:
            __import__(name)
        except ImportError:
            missing.append(name)
    return missing


def configure_environment(workflow, reset=False):
    """Point the app at the local development database"""
    os.environ.setdefault('FLASK_ENV', 'development')
    os.environ.setdefault('FLASK_DEBUG', 'True')
    os.environ['APPROVAL_WORKFLOW'] = workflow

    DB_PATH.parent.mkdir(exist_ok=True)
    if reset and DB_PATH.exists():
        DB_PATH.unlink()
    os.environ.setdefault('DATABASE_URL', f'sqlite:///{DB_PATH}')


def seed(app, count):
    """Load demo data once and list who to send as X-User-Id"""
    from budgetexec.database.models import db, Project, User
    from budgetexec.demo_data import load_demo_data_to_db

    with app.app_context():
        if Project.query.count():
            announce('demo', "Projects already present, leaving them as they are", 'skip')
        else:
            project_ids = load_demo_data_to_db(db.session, count=count)
            announce('demo', f"Seeded {len(project_ids)} projects", 'done')

        print(f"\n    {Colors.BOLD}{'ROLE':<10} {'X-User-Id':<38} EMAIL{Colors.END}")
        for user in User.query.order_by(User.role).all():
            print(f"    {user.role:<10} {user.id:<38} {user.email}")
        print()


def main():
    parser = argparse.ArgumentParser(description='Run the Budget Execution Manager API locally')
    parser.add_argument('--demo', action='store_true', help='Seed demo users and projects')
    parser.add_argument('--demo-count', type=int, default=3,
                        help='Demo projects to create (default: 3)')
    parser.add_argument('--reset', action='store_true',
                        help='Delete the local database before starting')
    parser.add_argument('--workflow', choices=('standard', 'extended'), default='standard',
                        help='Approval chain for new execution requests (default: standard)')
    parser.add_argument('--port', type=int, default=5101, help='Port (default: 5101)')
    parser.add_argument('--host', default='127.0.0.1', help='Host (default: 127.0.0.1)')
    args = parser.parse_args()

    print(f"\n{Colors.BOLD}Budget Execution Manager{Colors.END} - development server\n")

    missing = missing_modules()
    if missing:
        announce('deps', f"Missing: {', '.join(missing)} (pip install -e .)", 'error')
        sys.exit(1)
    announce('deps', "Dependencies available", 'done')

    configure_environment(args.workflow, reset=args.reset)
    announce('env', f"Database {DB_PATH} ({args.workflow} approvals)", 'done')

    sys.path.insert(0, str(ROOT))
    from web.app import create_app

    app = create_app()

    if args.demo:
        seed(app, args.demo_count)
    else:
        announce('demo', "No demo data requested (--demo)", 'skip')

    announce('serve', f"http://{args.host}:{args.port}/api", 'running')
    try:
        app.run(debug=True, port=args.port, host=args.host, use_reloader=False)
    except KeyboardInterrupt:
        print(f"\n{Colors.WARN}Server stopped.{Colors.END}")


if __name__ == '__main__':
    main()
