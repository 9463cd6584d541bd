"""
Configuration settings for Budget Execution Manager
"""

import os


class Config:
    """Base configuration"""
    # App
    APP_NAME = "Budget Execution Manager"
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')

    # Database
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'DATABASE_URL',
        'sqlite:///budget_execution.db'
    )
    # Fix for Heroku/Render style PostgreSQL URLs
    if SQLALCHEMY_DATABASE_URI and SQLALCHEMY_DATABASE_URI.startswith('postgres://'):
        SQLALCHEMY_DATABASE_URI = SQLALCHEMY_DATABASE_URI.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }

    # Rate limiting
    RATELIMIT_DEFAULT = "100 per minute"
    RATELIMIT_STORAGE_URI = os.environ.get('REDIS_URL', 'memory://')

    # Approval workflow: "standard" (STAFF -> APPROVER)
    # or "extended" (STAFF -> TEAM_LEAD -> RM_TEAM -> CFO)
    APPROVAL_WORKFLOW = os.environ.get('APPROVAL_WORKFLOW', 'standard')

    # Execution request numbering, e.g. EXE-2025-0001
    REQUEST_NUMBER_PREFIX = 'EXE'

    # Risk indicators
    RISK_EXECUTION_RATE_THRESHOLD = 90.0
    CONSTRUCTION_RATE_THRESHOLD = 95.0
    CONSTRUCTION_RESERVE_RATIO = 0.05
    OVER_BUDGET_ITEM_LIMIT = 3
    EXPENSE_CATEGORY = os.environ.get('EXPENSE_CATEGORY', '지출')
    CONSTRUCTION_KEYWORD = os.environ.get('CONSTRUCTION_KEYWORD', '공사비')

    # Dashboard heatmap bands
    DASHBOARD_WARNING_RATE = 75.0
    DASHBOARD_CRITICAL_RATE = 90.0


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'DATABASE_URL',
        'sqlite:///budget_execution_dev.db'
    )


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False

    # Ensure secret key is set in production
    SECRET_KEY = os.environ.get('SECRET_KEY')


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False


# Config mapping
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    """Get config based on environment"""
    env = os.environ.get('FLASK_ENV', 'development')
    if env == 'production' and not os.environ.get('SECRET_KEY'):
        raise ValueError("SECRET_KEY must be set in production")
    return config.get(env, config['default'])
