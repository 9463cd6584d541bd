"""
Patterns Module for Budget Execution Manager

Reusable analytical patterns for risk scoring and classification.
"""

from .risk_classification import (
    RiskClassifier,
    RiskLevel,
    RiskThreshold,
    RiskClassification,
    create_project_risk_classifier,
    create_execution_rate_classifier
)

from .weighted_scoring import (
    RuleBasedScoringEngine,
    ScoreRule,
    ScoreResult,
    create_project_risk_engine
)

__all__ = [
    # Risk Classification
    'RiskClassifier',
    'RiskLevel',
    'RiskThreshold',
    'RiskClassification',
    'create_project_risk_classifier',
    'create_execution_rate_classifier',
    # Weighted Scoring
    'RuleBasedScoringEngine',
    'ScoreRule',
    'ScoreResult',
    'create_project_risk_engine',
]
