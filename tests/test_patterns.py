"""Tests for risk classification and rule-based scoring."""

import pytest

from budgetexec.patterns import (
    RiskClassifier,
    RiskLevel,
    RiskThreshold,
    RuleBasedScoringEngine,
    ScoreRule,
    create_execution_rate_classifier,
    create_project_risk_classifier,
    create_project_risk_engine,
)


def _metrics(**overrides):
    metrics = {
        'overall_execution_rate': 0.0,
        'construction_rate': 0.0,
        'over_budget_count': 0,
        'construction_damage_risk': False,
    }
    metrics.update(overrides)
    return metrics


class TestProjectRiskClassifier:
    @pytest.mark.parametrize("score,level", [
        (0, RiskLevel.LOW),
        (29.99, RiskLevel.LOW),
        (30, RiskLevel.MEDIUM),
        (59.99, RiskLevel.MEDIUM),
        (60, RiskLevel.HIGH),
        (100, RiskLevel.HIGH),
    ])
    def test_bucket_boundaries(self, score, level):
        assert create_project_risk_classifier().classify(score).level == level

    def test_classification_dict(self):
        result = create_project_risk_classifier().classify(70, entity_id="PRJ-1")
        data = result.to_dict()
        assert data['level'] == 'HIGH'
        assert data['entity_id'] == 'PRJ-1'
        assert data['level_color'] == RiskLevel.HIGH.color

    def test_threshold_summary(self):
        summary = create_project_risk_classifier().get_threshold_summary()
        assert [t['level'] for t in summary] == ['LOW', 'MEDIUM', 'HIGH']

    def test_empty_thresholds_rejected(self):
        with pytest.raises(ValueError):
            RiskClassifier([])

    def test_out_of_range_scores_are_clamped(self):
        classifier = RiskClassifier([
            RiskThreshold(RiskLevel.LOW, 0, 50),
            RiskThreshold(RiskLevel.HIGH, 50, 100),
        ])
        assert classifier.classify(-10).level == RiskLevel.LOW
        assert classifier.classify(250).level == RiskLevel.HIGH


class TestExecutionRateClassifier:
    @pytest.mark.parametrize("rate,level", [
        (0, RiskLevel.NORMAL),
        (75, RiskLevel.NORMAL),
        (75.01, RiskLevel.WARNING),
        (90, RiskLevel.WARNING),
        (90.01, RiskLevel.CRITICAL),
        (140, RiskLevel.CRITICAL),
    ])
    def test_bands(self, rate, level):
        assert create_execution_rate_classifier().level_for(rate).level == level


class TestProjectRiskEngine:
    def test_no_rules_triggered(self):
        result = create_project_risk_engine().score(_metrics())
        assert result.overall_score == 0
        assert result.triggered == []

    @pytest.mark.parametrize("overrides,expected", [
        ({'overall_execution_rate': 90.5}, 30),
        ({'overall_execution_rate': 90.0}, 0),
        ({'construction_rate': 95.1}, 40),
        ({'construction_rate': 95.0}, 0),
        ({'over_budget_count': 4}, 20),
        ({'over_budget_count': 3}, 0),
        ({'construction_damage_risk': True}, 10),
    ])
    def test_rule_weights(self, overrides, expected):
        assert create_project_risk_engine().score(_metrics(**overrides)).overall_score == expected

    def test_custom_thresholds(self):
        engine = create_project_risk_engine(execution_rate_threshold=50)
        assert engine.score(_metrics(overall_execution_rate=60)).overall_score == 30

    def test_score_capped(self):
        engine = RuleBasedScoringEngine([
            ScoreRule("a", 80, lambda m: True),
            ScoreRule("b", 80, lambda m: True),
        ])
        result = engine.score({})
        assert result.overall_score == 100
        assert result.rule_details['b']['points'] == 80
