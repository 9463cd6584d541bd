"""
Weighted Scoring Pattern - Budget Execution Manager

Rule-based scoring engine: each rule contributes a fixed number of points
when its condition holds for the metrics, and the total is capped.

Use cases:
- Project risk indicator score
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Any
import logging

logger = logging.getLogger(__name__)


@dataclass
class ScoreRule:
    """Definition of a single scoring rule."""
    name: str
    points: float
    condition: Callable[[Dict[str, Any]], bool]
    description: str = ""


@dataclass
class ScoreResult:
    """Result of scoring an entity."""
    entity_id: str
    overall_score: float
    triggered: List[str]
    rule_details: Dict[str, Dict[str, Any]]
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "overall_score": self.overall_score,
            "triggered": self.triggered,
            "rule_details": self.rule_details,
            "metadata": self.metadata
        }


class RuleBasedScoringEngine:
    """
    Sums the points of every rule whose condition is true.

    Example:
    ```python
    engine = RuleBasedScoringEngine([
        ScoreRule("high_execution", 30, lambda m: m["overall_execution_rate"] > 90),
        ScoreRule("construction_exhausted", 40, lambda m: m["construction_rate"] > 95),
    ])

    result = engine.score({"overall_execution_rate": 92, "construction_rate": 50})
    print(result.overall_score)  # 30
    ```
    """

    def __init__(self, rules: List[ScoreRule], max_score: float = 100.0):
        self.rules = rules
        self.max_score = max_score

        total_points = sum(r.points for r in rules)
        if total_points > max_score:
            logger.warning(f"Rule points sum to {total_points}, scores will be capped at {max_score}")

    def score(
        self,
        metrics: Dict[str, Any],
        entity_id: str = "unknown",
        metadata: Optional[Dict[str, Any]] = None
    ) -> ScoreResult:
        """Calculate the capped rule score for an entity."""
        total = 0.0
        triggered = []
        rule_details = {}

        for rule in self.rules:
            hit = bool(rule.condition(metrics))
            if hit:
                total += rule.points
                triggered.append(rule.name)

            rule_details[rule.name] = {
                "triggered": hit,
                "points": rule.points if hit else 0,
                "description": rule.description
            }

        return ScoreResult(
            entity_id=entity_id,
            overall_score=min(total, self.max_score),
            triggered=triggered,
            rule_details=rule_details,
            metadata=metadata or {}
        )


# =============================================================================
# Factory Functions
# =============================================================================

def create_project_risk_engine(
    execution_rate_threshold: float = 90.0,
    construction_rate_threshold: float = 95.0,
    over_budget_item_limit: int = 3
) -> RuleBasedScoringEngine:
    """
    Project risk indicator rules.

    Expects metrics: overall_execution_rate, construction_rate,
    over_budget_count, construction_damage_risk.
    """
    return RuleBasedScoringEngine([
        ScoreRule(
            "high_overall_execution", 30,
            lambda m: m["overall_execution_rate"] > execution_rate_threshold,
            f"Overall execution rate above {execution_rate_threshold}%"
        ),
        ScoreRule(
            "construction_exhausted", 40,
            lambda m: m["construction_rate"] > construction_rate_threshold,
            f"Construction cost execution above {construction_rate_threshold}%"
        ),
        ScoreRule(
            "many_over_budget_items", 20,
            lambda m: m["over_budget_count"] > over_budget_item_limit,
            f"More than {over_budget_item_limit} items above {execution_rate_threshold}% executed"
        ),
        ScoreRule(
            "construction_damage_risk", 10,
            lambda m: m["construction_damage_risk"],
            "Construction cost reserve below the safety margin"
        ),
    ])
