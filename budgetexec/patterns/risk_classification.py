"""
Risk Classification Pattern - Budget Execution Manager

Maps a continuous score onto a discrete level through ordered bands.

Two band sets are used:
- project risk indicator score (LOW / MEDIUM / HIGH)
- execution rate heatmap (NORMAL / WARNING / CRITICAL)
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from enum import Enum
import logging

logger = logging.getLogger(__name__)


class RiskLevel(Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    WARNING = "WARNING"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    NORMAL = "NORMAL"

    @property
    def priority(self) -> int:
        """1 is the most urgent."""
        return _LEVEL_STYLE[self][0]

    @property
    def color(self) -> str:
        return _LEVEL_STYLE[self][1]


# level -> (priority, display color)
_LEVEL_STYLE = {
    RiskLevel.CRITICAL: (1, "#dc3545"),
    RiskLevel.HIGH: (2, "#fd7e14"),
    RiskLevel.WARNING: (3, "#ffc107"),
    RiskLevel.MEDIUM: (3, "#ffc107"),
    RiskLevel.LOW: (4, "#28a745"),
    RiskLevel.NORMAL: (5, "#28a745"),
}


@dataclass
class RiskThreshold:
    """One band: ``min_score <= score < max_score``."""
    level: RiskLevel
    min_score: float
    max_score: float
    description: str = ""
    action_required: str = ""

    def contains(self, score: float) -> bool:
        return self.min_score <= score < self.max_score


@dataclass
class RiskClassification:
    entity_id: str
    score: float
    level: RiskLevel
    description: str
    action_required: str
    factors: List[Dict[str, Any]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "score": self.score,
            "level": self.level.value,
            "level_priority": self.level.priority,
            "level_color": self.level.color,
            "description": self.description,
            "action_required": self.action_required,
            "factors": self.factors,
            "metadata": self.metadata
        }


class RiskClassifier:
    """
    Ordered score bands. Scores outside the configured range are clamped,
    and a score on the upper bound of the last band belongs to that band.

    Example:
    ```python
    result = create_project_risk_classifier().classify(40, entity_id=project.id)
    result.level   # RiskLevel.MEDIUM
    ```
    """

    def __init__(self, thresholds: List[RiskThreshold]):
        if not thresholds:
            raise ValueError("At least one threshold must be defined")
        self.thresholds = sorted(thresholds, key=lambda t: t.min_score)

        for lower, upper in zip(self.thresholds, self.thresholds[1:]):
            if lower.max_score != upper.min_score:
                logger.warning(
                    f"Bands {lower.level.value} and {upper.level.value} do not meet "
                    f"({lower.max_score} vs {upper.min_score})"
                )

    @property
    def floor(self) -> float:
        return self.thresholds[0].min_score

    @property
    def ceiling(self) -> float:
        return self.thresholds[-1].max_score

    def level_for(self, score: float) -> RiskThreshold:
        score = min(max(score, self.floor), self.ceiling)
        return next((t for t in self.thresholds if t.contains(score)), self.thresholds[-1])

    def classify(
        self,
        score: float,
        entity_id: str = "unknown",
        factors: Optional[List[Dict[str, Any]]] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> RiskClassification:
        band = self.level_for(score)
        return RiskClassification(
            entity_id=entity_id,
            score=round(score, 2),
            level=band.level,
            description=band.description,
            action_required=band.action_required,
            factors=factors or [],
            metadata=metadata or {}
        )

    def get_threshold_summary(self) -> List[Dict[str, Any]]:
        return [
            {
                "level": t.level.value,
                "color": t.level.color,
                "min_score": t.min_score,
                "max_score": t.max_score,
                "description": t.description,
                "action_required": t.action_required
            }
            for t in self.thresholds
        ]


# =============================================================================
# Factory Functions
# =============================================================================

def create_project_risk_classifier() -> RiskClassifier:
    """Risk indicator score (0-100, higher = riskier) -> LOW / MEDIUM / HIGH."""
    return RiskClassifier([
        RiskThreshold(RiskLevel.LOW, 0, 30,
                      "Budget execution within normal range",
                      "Routine monitoring"),
        RiskThreshold(RiskLevel.MEDIUM, 30, 60,
                      "Budget pressure on some line items",
                      "Review pending executions and transfer needs"),
        RiskThreshold(RiskLevel.HIGH, 60, 100,
                      "Budget close to exhaustion or construction cost at risk",
                      "Escalate to CFO; freeze non-essential executions"),
    ])


def create_execution_rate_classifier(warning_rate: float = 75.0,
                                     critical_rate: float = 90.0) -> RiskClassifier:
    """
    Execution rate (%) -> NORMAL / WARNING / CRITICAL.

    A rate exactly on a boundary stays in the lower band, so the
    thresholds are nudged just past the configured rates.
    """
    epsilon = 1e-9
    return RiskClassifier([
        RiskThreshold(RiskLevel.NORMAL, 0, warning_rate + epsilon, "Execution on track"),
        RiskThreshold(RiskLevel.WARNING, warning_rate + epsilon, critical_rate + epsilon,
                      "Execution rate elevated"),
        RiskThreshold(RiskLevel.CRITICAL, critical_rate + epsilon, float('inf'),
                      "Budget nearly exhausted"),
    ])
