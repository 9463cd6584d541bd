"""
Cash Flow Forecaster

Monthly cash flow aggregation and forward projection for development
projects. Aggregates planned / forecast / actual cash flow items into a
monthly series and projects it forward with a weighted moving average and
volatility bands.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Any, Iterable, Optional
import numpy as np

logger = logging.getLogger(__name__)


def month_key(value: date) -> str:
    return value.strftime('%Y-%m')


def add_months(key: str, count: int) -> str:
    """'2025-11' + 3 -> '2026-02'"""
    year, month = (int(part) for part in key.split('-'))
    index = year * 12 + (month - 1) + count
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


@dataclass
class MonthlyCashFlow:
    """Monthly inflow / outflow series"""
    months: List[str]
    inflows: List[float]
    outflows: List[float]

    @property
    def net_cash_flow(self) -> List[float]:
        return [round(i - o, 2) for i, o in zip(self.inflows, self.outflows)]

    @property
    def cumulative_cash_flow(self) -> List[float]:
        if not self.months:
            return []
        return [round(float(v), 2) for v in np.cumsum(self.net_cash_flow)]

    @property
    def min_cash_point(self) -> Optional[Dict[str, Any]]:
        """Month where the cumulative position is lowest"""
        cumulative = self.cumulative_cash_flow
        if not cumulative:
            return None
        idx = int(np.argmin(cumulative))
        return {"month": self.months[idx], "amount": cumulative[idx]}

    @classmethod
    def from_items(cls, items: Iterable[Any]) -> 'MonthlyCashFlow':
        """
        Build the series from cash flow items.

        Each item needs ``planned_date``, ``flow_type`` (INFLOW/OUTFLOW)
        and ``effective_amount``. Months without items between the first
        and last month are filled with zeros.
        """
        buckets: Dict[str, List[float]] = {}
        for item in items:
            key = month_key(item.planned_date)
            bucket = buckets.setdefault(key, [0.0, 0.0])
            if item.flow_type == 'INFLOW':
                bucket[0] += float(item.effective_amount)
            else:
                bucket[1] += float(item.effective_amount)

        if not buckets:
            return cls(months=[], inflows=[], outflows=[])

        first, last = min(buckets), max(buckets)
        months = []
        key = first
        while key <= last:
            months.append(key)
            key = add_months(key, 1)

        return cls(
            months=months,
            inflows=[round(buckets.get(m, [0.0, 0.0])[0], 2) for m in months],
            outflows=[round(buckets.get(m, [0.0, 0.0])[1], 2) for m in months],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "months": self.months,
            "inflows": self.inflows,
            "outflows": self.outflows,
            "net_cash_flow": self.net_cash_flow,
            "cumulative_cash_flow": self.cumulative_cash_flow,
            "min_cash_point": self.min_cash_point
        }


@dataclass
class ProjectionResult:
    """Result of a cash flow projection"""
    months: List[str]
    predicted_net: List[float]
    predicted_cumulative: List[float]
    lower_bound: List[float]
    upper_bound: List[float]
    confidence_level: float
    negative_cash_month: Optional[str]
    metrics: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "months": self.months,
            "predicted_net": self.predicted_net,
            "predicted_cumulative": self.predicted_cumulative,
            "lower_bound": self.lower_bound,
            "upper_bound": self.upper_bound,
            "confidence_level": self.confidence_level,
            "negative_cash_month": self.negative_cash_month,
            "metrics": self.metrics
        }


class CashFlowForecaster:
    """
    Projects a monthly cash flow series forward.

    Example:
    ```python
    forecaster = CashFlowForecaster()
    series = MonthlyCashFlow.from_items(project.cash_flow_items)
    result = forecaster.project(series, periods=6)
    print(result.negative_cash_month)
    ```
    """

    WINDOW = 6

    def __init__(self, confidence_level: float = 0.80):
        """
        Initialize forecaster.

        Args:
            confidence_level: Confidence interval (0.80 = 80%, 0.95 = 95%)
        """
        self.confidence_level = confidence_level

    def project(self, data: MonthlyCashFlow, periods: int = 6) -> ProjectionResult:
        """
        Project net cash flow for the months after the series.

        Args:
            data: Historical / planned monthly series
            periods: Number of months to project

        Returns:
            ProjectionResult with predictions and bands
        """
        if not data.months:
            raise ValueError("Need at least 1 month of cash flow data for projection")
        if periods < 1:
            raise ValueError("periods must be at least 1")

        net_flows = data.net_cash_flow

        # Weighted moving average, recent months count more
        recent = net_flows[-min(self.WINDOW, len(net_flows)):]
        weights = list(range(1, len(recent) + 1))
        weighted_avg = sum(f * w for f, w in zip(recent, weights)) / sum(weights)

        if len(net_flows) > 2:
            std_dev = float(np.std(net_flows))
        else:
            std_dev = abs(weighted_avg) * 0.2  # Assume 20% volatility

        z_score = 1.28 if self.confidence_level == 0.80 else 1.96

        last_month = data.months[-1]
        position = data.cumulative_cash_flow[-1]

        months = []
        predicted_net = []
        predicted_cumulative = []
        lower_bound = []
        upper_bound = []
        negative_month = None

        for i in range(periods):
            month = add_months(last_month, i + 1)
            months.append(month)

            position += weighted_avg
            predicted_net.append(round(weighted_avg, 2))
            predicted_cumulative.append(round(position, 2))

            # Interval widens with the horizon
            interval_width = z_score * std_dev * np.sqrt(i + 1)
            lower_bound.append(round(float(position - interval_width), 2))
            upper_bound.append(round(float(position + interval_width), 2))

            if negative_month is None and position < 0:
                negative_month = month

        logger.info(f"Projected {periods} months from {last_month}, weighted net {weighted_avg:.2f}")

        return ProjectionResult(
            months=months,
            predicted_net=predicted_net,
            predicted_cumulative=predicted_cumulative,
            lower_bound=lower_bound,
            upper_bound=upper_bound,
            confidence_level=self.confidence_level,
            negative_cash_month=negative_month,
            metrics={
                "weighted_avg_flow": round(weighted_avg, 2),
                "std_dev": round(std_dev, 2),
                "historical_periods": len(data.months),
                "forecast_periods": periods,
                "trend": self._calculate_trend(net_flows)
            }
        )

    def _calculate_trend(self, values: List[float]) -> str:
        """Determine if values are trending up, down, or stable"""
        if len(values) < 2:
            return "stable"

        x = np.arange(len(values), dtype=float)
        y = np.asarray(values, dtype=float)
        slope = float(np.polyfit(x, y, 1)[0])

        # Threshold for trend detection (5% of mean)
        threshold = abs(float(np.mean(y))) * 0.05

        if slope > threshold:
            return "increasing"
        elif slope < -threshold:
            return "decreasing"
        else:
            return "stable"
