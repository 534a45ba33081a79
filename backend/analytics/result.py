"""AnalyticsResult: the five-field envelope every analytic operation returns."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class AnalyticsResult:
    data: dict[str, Any] = field(default_factory=dict)
    insights: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    metrics: dict[str, float] = field(default_factory=dict)
    trends: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.data,
            "insights": list(self.insights),
            "recommendations": list(self.recommendations),
            "metrics": dict(self.metrics),
            "trends": self.trends,
        }
