"""
Risk assessment records shared by the hazard scorers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from climate_risk.app.ingestion.models import DataQuality


class Hazard(str, Enum):
    FLOOD = "flood"
    DROUGHT = "drought"
    LANDSLIDE = "landslide"


class RiskLevel(str, Enum):
    VERY_LOW = "very_low"
    LOW = "low"
    MEDIUM = "medium"
    MODERATE = "moderate"
    HIGH = "high"
    VERY_HIGH = "very_high"
    EXTREME = "extreme"


class DroughtSeverity(str, Enum):
    NONE = "none"
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"
    EXTREME = "extreme"


@dataclass
class ComponentScore:
    """
    One banded factor. ``raw_score`` is the clamped [0, 1] band value,
    ``weight`` the factor's maximum share of the final score. A component
    whose inputs were missing has ``available=False`` and contributes 0.
    """
    name: str
    raw_score: float
    weight: float
    label: str = ""
    available: bool = True

    @property
    def contribution(self) -> float:
        return self.raw_score * self.weight if self.available else 0.0

    @classmethod
    def missing(cls, name: str, weight: float) -> "ComponentScore":
        return cls(name=name, raw_score=0.0, weight=weight, label="no data", available=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "raw_score": round(self.raw_score, 4),
            "weight": self.weight,
            "contribution": round(self.contribution, 4),
            "label": self.label,
            "available": self.available,
        }


@dataclass
class RiskAssessment:
    hazard: Hazard
    risk_score: float
    risk_level: RiskLevel
    component_scores: List[ComponentScore] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    confidence: float = 1.0
    data_quality: DataQuality = DataQuality.OK
    severity: Optional[DroughtSeverity] = None
    factors: Dict[str, Any] = field(default_factory=dict)

    def component(self, name: str) -> Optional[ComponentScore]:
        for c in self.component_scores:
            if c.name == name:
                return c
        return None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "hazard": self.hazard.value,
            "risk_score": round(self.risk_score, 4),
            "risk_level": self.risk_level.value,
            "component_scores": [c.to_dict() for c in self.component_scores],
            "warnings": self.warnings,
            "recommendations": self.recommendations,
            "confidence": round(self.confidence, 3),
            "data_quality": self.data_quality.value,
            "factors": self.factors,
        }
        if self.severity is not None:
            d["severity"] = self.severity.value
        return d


def total_score(components: Sequence[ComponentScore]) -> float:
    """Sum of contributions, clamped to [0, 1]."""
    # Rounded so band edges (0.25, 0.5, 0.75) are not missed by float drift
    total = round(sum(c.contribution for c in components), 9)
    return max(0.0, min(1.0, total))


def confidence_from(components: Sequence[ComponentScore]) -> float:
    """Share of total weight whose inputs were available."""
    total = sum(c.weight for c in components)
    if total <= 0:
        return 0.0
    return sum(c.weight for c in components if c.available) / total


def quality_from(
    components: Sequence[ComponentScore],
    input_quality: DataQuality = DataQuality.OK,
) -> DataQuality:
    available = sum(1 for c in components if c.available)
    if available == 0:
        if input_quality == DataQuality.UPSTREAM_FAILURE:
            return DataQuality.UPSTREAM_FAILURE
        return DataQuality.NO_DATA
    if available < len(components) or input_quality != DataQuality.OK:
        return DataQuality.PARTIAL
    return DataQuality.OK
