"""
Risk Dimensions.

The nine dimensions every decision is scored on, an immutable vector type
keyed by them, and the clamping helpers shared by all engines.
"""

import math
from dataclasses import asdict, dataclass, replace
from enum import StrEnum
from typing import Iterator, Mapping, Union


class RiskDimension(StrEnum):
    OPERATIONAL_RISK = "operational_risk"
    REGULATORY_EXPOSURE = "regulatory_exposure"
    FINANCIAL_COST = "financial_cost"
    REPUTATIONAL_IMPACT = "reputational_impact"
    COOPERATIVE_SYSTEM_STABILITY = "cooperative_system_stability"
    PREDICTED_COMPLIANCE_PROBABILITY = "predicted_compliance_probability"
    SIMULATION_IMPACT = "simulation_impact"
    OPPORTUNITY_COST_PROJECTION = "opportunity_cost_projection"
    STRATEGIC_MISALIGNMENT = "strategic_misalignment"


# Dimensions where a higher score means more risk.
RISK_DIRECTION_DIMENSIONS: tuple[RiskDimension, ...] = (
    RiskDimension.OPERATIONAL_RISK,
    RiskDimension.REGULATORY_EXPOSURE,
    RiskDimension.FINANCIAL_COST,
    RiskDimension.REPUTATIONAL_IMPACT,
    RiskDimension.COOPERATIVE_SYSTEM_STABILITY,
    RiskDimension.STRATEGIC_MISALIGNMENT,
)


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp into [lower, upper]. NaN maps to lower."""
    if math.isnan(value):
        return lower
    return max(lower, min(upper, value))


def clamp01(value: float) -> float:
    return clamp(value, 0.0, 1.0)


def is_finite_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


DimensionKey = Union[RiskDimension, str]


@dataclass(frozen=True)
class DimensionVector:
    """One float per risk dimension: scores, weights or multipliers."""
    operational_risk: float = 0.0
    regulatory_exposure: float = 0.0
    financial_cost: float = 0.0
    reputational_impact: float = 0.0
    cooperative_system_stability: float = 0.0
    predicted_compliance_probability: float = 0.0
    simulation_impact: float = 0.0
    opportunity_cost_projection: float = 0.0
    strategic_misalignment: float = 0.0

    @classmethod
    def uniform(cls, value: float) -> "DimensionVector":
        return cls(**{dim.value: value for dim in RiskDimension})

    @classmethod
    def from_mapping(
        cls,
        values: Mapping[DimensionKey, float],
        default: float = 0.0,
    ) -> "DimensionVector":
        """Build from a partial mapping; unknown keys raise ValueError."""
        data = {dim.value: default for dim in RiskDimension}
        for key, value in values.items():
            data[RiskDimension(key).value] = value
        return cls(**data)

    def __getitem__(self, dimension: DimensionKey) -> float:
        return getattr(self, RiskDimension(dimension).value)

    def __iter__(self) -> Iterator[RiskDimension]:
        return iter(RiskDimension)

    def items(self) -> Iterator[tuple[RiskDimension, float]]:
        for dim in RiskDimension:
            yield dim, getattr(self, dim.value)

    def with_value(self, dimension: DimensionKey, value: float) -> "DimensionVector":
        return replace(self, **{RiskDimension(dimension).value: value})

    def total(self) -> float:
        return sum(value for _, value in self.items())

    def to_dict(self) -> dict[str, float]:
        return asdict(self)
