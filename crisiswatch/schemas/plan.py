"""ResponsePlan — deterministic three-phase expansion of an AiAnalysis."""

from datetime import datetime
from types import MappingProxyType
from typing import Mapping

from pydantic import field_serializer, field_validator

from crisiswatch.schemas.common import FrozenModel, RiskLevel


class PlanActivity(FrozenModel):
    category: str
    action: str
    priority: str


class PlanPhase(FrozenModel):
    name: str
    duration: str
    objectives: tuple[str, ...]
    activities: tuple[PlanActivity, ...]
    budget: int
    staffing: Mapping[str, int]
    staff_total: int

    @field_validator("staffing")
    @classmethod
    def _freeze_staffing(cls, value: Mapping[str, int]) -> Mapping[str, int]:
        return MappingProxyType(dict(value))

    @field_serializer("staffing", mode="wrap")
    def _dump_staffing(self, value, handler):
        return handler(dict(value))


class PlanPhases(FrozenModel):
    emergency: PlanPhase
    stabilization: PlanPhase
    integration: PlanPhase

    def as_tuple(self) -> tuple[PlanPhase, PlanPhase, PlanPhase]:
        return (self.emergency, self.stabilization, self.integration)


class FundingStrategy(FrozenModel):
    bilateral: int
    multilateral: int
    private: int
    host_country: int


class CostComparison(FrozenModel):
    preventive: int
    reactive: int
    savings: int
    savings_percentage: int


class ImplementationRisk(FrozenModel):
    risk: str
    likelihood: str
    impact: str
    mitigation: str


class ResponsePlan(FrozenModel):
    plan_id: str
    country: str
    generated_at: datetime
    risk_assessment: RiskLevel
    priority_tier: str
    target_population: int
    total_cost: int
    cost_per_person: int
    phases: PlanPhases
    funding: FundingStrategy
    cost_comparison: CostComparison
    preparation_time: str
    implementation_risks: tuple[ImplementationRisk, ...]
    derived_from_fallback: bool = False
