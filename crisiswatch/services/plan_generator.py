"""
Plan Generator — deterministic three-phase response plan.

A pure function of one AiAnalysis: integer arithmetic throughout, no clock,
no randomness, no I/O. Budgets and funding shares take their remainders in
the last bucket so every split sums exactly to the total.
"""

import hashlib
import math

import structlog

from crisiswatch.schemas.analysis import AiAnalysis, DisplacementLikelihood, Urgency
from crisiswatch.schemas.common import RiskLevel
from crisiswatch.schemas.plan import (
    CostComparison,
    FundingStrategy,
    ImplementationRisk,
    PlanActivity,
    PlanPhase,
    PlanPhases,
    ResponsePlan,
)

logger = structlog.get_logger(__name__)

DEFAULT_POPULATION = 10_000

RISK_TIER = {
    RiskLevel.CRITICAL: "critical",
    RiskLevel.HIGH: "high",
    RiskLevel.MEDIUM: "medium",
    RiskLevel.LOW: "low",
    RiskLevel.UNKNOWN: "medium",
}

# USD per person over the whole plan
COST_PER_PERSON = {"critical": 9000, "high": 6500, "medium": 4000, "low": 1500}

# Emergency / stabilization percentages; integration takes the rest
PHASE_SPLIT = {
    "critical": (40, 35),
    "high": (30, 35),
    "medium": (20, 35),
    "low": (10, 30),
}

# Bilateral / multilateral / private percentages; host country takes the rest
FUNDING_SPLIT = (40, 35, 15)

# Reactive response costs 1.7x the preventive plan
REACTIVE_NUMERATOR, REACTIVE_DENOMINATOR = 17, 10

# Staff per 1000 people (rounded up per started thousand)
STAFFING = {
    "emergency": {
        "coordinators": 2, "medical_staff": 8, "logistics": 5,
        "protection_officers": 3, "wash_specialists": 4, "food_security": 3,
    },
    "stabilization": {
        "program_managers": 3, "social_workers": 6, "teachers": 12,
        "medical_staff": 10, "security": 5, "logistics": 4,
    },
    "integration": {
        "case_managers": 4, "job_counselors": 3, "teachers": 15,
        "healthcare_workers": 8, "community_liaisons": 2,
    },
}

PHASE_TEMPLATES = {
    "emergency": {
        "duration": "4 weeks",
        "objectives": ("Provide immediate life-saving assistance", "Establish protection measures"),
        "activities": (
            ("WASH", "Provide clean water (15L/person/day)", "CRITICAL"),
            ("Shelter", "Emergency shelter (3.5m²/person)", "CRITICAL"),
            ("Food", "Food distribution (2100 kcal/person/day)", "CRITICAL"),
            ("Medical", "Mobile clinics and disease surveillance", "HIGH"),
        ),
        "recommendation_priority": "HIGH",
    },
    "stabilization": {
        "duration": "6 months",
        "objectives": ("Establish temporary services", "Support community structures"),
        "activities": (
            ("Education", "Temporary learning spaces", "HIGH"),
            ("Healthcare", "Primary healthcare services", "HIGH"),
            ("Protection", "Case management and psychosocial support", "MEDIUM"),
        ),
        "recommendation_priority": "MEDIUM",
    },
    "integration": {
        "duration": "18 months",
        "objectives": ("Support durable solutions", "Promote self-reliance"),
        "activities": (
            ("Livelihoods", "Vocational training and job placement", "MEDIUM"),
            ("Housing", "Transitional to durable housing", "MEDIUM"),
            ("Community", "Social cohesion programs with host communities", "LOW"),
        ),
        "recommendation_priority": "LOW",
    },
}

PREPARATION_TIME = {
    Urgency.IMMEDIATE: "24-48 hours",
    Urgency.HIGH: "3-7 days",
    Urgency.MEDIUM: "1-2 weeks",
    Urgency.LOW: "2-4 weeks",
}


def plan_id_for(analysis: AiAnalysis) -> str:
    canonical = analysis.model_dump_json(by_alias=True)
    return "plan-" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def staffing_for(phase: str, population: int) -> dict[str, int]:
    thousands = math.ceil(population / 1000)
    return {role: per_thousand * thousands for role, per_thousand in STAFFING[phase].items()}


def split_budget(total: int, tier: str) -> tuple[int, int, int]:
    emergency_pct, stabilization_pct = PHASE_SPLIT[tier]
    emergency = total * emergency_pct // 100
    stabilization = total * stabilization_pct // 100
    return emergency, stabilization, total - emergency - stabilization


def funding_for(total: int) -> FundingStrategy:
    bilateral, multilateral, private = (total * pct // 100 for pct in FUNDING_SPLIT)
    return FundingStrategy(
        bilateral=bilateral,
        multilateral=multilateral,
        private=private,
        host_country=total - bilateral - multilateral - private,
    )


def cost_comparison_for(preventive: int) -> CostComparison:
    reactive = (preventive * REACTIVE_NUMERATOR * 2 + REACTIVE_DENOMINATOR) // (2 * REACTIVE_DENOMINATOR)
    savings = reactive - preventive
    percentage = (savings * 200 + reactive) // (2 * reactive) if reactive else 0
    return CostComparison(
        preventive=preventive,
        reactive=reactive,
        savings=savings,
        savings_percentage=percentage,
    )


def implementation_risks(analysis: AiAnalysis) -> tuple[ImplementationRisk, ...]:
    critical = analysis.risk_assessment == RiskLevel.CRITICAL
    surge = analysis.displacement_prediction.likelihood == DisplacementLikelihood.VERY_HIGH
    return (
        ImplementationRisk(
            risk="Security constraints limiting access",
            likelihood="HIGH" if critical else "MEDIUM",
            impact="HIGH",
            mitigation="Security protocols, remote programming, local partnerships",
        ),
        ImplementationRisk(
            risk="Funding shortfalls",
            likelihood="MEDIUM",
            impact="HIGH",
            mitigation="Diversified funding strategy, contingency planning",
        ),
        ImplementationRisk(
            risk="Rapid influx overwhelming capacity",
            likelihood="HIGH" if surge else "MEDIUM",
            impact="HIGH",
            mitigation="Scalable response model, surge capacity planning",
        ),
        ImplementationRisk(
            risk="Host community tensions",
            likelihood="MEDIUM",
            impact="MEDIUM",
            mitigation="Community engagement, benefit sharing, conflict prevention",
        ),
    )


class PlanGenerator:
    """Expands an AiAnalysis into a ResponsePlan. Stateless apart from configuration."""

    def __init__(self, default_population: int = DEFAULT_POPULATION):
        self.default_population = default_population

    def generate(self, analysis: AiAnalysis) -> ResponsePlan:
        tier = RISK_TIER[analysis.risk_assessment]
        population = analysis.displacement_prediction.estimated_affected or self.default_population
        cost_per_person = COST_PER_PERSON[tier]
        total = population * cost_per_person
        budgets = split_budget(total, tier)

        recommendations = {
            "emergency": analysis.recommendations.immediate,
            "stabilization": analysis.recommendations.short_term,
            "integration": analysis.recommendations.long_term,
        }
        phases = {
            name: self._phase(name, budget, population, recommendations[name])
            for name, budget in zip(("emergency", "stabilization", "integration"), budgets)
        }

        plan = ResponsePlan(
            plan_id=plan_id_for(analysis),
            country=analysis.country,
            generated_at=analysis.generated_at,
            risk_assessment=analysis.risk_assessment,
            priority_tier=tier,
            target_population=population,
            total_cost=total,
            cost_per_person=cost_per_person,
            phases=PlanPhases(**phases),
            funding=funding_for(total),
            cost_comparison=cost_comparison_for(total),
            preparation_time=PREPARATION_TIME[analysis.early_warning.urgency],
            implementation_risks=implementation_risks(analysis),
            derived_from_fallback=analysis.model_metadata.is_fallback,
        )
        logger.debug(
            "plan_generated",
            plan_id=plan.plan_id,
            country=plan.country,
            tier=tier,
            population=population,
            total_cost=total,
        )
        return plan

    @staticmethod
    def _phase(name: str, budget: int, population: int, recommended: tuple[str, ...]) -> PlanPhase:
        template = PHASE_TEMPLATES[name]
        activities = [
            PlanActivity(category=category, action=action, priority=priority)
            for category, action, priority in template["activities"]
        ]
        activities.extend(
            PlanActivity(category="Recommended", action=action, priority=template["recommendation_priority"])
            for action in recommended
        )
        staffing = staffing_for(name, population)
        return PlanPhase(
            name=name,
            duration=template["duration"],
            objectives=template["objectives"],
            activities=tuple(activities),
            budget=budget,
            staffing=staffing,
            staff_total=sum(staffing.values()),
        )
