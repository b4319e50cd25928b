"""Prompt construction for crisis analysis calls."""

import json

from crisiswatch.schemas.assessment import CrisisAssessment

SYSTEM_PROMPT = (
    "You are a humanitarian crisis analyst specializing in refugee displacement. "
    "You receive a fused risk assessment built from conflict, economic, climate and "
    "news data. Use evidence over speculation, prioritize human life and dignity, and "
    "give clear, actionable recommendations.\n"
    "Respond with a single JSON object inside a ```json fenced block and nothing else."
)

RESPONSE_FORMAT = """{
  "aiRiskAssessment": "CRITICAL|HIGH|MEDIUM|LOW",
  "confidence": 0.0-1.0,
  "reasoning": "explanation of your analysis",
  "keyFindings": ["finding 1", "finding 2", "finding 3"],
  "displacementPrediction": {
    "likelihood": "VERY_HIGH|HIGH|MEDIUM|LOW",
    "timeframe": "1-2 weeks|2-8 weeks|2-6 months|6+ months",
    "estimatedPopulation": 0,
    "primaryTriggers": ["trigger"],
    "likelyDestinations": ["country"]
  },
  "earlyWarning": {
    "immediateThreats": ["threat"],
    "emergingConcerns": ["concern"],
    "timeToAction": "hours|days|weeks|months",
    "urgency": "immediate|high|medium|low"
  },
  "recommendations": {
    "immediate": ["action"],
    "shortTerm": ["action"],
    "longTerm": ["action"]
  }
}"""


def _bullets(items) -> str:
    lines = [f"- {item}" for item in items]
    return "\n".join(lines) if lines else "- none reported"


def build_analysis_prompt(assessment: CrisisAssessment) -> str:
    sections = [
        f"Analyze the crisis situation for {assessment.country}.",
        "",
        "## CURRENT SITUATION",
        f"- Overall risk: {assessment.overall_risk.value}",
        f"- System confidence: {round(assessment.confidence * 100)}%",
        f"- Data quality: {assessment.data_quality.value} "
        f"({assessment.available_sources}/{assessment.total_sources} sources)",
        f"- Weighted score: {assessment.weighted_score}",
        f"- Trend: {assessment.trend.value}",
        f"- Assessed at: {assessment.generated_at.isoformat()}",
        "",
        "## SOURCES",
    ]
    for source_id, signal in assessment.per_source.items():
        if not signal.available:
            sections.append(f"### {source_id.upper()}: unavailable ({signal.error or 'no data'})")
            continue
        sections.extend([
            f"### {source_id.upper()}",
            f"- Risk level: {signal.risk_level.value}",
            f"- Score: {signal.score}",
            f"- Confidence: {round(signal.confidence * 100)}%",
            f"- Trend: {signal.trend.value}",
            f"- Indicators: {json.dumps(list(signal.indicators))}",
        ])

    estimate = assessment.displacement_estimate
    sections.extend([
        "",
        "## RISK FACTORS",
        _bullets(f"{f.factor} ({f.source}, {f.severity.value})" for f in assessment.risk_factors),
        "",
        "## PROTECTIVE FACTORS",
        _bullets(assessment.protective_factors),
        "",
        "## DISPLACEMENT ESTIMATE",
        f"- Level: {estimate.level.value}",
        f"- Timeline: {estimate.timeline}",
        f"- Estimated numbers: {estimate.estimated_numbers}",
        f"- Primary causes: {json.dumps(list(estimate.primary_causes))}",
        f"- Likely destinations: {json.dumps(list(estimate.likely_destinations))}",
        "",
        "## RESPONSE FORMAT",
        RESPONSE_FORMAT,
    ])
    return "\n".join(sections)
