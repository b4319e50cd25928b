"""
Model response parsing.

Model output is untyped free text. It is turned into a tagged result:
`Parsed(payload)` when a JSON block validates against `ModelAnalysisPayload`,
`Unparseable(raw_text, reason)` otherwise. Never raises.
"""

import json
import re
from dataclasses import dataclass
from typing import Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from crisiswatch.schemas.analysis import DisplacementLikelihood, Urgency
from crisiswatch.schemas.common import RiskLevel

logger = structlog.get_logger(__name__)

FENCED_BLOCK = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)

MODEL_RISK_LEVELS = {"CRITICAL", "HIGH", "MEDIUM", "LOW"}


# ── Expected payload ─────────────────────────────────────────────────────


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class DisplacementPayload(_Lenient):
    likelihood: DisplacementLikelihood = DisplacementLikelihood.UNKNOWN
    timeframe: str = "unknown"
    estimated_population: int = Field(default=0, ge=0, alias="estimatedPopulation")
    likely_destinations: list[str] = Field(default_factory=list, alias="likelyDestinations")
    primary_triggers: list[str] = Field(default_factory=list, alias="primaryTriggers")

    @field_validator("likelihood", mode="before")
    @classmethod
    def _likelihood(cls, v):
        if isinstance(v, str):
            v = v.strip().upper().replace(" ", "_")
        return v if v in DisplacementLikelihood.__members__ else DisplacementLikelihood.UNKNOWN

    @field_validator("estimated_population", mode="before")
    @classmethod
    def _population(cls, v):
        # "150,000-200,000" → 150000
        if isinstance(v, str):
            match = re.search(r"\d[\d,]*", v)
            return int(match.group(0).replace(",", "")) if match else 0
        return v


class EarlyWarningPayload(_Lenient):
    immediate_threats: list[str] = Field(default_factory=list, alias="immediateThreats")
    emerging_concerns: list[str] = Field(default_factory=list, alias="emergingConcerns")
    time_to_action: str = Field(default="days", alias="timeToAction")
    urgency: Urgency = Urgency.MEDIUM

    @field_validator("urgency", mode="before")
    @classmethod
    def _urgency(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
        return v if v in {u.value for u in Urgency} else Urgency.MEDIUM


class RecommendationsPayload(_Lenient):
    immediate: list[str] = Field(default_factory=list)
    short_term: list[str] = Field(default_factory=list, alias="shortTerm")
    long_term: list[str] = Field(default_factory=list, alias="longTerm")


class ModelAnalysisPayload(_Lenient):
    """What a reasoning model is asked to return."""
    risk_assessment: RiskLevel = Field(alias="aiRiskAssessment")
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = Field(min_length=1)
    key_findings: list[str] = Field(default_factory=list, alias="keyFindings")
    displacement_prediction: DisplacementPayload = Field(alias="displacementPrediction")
    early_warning: EarlyWarningPayload = Field(default_factory=EarlyWarningPayload, alias="earlyWarning")
    recommendations: RecommendationsPayload = Field(default_factory=RecommendationsPayload)

    @field_validator("risk_assessment", mode="before")
    @classmethod
    def _known_risk(cls, v):
        if isinstance(v, str):
            v = v.strip().upper()
        if v not in MODEL_RISK_LEVELS:
            raise ValueError(f"risk assessment must be one of {sorted(MODEL_RISK_LEVELS)}")
        return v


# ── Tagged result ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Parsed:
    payload: ModelAnalysisPayload


@dataclass(frozen=True)
class Unparseable:
    raw_text: str
    reason: str


ParseResult = Union[Parsed, Unparseable]


def _balanced_object(text: str) -> Optional[str]:
    """First brace-balanced {...} span, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        start = text.find("{", start + 1)
    return None


def candidate_blocks(text: str) -> list[str]:
    """JSON candidates in preference order: fenced blocks, then a bare object."""
    text = THINK_BLOCK.sub("", text)
    candidates = [m.group(1).strip() for m in FENCED_BLOCK.finditer(text)]
    bare = _balanced_object(text)
    if bare is not None:
        candidates.append(bare)
    return [c for c in candidates if c]


def parse_model_response(text: str) -> ParseResult:
    if not text or not text.strip():
        return Unparseable(raw_text=text or "", reason="empty response")

    candidates = candidate_blocks(text)
    if not candidates:
        return Unparseable(raw_text=text, reason="no JSON block found")

    reason = "no JSON block found"
    for block in candidates:
        try:
            data = json.loads(block)
        except json.JSONDecodeError as e:
            reason = f"invalid JSON: {e.msg}"
            continue
        if not isinstance(data, dict):
            reason = "JSON block is not an object"
            continue
        try:
            return Parsed(payload=ModelAnalysisPayload.model_validate(data))
        except ValidationError as e:
            reason = f"schema mismatch: {e.error_count()} error(s)"
            logger.debug("model_response_schema_mismatch", errors=e.errors(include_url=False)[:5])
    return Unparseable(raw_text=text, reason=reason)
