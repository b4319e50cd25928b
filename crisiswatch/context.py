"""
FusionContext — the wired-up core, built once per process.

Holds the configured adapters, fusion engine, caches, orchestrator and plan
generator, and exposes the operations the route layer calls. Construction
validates configuration, so a bad setup fails here and nowhere else.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, NamedTuple, Optional

import httpx
import structlog

from crisiswatch import __version__
from crisiswatch.adapters import SourceAdapter, build_adapters
from crisiswatch.config import Settings, validate_model_specs
from crisiswatch.engine.fusion import RiskFusionEngine
from crisiswatch.exceptions import ConfigurationError
from crisiswatch.geo import canonical_name
from crisiswatch.schemas.analysis import AiAnalysis
from crisiswatch.schemas.assessment import CrisisAssessment
from crisiswatch.schemas.plan import ResponsePlan
from crisiswatch.schemas.signal import SourceSignal, utcnow
from crisiswatch.services.cache import AssessmentCache
from crisiswatch.services.llm_gateway import ChatCompletionGateway, ReasoningGateway
from crisiswatch.services.orchestrator import ModelOrchestrator
from crisiswatch.services.plan_generator import PlanGenerator

logger = structlog.get_logger(__name__)


def _check_adapters(adapters: list[SourceAdapter], engine: RiskFusionEngine) -> None:
    ids = [a.source_id for a in adapters]
    if len(set(ids)) != len(ids):
        raise ConfigurationError("Duplicate source adapters", details={"sources": ids})
    unweighted = sorted(set(ids) - set(engine.weights))
    if unweighted:
        raise ConfigurationError(
            "Adapters configured for sources without a fusion weight",
            details={"sources": unweighted},
        )
    missing = sorted(set(engine.weights) - set(ids))
    if missing:
        logger.warning("context_sources_without_adapter", sources=missing)


class AnalysisAndPlan(NamedTuple):
    assessment: CrisisAssessment
    analysis: AiAnalysis
    plan: ResponsePlan


@dataclass
class FusionContext:
    settings: Settings
    adapters: list[SourceAdapter]
    engine: RiskFusionEngine
    assessment_cache: AssessmentCache
    orchestrator: ModelOrchestrator
    plan_generator: PlanGenerator
    http_client: Optional[httpx.AsyncClient] = None
    owns_client: bool = field(default=False, repr=False)

    @classmethod
    def create(
        cls,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        gateway: Optional[ReasoningGateway] = None,
        adapters: Optional[list[SourceAdapter]] = None,
    ) -> "FusionContext":
        """
        Build and validate the core.

        Raises ConfigurationError for bad weights, an unusable model roster
        or adapters that don't match the weighted sources.
        """
        if settings is None:
            from crisiswatch.config import settings as default_settings
            settings = default_settings

        engine = RiskFusionEngine.from_settings(settings)
        validate_model_specs(settings.model_specs)
        if adapters is not None:
            _check_adapters(adapters, engine)

        owns_client = http_client is None
        if owns_client:
            http_client = httpx.AsyncClient(
                timeout=settings.adapter_timeout_seconds,
                follow_redirects=True,
                headers={"User-Agent": f"{settings.app_name}/{__version__}"},
            )

        if adapters is None:
            adapters = build_adapters(http_client, settings)
            _check_adapters(adapters, engine)
        ids = [a.source_id for a in adapters]

        if gateway is None:
            gateway = ChatCompletionGateway(http_client, settings.llm_base_url, settings.llm_api_key)

        context = cls(
            settings=settings,
            adapters=list(adapters),
            engine=engine,
            assessment_cache=AssessmentCache(
                ttl_seconds=settings.assessment_ttl_seconds,
                max_entries=settings.cache_max_entries,
            ),
            orchestrator=ModelOrchestrator.from_settings(settings, gateway),
            plan_generator=PlanGenerator(settings.plan_default_population),
            http_client=http_client,
            owns_client=owns_client,
        )
        logger.info(
            "fusion_context_ready",
            sources=ids,
            models=[s.name for s in context.orchestrator.model_specs],
            weights=engine.weights,
        )
        return context

    # ── Operations ───────────────────────────────────────────────────────

    async def get_assessment(self, country: str) -> CrisisAssessment:
        """
        Fused assessment for one country, cached per country.

        Concurrent callers during a miss share a single adapter fan-out.
        Never raises for upstream unavailability.
        """
        name = canonical_name(country)
        return await self.assessment_cache.get_or_compute(
            name,
            lambda: self._assess(name),
            ttl_seconds=self.settings.assessment_ttl_seconds,
        )

    async def get_analysis_and_plan(self, country: str) -> AnalysisAndPlan:
        assessment = await self.get_assessment(country)
        analysis = await self.orchestrator.analyze(assessment)
        plan = self.plan_generator.generate(analysis)
        return AnalysisAndPlan(assessment=assessment, analysis=analysis, plan=plan)

    async def get_multi_country_assessments(self, countries: Iterable[str]) -> list[CrisisAssessment]:
        """Assess several countries concurrently; highest risk first, UNKNOWN last."""
        names = list(dict.fromkeys(canonical_name(c) for c in countries))
        assessments = await asyncio.gather(*(self.get_assessment(n) for n in names))
        return sorted(assessments, key=lambda a: (-a.overall_risk.rank, a.country))

    async def aclose(self) -> None:
        if self.owns_client and self.http_client is not None:
            await self.http_client.aclose()

    async def __aenter__(self) -> "FusionContext":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ── internals ────────────────────────────────────────────────────────

    async def _assess(self, country: str) -> CrisisAssessment:
        logger.info("assessment_fan_out", country=country, sources=len(self.adapters))
        signals = await asyncio.gather(*(self._fetch(a, country) for a in self.adapters))
        return self.engine.fuse(country, signals, generated_at=utcnow())

    async def _fetch(self, adapter: SourceAdapter, country: str) -> SourceSignal:
        try:
            return await adapter.fetch(country)
        except Exception as e:
            logger.error(
                "adapter_unexpected_error",
                source=adapter.source_id,
                country=country,
                error=str(e),
                exc_info=True,
            )
            return SourceSignal.unavailable(adapter.source_id, f"unexpected error: {type(e).__name__}")
