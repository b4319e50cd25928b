"""
CrisisWatch command-line driver
===============================

Runs one assessment cycle against the live providers and prints the result.

Usage:
    python scripts/run_assessment.py Sudan
    python scripts/run_assessment.py Sudan --plan
    python scripts/run_assessment.py Sudan Myanmar Syria --json
"""

import argparse
import asyncio
import json
import sys

from crisiswatch.config import settings
from crisiswatch.context import FusionContext
from crisiswatch.exceptions import ConfigurationError
from crisiswatch.logging_config import configure_logging


class C:
    GREEN = "\033[92m"
    RED = "\033[91m"
    YELLOW = "\033[93m"
    CYAN = "\033[96m"
    BOLD = "\033[1m"
    END = "\033[0m"


RISK_COLORS = {
    "CRITICAL": C.RED,
    "HIGH": C.YELLOW,
    "MEDIUM": C.CYAN,
    "LOW": C.GREEN,
    "UNKNOWN": "",
}


def header(msg: str):
    print(f"\n{C.BOLD}{C.CYAN}{'=' * 60}{C.END}")
    print(f"{C.BOLD}{C.CYAN}  {msg}{C.END}")
    print(f"{C.BOLD}{C.CYAN}{'=' * 60}{C.END}")


def print_assessment(assessment):
    risk = assessment.overall_risk.value
    header(f"{assessment.country}: {RISK_COLORS[risk]}{risk}{C.END}")
    print(f"  Weighted score : {assessment.weighted_score}")
    print(f"  Confidence     : {assessment.confidence:.0%}")
    print(f"  Data quality   : {assessment.data_quality.value} "
          f"({assessment.available_sources}/{assessment.total_sources} sources)")
    print(f"  Trend          : {assessment.trend.value}")
    for source_id, signal in assessment.per_source.items():
        if signal.available:
            print(f"    {source_id:<9} {signal.risk_level.value:<8} score={signal.score:<6} "
                  f"conf={signal.confidence:.2f}")
        else:
            print(f"    {source_id:<9} {C.RED}unavailable{C.END} ({signal.error})")
    estimate = assessment.displacement_estimate
    print(f"  Displacement   : {estimate.level.value}, {estimate.timeline}, "
          f"~{estimate.estimated_numbers:,} people")


def print_analysis_and_plan(result):
    analysis, plan = result.analysis, result.plan
    meta = analysis.model_metadata
    source = "fallback" if meta.is_fallback else meta.selected_model
    header(f"Analysis ({source}, {meta.latency_ms} ms)")
    print(f"  Risk           : {analysis.risk_assessment.value} (agreement {analysis.agreement})")
    print(f"  Confidence     : {analysis.confidence:.0%}")
    print(f"  Priority score : {analysis.priority_score}")
    print(f"  Escalation     : {analysis.escalation.level} (review in {analysis.review_in})")
    print(f"  Reasoning      : {analysis.reasoning}")
    for finding in analysis.key_findings:
        print(f"    - {finding}")
    if meta.timed_out_models or meta.failed_models:
        print(f"  Timed out: {list(meta.timed_out_models)}  Failed: {list(meta.failed_models)}")

    header(f"Response plan {plan.plan_id}")
    print(f"  Tier           : {plan.priority_tier}")
    print(f"  Population     : {plan.target_population:,}")
    print(f"  Total cost     : ${plan.total_cost:,} (${plan.cost_per_person:,}/person)")
    for phase in plan.phases.as_tuple():
        print(f"    {phase.name:<14} {phase.duration:<10} ${phase.budget:>14,}  staff={phase.staff_total}")
    print(f"  Preparation    : {plan.preparation_time}")


async def main() -> int:
    parser = argparse.ArgumentParser(description="Run a CrisisWatch assessment")
    parser.add_argument("countries", nargs="+", help="Country names or ISO3 codes")
    parser.add_argument("--plan", action="store_true", help="Also run the model analysis and response plan")
    parser.add_argument("--json", action="store_true", help="Print camelCase JSON instead of a summary")
    args = parser.parse_args()

    configure_logging(settings)
    try:
        context = FusionContext.create(settings)
    except ConfigurationError as e:
        print(f"{C.RED}Configuration error:{C.END} {e.message}", file=sys.stderr)
        return 2

    async with context:
        if args.plan:
            results = [await context.get_analysis_and_plan(c) for c in args.countries]
            if args.json:
                print(json.dumps([
                    {
                        "assessment": r.assessment.model_dump(mode="json", by_alias=True),
                        "analysis": r.analysis.model_dump(mode="json", by_alias=True),
                        "plan": r.plan.model_dump(mode="json", by_alias=True),
                    }
                    for r in results
                ], indent=2))
            else:
                for r in results:
                    print_assessment(r.assessment)
                    print_analysis_and_plan(r)
        else:
            assessments = await context.get_multi_country_assessments(args.countries)
            if args.json:
                print(json.dumps([a.model_dump(mode="json", by_alias=True) for a in assessments], indent=2))
            else:
                for a in assessments:
                    print_assessment(a)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
