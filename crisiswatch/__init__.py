"""
CrisisWatch — multi-source crisis risk fusion and resilient model orchestration.

Architecture:
    crisiswatch/
    ├── adapters/        # One adapter per provider family (conflict, economic, climate, news)
    ├── engine/          # Risk fusion engine + displacement/trend estimation
    ├── schemas/         # Immutable pydantic records (signal, assessment, analysis, plan)
    ├── services/        # Cache, resilience, LLM gateway, orchestrator, plan generator
    ├── config.py        # Pydantic Settings v2
    ├── context.py       # FusionContext — the wired-up core, built once at startup
    └── geo.py           # Country reference table

Data Flow:
    Source Adapters → Fusion Engine → Assessment Cache → Model Orchestrator → Plan Generator

Module Boundaries:
    - Adapters convert every provider failure into an unavailable signal
    - Fusion and plan generation are pure, synchronous computations
    - The orchestrator always returns a schema-complete analysis (fallback if needed)
    - Configuration errors are the only failures that propagate, and only at startup

Version: 1.0.0
"""

__version__ = "1.0.0"
