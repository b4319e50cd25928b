"""Source adapters: one per provider family, each returning a SourceSignal."""

import httpx

from crisiswatch.adapters.base import FetchOptions, SourceAdapter
from crisiswatch.adapters.climate import ClimateAdapter
from crisiswatch.adapters.conflict import ConflictAdapter
from crisiswatch.adapters.economic import EconomicAdapter
from crisiswatch.adapters.news import NewsAdapter
from crisiswatch.config import Settings

ADAPTER_CLASSES: tuple[type[SourceAdapter], ...] = (
    ConflictAdapter,
    EconomicAdapter,
    ClimateAdapter,
    NewsAdapter,
)


def build_adapters(client: httpx.AsyncClient, settings: Settings) -> list[SourceAdapter]:
    """One adapter per configured source, sharing a single HTTP client."""
    return [cls(client, settings) for cls in ADAPTER_CLASSES]


__all__ = [
    "ADAPTER_CLASSES",
    "ClimateAdapter",
    "ConflictAdapter",
    "EconomicAdapter",
    "FetchOptions",
    "NewsAdapter",
    "SourceAdapter",
    "build_adapters",
]
