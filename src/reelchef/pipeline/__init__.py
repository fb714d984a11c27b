"""
ReelChef - Hybrid extraction pipeline.

Web scrape -> structuring -> completeness check -> video fallback.
"""

from reelchef.pipeline.completeness import evaluate
from reelchef.pipeline.models import (
    ExtractionMethod,
    PipelineOptions,
    PipelineResult,
    Recipe,
    ScrapedPage,
    UsageMetrics,
)
from reelchef.pipeline.usage import aggregate_usage, calculate_cost

__all__ = [
    "ExtractionMethod",
    "PipelineOptions",
    "PipelineResult",
    "Recipe",
    "ScrapedPage",
    "UsageMetrics",
    "aggregate_usage",
    "calculate_cost",
    "evaluate",
]
