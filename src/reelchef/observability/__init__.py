"""
ReelChef - Observability Package.

Provides:
- Logging setup
- LangSmith tracing integration
"""

from reelchef.observability.logging_setup import configure_logging
from reelchef.observability.tracing import init_tracing, trace_llm_call

__all__ = [
    "configure_logging",
    "init_tracing",
    "trace_llm_call",
]
