"""Logging and OpenTelemetry tracing.

Usage:
    from storyforge.telemetry import init_telemetry, pipeline_span, stage_span

    init_telemetry()
    with pipeline_span(run_id, document_id):
        with stage_span("retrieval", "Multi-Category Retrieval"):
            ...
"""

from .config import TelemetryConfig, init_telemetry, is_telemetry_enabled
from .spans import get_tracer, pipeline_span, stage_span

__all__ = [
    "TelemetryConfig",
    "init_telemetry",
    "is_telemetry_enabled",
    "get_tracer",
    "pipeline_span",
    "stage_span",
]
