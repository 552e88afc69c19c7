"""Run and stage spans.

Span hierarchy:
    pipeline_span (one per run)
    └── stage_span (retrieval, analysis, extraction, ...)
        └── agent spans created by Strands for each completion
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Span, StatusCode

logger = logging.getLogger(__name__)

TRACER_NAME = "storyforge.pipeline"


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(TRACER_NAME)


@contextmanager
def _traced(name: str, attributes: dict[str, Any]) -> Generator[Span, None, None]:
    with get_tracer().start_as_current_span(
        name=name, attributes=attributes, record_exception=False, set_status_on_exception=False
    ) as span:
        try:
            yield span
            span.set_status(StatusCode.OK)
        except Exception as e:
            span.record_exception(e)
            span.set_status(StatusCode.ERROR, str(e)[:500])
            raise


@contextmanager
def pipeline_span(run_id: str, document_id: str, **attributes: Any) -> Generator[Span, None, None]:
    """Root span for one pipeline run."""
    span_attributes = {"run.id": run_id, "document.id": document_id}
    span_attributes.update(attributes)
    with _traced(f"pipeline:{document_id}", span_attributes) as span:
        yield span


@contextmanager
def stage_span(stage_slug: str, stage_name: str, **attributes: Any) -> Generator[Span, None, None]:
    """Span for one pipeline stage; nest inside ``pipeline_span``.

    Example:
        with stage_span("extraction", "Story Extraction") as span:
            span.set_attribute("stage.stories", len(stories))
    """
    span_attributes = {"stage.slug": stage_slug, "stage.name": stage_name}
    span_attributes.update(attributes)
    with _traced(f"stage:{stage_slug}", span_attributes) as span:
        yield span
