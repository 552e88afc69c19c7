"""Backlog generation pipeline.

One run turns a document into a validated backlog:

1. Index: chunk, embed and upsert the document
2. Retrieval: one scoped query per category, merged by chunk id, plus the
   memory items closest to the document
3. Analysis: functionality catalog from the retrieved evidence
4. Extraction: initial stories, refinement passes, gap coverage
5. Consistency: normalization, actor roles, traceability, schema validation
6. Validation: generative report clamped by the deterministic quality gate
7. Evaluation: reference-story metrics, functionality coverage, hard constraints
8. Outputs: ``<base>.<kind>.json`` artifacts in the output directory
9. Learning: fold the run into the learning profile when it qualifies

The run is registered before indexing and always ends ``completed`` or
``failed``.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from storyforge.config import HardConstraintsMode, PipelineSettings
from storyforge.consistency.enforcer import enforce_actor_consistency, enrich_traceability
from storyforge.errors import HardConstraintError, SchemaValidationError
from storyforge.evaluation.evaluator import evaluate_backlog
from storyforge.evaluation.golden import load_reference_stories
from storyforge.extraction.controller import StoryExtractionController, resolve_target_story_count
from storyforge.extraction.coverage import compute_functionality_coverage
from storyforge.extraction.functionality import extract_functionality_catalog
from storyforge.extraction.guidance import (
    build_actor_guide,
    build_extraction_targets,
    build_golden_style_guide,
)
from storyforge.extraction.normalize import normalize_backlog
from storyforge.feedback.human_feedback import load_human_feedback
from storyforge.learning.store import LearningStore, LearningUpdate
from storyforge.llm.client import CompletionClient
from storyforge.llm.prompts import PromptGuides
from storyforge.memory import MemoryIndex, MemoryStore, build_memory_context
from storyforge.models import Backlog, ExpectedStory, ValidationReport
from storyforge.quality.gate import apply_deterministic_quality_gate
from storyforge.quality.hard_constraints import HardConstraintsResult, evaluate_hard_constraints
from storyforge.quality.validator import validate_backlog
from storyforge.retrieval.aggregator import multi_retrieve
from storyforge.retrieval.context import build_rag_context
from storyforge.retrieval.documents import DocumentEvidence, index_document
from storyforge.retrieval.embedder import Embedder
from storyforge.retrieval.vector_store import ChunkStore
from storyforge.runs.registry import RunRegistry, utc_now
from storyforge.telemetry import pipeline_span, stage_span

logger = logging.getLogger(__name__)

GOLDEN_STORIES_DIR = "golden_stories"
EXPECTED_STORIES_DIR = "expected_stories"
HUMAN_FEEDBACK_DIR = "human_feedback"


@dataclass
class PipelineOptions:
    """Per-run options.

    Attributes:
        use_golden: Build the golden style guide from reference stories.
        target_override: Positive value replaces the computed target size.
    """

    use_golden: bool = True
    target_override: int = 0


@dataclass
class PipelineResult:
    run_id: str
    backlog: Backlog
    validation_report: ValidationReport
    evaluation: dict
    learning_update: LearningUpdate
    hard_constraints: HardConstraintsResult
    outputs: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"runId": self.run_id, "status": "completed", "outputs": self.outputs}


def write_outputs(output_dir: Path, base: str, artifacts: dict[str, Any]) -> dict[str, str]:
    """Write each artifact to ``<output_dir>/<base>.<kind>.json``."""
    output_dir.mkdir(parents=True, exist_ok=True)
    outputs = {}
    for kind, payload in artifacts.items():
        path = output_dir / f"{base}.{kind}.json"
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        outputs[kind] = str(path)
    logger.info(f"Wrote {len(outputs)} outputs to {output_dir}")
    return outputs


class BacklogPipeline:
    """Runs the generation pipeline against injected collaborators.

    Args:
        client: Completion client for analysis, extraction and validation.
        embedder: Embedding primitive for indexing and retrieval.
        store: Chunk store holding document embeddings.
        learning: Learning store shared across runs.
        registry: Run registry.
        settings: Thresholds and directories.
        memory: Curated memory items; with ``memory_index`` they add a MEMORY
            block to the analysis context.
        memory_index: Vector index the memory items are synced into.
    """

    def __init__(
        self,
        client: CompletionClient,
        embedder: Embedder,
        store: ChunkStore,
        learning: LearningStore,
        registry: RunRegistry,
        settings: PipelineSettings | None = None,
        memory: MemoryStore | None = None,
        memory_index: MemoryIndex | None = None,
    ):
        self.client = client
        self.embedder = embedder
        self.store = store
        self.learning = learning
        self.registry = registry
        self.settings = settings or PipelineSettings()
        self.memory = memory
        self.memory_index = memory_index

    def run(
        self,
        evidence: DocumentEvidence,
        options: PipelineOptions | None = None,
        stored_path: str = "",
    ) -> PipelineResult:
        """Execute one run.

        Args:
            evidence: Parsed document.
            options: Per-run options.
            stored_path: Source file location recorded on the run.

        Raises:
            GenerationError: A completion had no usable JSON.
            SchemaValidationError: The backlog or validation report was invalid.
            HardConstraintError: Hard constraints failed in ``fail`` mode.
        """
        options = options or PipelineOptions()
        run = self.registry.start(evidence.filename, stored_path)

        try:
            with pipeline_span(run.run_id, evidence.document_id, **{"document.version": evidence.version_id}):
                result = self._execute(run.run_id, evidence, options)
        except BaseException as e:
            logger.error(f"Run {run.run_id} failed: {e!r}")
            self.registry.fail(run.run_id, str(e) or type(e).__name__)
            raise

        self.registry.complete(run.run_id, result.outputs)
        return result

    def _execute(
        self, run_id: str, evidence: DocumentEvidence, options: PipelineOptions
    ) -> PipelineResult:
        context_dir = self.settings.context_dir

        with stage_span("indexing", "Document Indexing") as span:
            upsert = index_document(evidence, self.embedder, self.store)
            span.set_attribute("stage.chunks_added", upsert.added)

        with stage_span("retrieval", "Multi-Category Retrieval") as span:
            pack = multi_retrieve(self.embedder, self.store, evidence.document_id, evidence.version_id)
            span.set_attribute("stage.merged_hits", len(pack.merged))

        memory_hits = []
        if self.memory is not None and self.memory_index is not None:
            with stage_span("memory", "Memory Context") as span:
                memory_hits = build_memory_context(
                    self.memory, self.memory_index, self.embedder, evidence.raw_text
                )
                span.set_attribute("stage.memory_hits", len(memory_hits))

        with stage_span("analysis", "Functionality Analysis") as span:
            catalog = extract_functionality_catalog(self.client, build_rag_context(pack, memory_hits))
            span.set_attribute("stage.functionalities", len(catalog.functionalities))

        golden: list[ExpectedStory] = []
        if options.use_golden:
            golden = load_reference_stories(context_dir / GOLDEN_STORIES_DIR)
        expected = load_reference_stories(context_dir / EXPECTED_STORIES_DIR)
        human_feedback = load_human_feedback(context_dir / HUMAN_FEEDBACK_DIR)

        target = resolve_target_story_count(
            len(catalog.functionalities), len(expected), self.learning, options.target_override
        )
        guides = PromptGuides(
            golden_style=build_golden_style_guide(golden),
            actor_guide=build_actor_guide(catalog),
            extraction_targets=build_extraction_targets(
                catalog, target, self.learning.guidance_text(), human_feedback.guide_text
            ),
            human_feedback=human_feedback.guide_text,
        )

        with stage_span("extraction", "Story Extraction", **{"stage.target": target}) as span:
            controller = StoryExtractionController(
                self.client, guides, min_coverage=self.settings.min_functionality_coverage
            )
            extraction = controller.run(catalog, target)
            span.set_attribute("stage.stories", len(extraction.stories))
            span.set_attribute("stage.refinement_passes", extraction.refinement_passes)
            span.set_attribute("stage.gap_coverage", extraction.gap_coverage_applied)

        with stage_span("consistency", "Consistency Enforcement"):
            candidate = normalize_backlog(
                {
                    "documentId": evidence.document_id,
                    "versionId": evidence.version_id,
                    "generatedAt": utc_now(),
                    "userStories": extraction.stories,
                }
            )
            enforce_actor_consistency(candidate["userStories"], catalog)
            enrich_traceability(candidate["userStories"], catalog, pack.merged)
            try:
                backlog = Backlog.model_validate(candidate)
            except ValidationError as e:
                raise SchemaValidationError(f"Backlog failed schema validation: {e}", e.errors()) from e

        with stage_span("validation", "Backlog Validation"):
            report = validate_backlog(self.client, backlog)

        with stage_span("quality_gate", "Deterministic Quality Gate") as span:
            report = apply_deterministic_quality_gate(backlog, report, len(evidence.raw_text))
            span.set_attribute("stage.score", report.score)

        with stage_span("evaluation", "Reference Evaluation"):
            evaluation = evaluate_backlog(backlog.user_stories, expected)
            quality = evaluation.quality_score or 0.0
            coverage = compute_functionality_coverage(catalog, [s.to_wire() for s in backlog.user_stories])
            hard_constraints = evaluate_hard_constraints(
                self.settings,
                generated_count=len(backlog.user_stories),
                target_count=target,
                validation_score=report.score,
                quality_score=quality,
                functionality_coverage=coverage.coverage,
            )
            evaluation_payload = evaluation.to_dict()
            evaluation_payload["functionalityCoverage"] = coverage.to_dict()
            evaluation_payload["hardConstraints"] = hard_constraints.to_dict()

        if not hard_constraints.passed:
            message = f"Hard constraints failed: {' | '.join(hard_constraints.violations)}"
            if self.settings.hard_constraints_mode == HardConstraintsMode.FAIL:
                raise HardConstraintError(message, evaluation_payload)
            logger.warning(message)

        outputs = write_outputs(
            self.settings.output_dir,
            evidence.base_name,
            {
                "requirements": catalog.to_wire(),
                "retrieval": {**pack.to_dict(), "memoryHits": [h.to_dict() for h in memory_hits]},
                "backlog": backlog.to_wire(),
                "validation": report.to_wire(),
                "eval": evaluation_payload,
            },
        )

        with stage_span("learning", "Learning Update") as span:
            learning_update = self.learning.update_from_run(
                generated=backlog.user_stories,
                expected=expected or human_feedback.stories,
                validation_score=report.score,
                quality_score=quality,
                min_quality=self.settings.min_quality_score,
                min_validation=self.settings.min_validation_score,
            )
            span.set_attribute("stage.learning_updated", learning_update.updated)

        return PipelineResult(
            run_id=run_id,
            backlog=backlog,
            validation_report=report,
            evaluation=evaluation_payload,
            learning_update=learning_update,
            hard_constraints=hard_constraints,
            outputs=outputs,
        )


def run_pipeline(
    evidence: DocumentEvidence,
    options: PipelineOptions | None = None,
    *,
    client: CompletionClient,
    embedder: Embedder,
    store: ChunkStore,
    learning: LearningStore,
    registry: RunRegistry,
    settings: PipelineSettings | None = None,
    memory: MemoryStore | None = None,
    memory_index: MemoryIndex | None = None,
) -> PipelineResult:
    """Run the pipeline once with the given collaborators."""
    pipeline = BacklogPipeline(
        client, embedder, store, learning, registry, settings, memory=memory, memory_index=memory_index
    )
    return pipeline.run(evidence, options)
