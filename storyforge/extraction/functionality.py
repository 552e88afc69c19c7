"""Functionality catalog extraction (first completion of a run)."""

import logging

from pydantic import ValidationError

from storyforge.errors import GenerationError, SchemaValidationError
from storyforge.llm.client import CompletionClient, call_json
from storyforge.llm.prompts import analysis_prompt, system_policy_prompt
from storyforge.models import FunctionalityCatalog

logger = logging.getLogger(__name__)


def extract_functionality_catalog(client: CompletionClient, rag_context: str) -> FunctionalityCatalog:
    """Ask the model for actors, functionalities, glossary and open questions.

    Raises:
        GenerationError: If the completion has no JSON object.
        SchemaValidationError: If the object does not fit the catalog shape.
    """
    raw = call_json(client, system_policy_prompt(), analysis_prompt(rag_context))
    if not isinstance(raw, dict):
        raise GenerationError(
            f"Analysis returned {type(raw).__name__}, expected a JSON object", raw_content=str(raw)
        )

    try:
        catalog = FunctionalityCatalog.model_validate(raw)
    except ValidationError as e:
        raise SchemaValidationError(f"Invalid functionality catalog: {e}", errors=e.errors()) from e

    logger.info(
        "analysis: %d actors, %d functionalities, %d open questions",
        len(catalog.actors),
        len(catalog.functionalities),
        len(catalog.open_questions),
    )
    return catalog
