"""Generative validation of a backlog."""

import logging

from pydantic import ValidationError

from storyforge.errors import SchemaValidationError
from storyforge.llm.client import CompletionClient, call_json
from storyforge.llm.prompts import system_policy_prompt, validation_prompt
from storyforge.models import Backlog, ValidationReport

logger = logging.getLogger(__name__)


def validate_backlog(client: CompletionClient, backlog: Backlog) -> ValidationReport:
    """Ask the model to review the backlog and return a scored report.

    Raises:
        GenerationError: If the completion has no JSON.
        SchemaValidationError: If the JSON is not a valid report.
    """
    raw = call_json(client, system_policy_prompt(), validation_prompt(backlog.to_wire()))
    try:
        report = ValidationReport.model_validate(raw)
    except ValidationError as e:
        raise SchemaValidationError(f"Invalid validation report: {e}", errors=e.errors()) from e

    logger.info(f"validation: score {report.score}, {len(report.findings)} findings")
    return report
