"""Prompt loading and assembly.

Static instructions live in ``prompts/*.txt`` next to this module and are
cached after the first read. The builders below append the run-specific
blocks (analysis JSON, current stories, guidance) to those instructions.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent / "prompts"

_prompt_cache: dict[str, str] = {}


class PromptLoadError(Exception):
    """Raised when a prompt file cannot be loaded."""


def load_prompt(name: str) -> str:
    """Load ``prompts/<name>.txt``, caching the text.

    Raises:
        PromptLoadError: If the file does not exist.
    """
    if name in _prompt_cache:
        return _prompt_cache[name]

    prompt_file = PROMPTS_DIR / f"{name}.txt"
    try:
        text = prompt_file.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        raise PromptLoadError(f"Prompt file not found: {prompt_file}") from None

    _prompt_cache[name] = text
    logger.debug(f"Loaded prompt '{name}' from {prompt_file}")
    return text


@dataclass
class PromptGuides:
    """Optional guidance blocks shared by the story prompts.

    Empty strings are omitted from the rendered prompt.
    """

    golden_style: str = ""
    actor_guide: str = ""
    extraction_targets: str = ""
    human_feedback: str = ""


def _block(title: str, body: str) -> str:
    body = (body or "").strip()
    if not body:
        return ""
    return f"{title}\n{body}"


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def _join(*parts: str) -> str:
    return "\n\n".join(p for p in parts if p)


def _guide_blocks(guides: PromptGuides) -> list[str]:
    return [
        _block(
            "REFERENCE PATTERNS (quality and structure guide only; never copy content or invent requirements):",
            guides.golden_style,
        ),
        _block(
            'INPUT ACTOR CATALOG (source of truth for "role"):',
            guides.actor_guide,
        ),
        _block("COVERAGE AND QUALITY TARGETS FOR THIS RUN:", guides.extraction_targets),
        _block("ACCUMULATED HUMAN FEEDBACK (high priority quality criteria):", guides.human_feedback),
    ]


def system_policy_prompt() -> str:
    return load_prompt("system_policy")


def analysis_prompt(rag_context: str) -> str:
    """Functionality catalog request over the rendered evidence context."""
    return _join(load_prompt("analysis"), _block("CONTEXT (memory + evidence):", rag_context))


def extraction_prompt(catalog: dict, guides: PromptGuides) -> str:
    return _join(
        load_prompt("extraction"),
        _block("REQUIREMENTS:", _dumps(catalog)),
        *_guide_blocks(guides),
    )


def refinement_prompt(
    catalog: dict,
    current_stories: list[dict],
    min_stories: int,
    attempt: int,
    guides: PromptGuides,
) -> str:
    """Ask for a grown story set; the pass number and counts are stated explicitly."""
    status = (
        f"- Refinement attempt: {attempt}.\n"
        f"- Current stories: {len(current_stories)}. Minimum target: {min_stories}.\n"
        f"- The backlog must contain at least {min_stories} stories."
    )
    return _join(
        load_prompt("refinement"),
        status,
        _block("REQUIREMENTS:", _dumps(catalog)),
        _block("CURRENT STORIES:", _dumps(current_stories)),
        *_guide_blocks(guides),
    )


def gap_coverage_prompt(
    catalog: dict,
    current_stories: list[dict],
    uncovered: list[dict],
    min_stories: int,
    guides: PromptGuides,
) -> str:
    return _join(
        load_prompt("gap_coverage"),
        f"- After adding stories the backlog should approach {min_stories} stories.",
        _block("REQUIREMENTS:", _dumps(catalog)),
        _block("CURRENT STORIES:", _dumps(current_stories)),
        _block("UNCOVERED FUNCTIONALITIES:", _dumps(uncovered)),
        _block("INPUT ACTOR CATALOG:", guides.actor_guide),
        _block("REFERENCE SHAPE PATTERNS:", guides.golden_style),
        _block("ACCUMULATED HUMAN FEEDBACK (high priority):", guides.human_feedback),
    )


def validation_prompt(backlog: dict) -> str:
    return _join(load_prompt("validation"), _block("BACKLOG JSON:", _dumps(backlog)))
