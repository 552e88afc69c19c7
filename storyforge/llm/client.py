"""Completion client seam.

The pipeline only ever needs ``complete(system_prompt, user_prompt) -> str``.
Keeping the model behind this narrow protocol lets every deterministic step
(recovery, scoring, gating) run in tests against a scripted fake.
"""

import logging
import re
from typing import Any, Protocol

from strands import Agent

from storyforge.errors import GenerationError
from storyforge.llm.json_recovery import recover_json
from storyforge.llm.model_provider import ModelSettings, create_model

logger = logging.getLogger(__name__)

_THINKING_TAG_RE = re.compile(r"<thinking>.*?</thinking>", re.DOTALL | re.IGNORECASE)

# Raw completions logged on failure are truncated to keep log lines readable
_RAW_LOG_LIMIT = 2000


class CompletionClient(Protocol):
    """Anything that turns a system + user prompt into completion text."""

    def complete(self, system_prompt: str, user_prompt: str) -> str: ...


class StrandsCompletionClient:
    """Completion client backed by a Strands ``Agent``.

    The model is built once from ``settings``; a fresh agent wraps it on
    every call so no conversation history leaks between pipeline stages.
    """

    def __init__(self, settings: ModelSettings | None = None):
        self.settings = settings
        self._model = None

    @property
    def model(self):
        if self._model is None:
            self._model = create_model(self.settings)
        return self._model

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        agent = Agent(
            name="storyforge_completion",
            system_prompt=system_prompt,
            model=self.model,
            callback_handler=None,
        )
        result = agent(user_prompt)
        return extract_text_from_result(result)


def extract_text_from_result(result: Any) -> str:
    """Extract plain text from a Strands agent result.

    Handles dict and object messages with a content-block list, plain strings,
    and falls back to ``str(result)``. ``<thinking>`` tags are stripped.
    """
    if hasattr(result, "message"):
        text = _extract_from_message(result.message)
    elif isinstance(result, str):
        text = result
    else:
        text = str(result)
    return _THINKING_TAG_RE.sub("", text).strip()


def _extract_from_message(msg: Any) -> str:
    if isinstance(msg, dict) and "content" in msg:
        return _extract_from_content(msg["content"])
    if hasattr(msg, "content"):
        return _extract_from_content(msg.content)
    return str(msg)


def _extract_from_content(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(item["text"])
            elif hasattr(item, "text"):
                parts.append(item.text)
        return "\n".join(parts)
    return str(content)


def call_json(client: CompletionClient, system_prompt: str, user_prompt: str) -> Any:
    """Run one completion and recover its JSON value.

    Raises:
        GenerationError: If no JSON value can be recovered from the text.
    """
    content = client.complete(system_prompt, user_prompt)
    value = recover_json(content)
    if value is None:
        logger.error("Completion returned no parseable JSON: %s", content[:_RAW_LOG_LIMIT])
        raise GenerationError(
            f"Completion returned no valid JSON. Raw content: {content[:_RAW_LOG_LIMIT]}",
            raw_content=content,
        )
    return value
