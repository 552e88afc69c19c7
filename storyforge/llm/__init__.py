"""Completion provider access, prompt assembly and JSON recovery."""

from storyforge.llm.client import CompletionClient, StrandsCompletionClient, call_json
from storyforge.llm.json_recovery import recover_json

__all__ = ["CompletionClient", "StrandsCompletionClient", "call_json", "recover_json"]
