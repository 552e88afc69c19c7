"""Accumulated human feedback pack.

``<context>/human_feedback/`` may hold free-text guidance (``.md``/``.txt``)
and corrected stories (``.json``). Guidance text goes into the story prompts;
the stories stand in for reference stories when learning without them.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

from storyforge.config import GUIDANCE_TOP_N
from storyforge.evaluation.golden import load_reference_stories
from storyforge.models import ExpectedStory

logger = logging.getLogger(__name__)

GUIDE_SUFFIXES = {".md", ".txt"}


@dataclass
class HumanFeedbackPack:
    stories: list[ExpectedStory] = field(default_factory=list)
    guide_text: str = ""


def load_human_feedback(folder: str | Path) -> HumanFeedbackPack:
    folder = Path(folder)
    if not folder.is_dir():
        return HumanFeedbackPack()

    stories = load_reference_stories(folder)

    parts = []
    for path in sorted(folder.iterdir()):
        if path.suffix.lower() not in GUIDE_SUFFIXES:
            continue
        content = path.read_text(encoding="utf-8").strip()
        if content:
            parts.append(f"### {path.name}\n{content}")

    if stories:
        roles = Counter(s.role for s in stories if s.role)
        top_roles = ", ".join(f"{r} ({c})" for r, c in roles.most_common(GUIDANCE_TOP_N))
        parts.append(
            "\n".join(
                [
                    "### feedback_dataset_stats",
                    f"- feedback_stories: {len(stories)}",
                    f"- frequent_roles: {top_roles or 'n/a'}",
                ]
            )
        )

    logger.info(f"Human feedback pack: {len(stories)} stories, {len(parts)} guide blocks")
    return HumanFeedbackPack(stories=stories, guide_text="\n\n".join(parts).strip())
