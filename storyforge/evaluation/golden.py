"""Reference (golden / expected) story loading.

Reference stories live as JSON files in a folder, each holding a list of
stories or ``{"stories": [...]}``. A story may give role/want/soThat
directly or as one description in "Como ... quiero ... para ..." form.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any

from storyforge.models import ExpectedStory

logger = logging.getLogger(__name__)

_ROLE_RE = re.compile(r"\bcomo\s+(.+?)\s+quiero\b", re.IGNORECASE)
_WANT_RE = re.compile(r"\bquiero\s+(.+?)\s+para\b", re.IGNORECASE)
_SO_THAT_RE = re.compile(r"\bpara\s+(.+)$", re.IGNORECASE)

DESCRIPTION_KEYS = ("description", "descripcion", "descripción")


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def parse_story_description(description: str) -> tuple[str, str, str]:
    """Split "Como <role> quiero <want> para <soThat>" into its three parts.

    Missing parts come back empty.
    """
    text = " ".join(description.split())
    parts = []
    for pattern in (_ROLE_RE, _WANT_RE, _SO_THAT_RE):
        match = pattern.search(text)
        parts.append(match.group(1).strip() if match else "")
    return parts[0], parts[1], parts[2]


def clean_criteria(value: Any) -> list[str]:
    """Acceptance criteria as a list of non-empty trimmed strings.

    A string is split into lines with leading ``- `` removed.
    """
    if isinstance(value, str):
        items = [line.strip().removeprefix("- ").strip() for line in value.splitlines()]
    elif isinstance(value, list):
        items = [_text(v) for v in value]
    else:
        return []
    return [item for item in items if item]


def flatten_notes(value: Any) -> str:
    """Notes as one multi-line string.

    Section lists become ``- section`` lines followed by ``  - bullet`` lines;
    strings are trimmed.
    """
    if isinstance(value, str):
        return value.strip()
    if not isinstance(value, list):
        return ""

    lines = []
    for item in value:
        if not isinstance(item, dict):
            continue
        section = _text(item.get("section"))
        if section:
            lines.append(f"- {section}")
        bullets = item.get("bullets")
        if not isinstance(bullets, list):
            continue
        for bullet in bullets:
            text = _text(bullet)
            if text:
                lines.append(f"  - {text}")
    return "\n".join(lines).strip()


def to_expected_story(raw: dict) -> ExpectedStory:
    """Normalize one reference or corrected story dict."""
    role = _text(raw.get("role"))
    want = _text(raw.get("want"))
    so_that = _text(raw.get("soThat") or raw.get("so_that"))

    description = next((_text(raw[k]) for k in DESCRIPTION_KEYS if raw.get(k)), "")
    if description and not (role and want and so_that):
        parsed_role, parsed_want, parsed_so_that = parse_story_description(description)
        role = role or parsed_role
        want = want or parsed_want
        so_that = so_that or parsed_so_that

    return ExpectedStory(
        story_id=_text(raw.get("storyId") or raw.get("story_id")),
        epic=_text(raw.get("epic")),
        title=_text(raw.get("title")),
        role=role,
        want=want,
        so_that=so_that,
        acceptance_criteria=clean_criteria(
            raw.get("acceptanceCriteria", raw.get("acceptance_criteria"))
        ),
        notes_hu=flatten_notes(raw.get("notesHu", raw.get("notes_hu"))),
    )


def stories_from_payload(payload: Any) -> list[dict]:
    if isinstance(payload, dict):
        payload = payload.get("stories") or payload.get("correctedStories") or []
    if not isinstance(payload, list):
        return []
    return [item for item in payload if isinstance(item, dict)]


def load_reference_stories(folder: str | Path) -> list[ExpectedStory]:
    """Load every ``*.json`` story file in ``folder`` (sorted by name).

    A missing folder yields an empty list.

    Raises:
        json.JSONDecodeError: If a file is not valid JSON.
    """
    folder = Path(folder)
    if not folder.is_dir():
        return []

    stories: list[ExpectedStory] = []
    for path in sorted(folder.glob("*.json")):
        payload = json.loads(path.read_text(encoding="utf-8"))
        loaded = [to_expected_story(raw) for raw in stories_from_payload(payload)]
        logger.debug(f"Loaded {len(loaded)} reference stories from {path.name}")
        stories.extend(loaded)

    if stories:
        logger.info(f"Loaded {len(stories)} reference stories from {folder}")
    return stories
