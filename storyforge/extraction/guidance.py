"""Guidance blocks injected into the story prompts.

- Golden style guide: shape statistics and two templates from reference stories
- Actor guide: the catalog's actors as the source of truth for roles
- Extraction targets: target size, catalog counts and learned patterns
"""

from collections import Counter

from storyforge.models import ExpectedStory, FunctionalityCatalog

GOLDEN_TOP_ROLES = 5
GOLDEN_TOP_SECTIONS = 6
GOLDEN_TEMPLATES = 2
HUMAN_FEEDBACK_GUIDE_LINES = 20


def _ranked(counter: Counter, limit: int) -> str:
    return ", ".join(f"{key} ({count})" for key, count in counter.most_common(limit)) or "n/a"


def notes_sections_from_text(notes: str) -> list[str]:
    """Section names from flattened notes: top-level ``- `` lines.

    Lines that read like an acceptance criterion (``dado ...``) are skipped.
    """
    sections = []
    for line in notes.splitlines():
        if not line.startswith("- "):
            continue
        section = line[2:].strip()
        if section and not section.lower().startswith("dado "):
            sections.append(section)
    return sections


def build_golden_style_guide(stories: list[ExpectedStory]) -> str:
    """Summarize reference stories as a shape guide; empty if there are none."""
    if not stories:
        return ""

    roles = Counter(s.role.strip() for s in stories if s.role.strip())
    sections: Counter = Counter()
    for story in stories:
        sections.update(notes_sections_from_text(story.notes_hu))
    avg_ac = sum(len(s.acceptance_criteria) for s in stories) / len(stories)

    templates = []
    for i, story in enumerate(stories[:GOLDEN_TEMPLATES], start=1):
        sample = " | ".join(story.acceptance_criteria[:3])
        templates.append(
            f"[template_{i}]\n"
            f"TITLE: {story.title}\n"
            f"ROLE: {story.role}\n"
            f"WANT: {story.want}\n"
            f"SO THAT: {story.so_that}\n"
            f"AC_SAMPLE: {sample}"
        )

    lines = [
        "REFERENCE PATTERNS (quality and shape target; never reuse literal content):",
        f"- reference_story_count: {len(stories)}",
        f"- avg_acceptance_criteria_per_story: {avg_ac:.1f}",
        f"- frequent_roles: {_ranked(roles, GOLDEN_TOP_ROLES)}",
        f"- frequent_notes_sections: {_ranked(sections, GOLDEN_TOP_SECTIONS)}",
        "- criteria_format: DADO/CUANDO/ENTONCES with error and edge-case scenarios",
        "",
        "SHAPE TEMPLATES:",
        "\n\n".join(templates),
    ]
    return "\n".join(lines).strip()


def build_actor_guide(catalog: FunctionalityCatalog) -> str:
    if not catalog.actors:
        return "No explicit actors; infer them from the functional context."

    lines = []
    for i, actor in enumerate(catalog.actors, start=1):
        name = actor.name.strip()
        description = actor.description.strip()
        lines.append(f"- actor_{i}: {name}" + (f" | {description}" if description else ""))
    return "\n".join(lines)


def build_extraction_targets(
    catalog: FunctionalityCatalog,
    target_stories: int,
    learning_guide: str = "",
    human_feedback_guide: str = "",
) -> str:
    lines = [
        f"- min_target_stories: {target_stories}",
        f"- functionalities_detected: {len(catalog.functionalities)}",
        f"- actors_detected: {len(catalog.actors)}",
        f"- categories_detected: {', '.join(catalog.categories) or 'n/a'}",
        "- coverage_rule: map one story per atomic functionality; group only when testability is kept.",
    ]
    if learning_guide.strip():
        lines.append("- learned_patterns:")
        lines.extend(learning_guide.splitlines())
    if human_feedback_guide.strip():
        lines.append("- relevant_human_feedback:")
        lines.extend(human_feedback_guide.splitlines()[:HUMAN_FEEDBACK_GUIDE_LINES])
    return "\n".join(lines)
