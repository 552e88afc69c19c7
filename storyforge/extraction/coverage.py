"""Functionality coverage of a story set.

A functionality is covered when its best overlap against any story reaches
``COVERAGE_MATCH_THRESHOLD``. The worst uncovered functionalities feed the
gap-coverage prompt.
"""

from dataclasses import dataclass, field

from storyforge.config import COVERAGE_MATCH_THRESHOLD, GAP_COVERAGE_TOP_N
from storyforge.models import FunctionalityCatalog
from storyforge.similarity import join_text, overlap


def story_match_text(story: dict) -> str:
    """Title, want, soThat and acceptance criteria of a camelCase story dict."""
    criteria = story.get("acceptanceCriteria")
    return join_text(
        str(story.get("title") or ""),
        str(story.get("want") or ""),
        str(story.get("soThat") or ""),
        [str(c) for c in criteria] if isinstance(criteria, list) else None,
    )


@dataclass
class UncoveredFunctionality:
    id: str
    score: float
    action: str

    def to_dict(self) -> dict:
        return {"id": self.id, "score": self.score, "action": self.action}


@dataclass
class FunctionalityCoverage:
    total_functionalities: int = 0
    covered_functionalities: int = 0
    coverage: float = 0.0
    uncovered_top: list[UncoveredFunctionality] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "totalFunctionalities": self.total_functionalities,
            "coveredFunctionalities": self.covered_functionalities,
            "coverage": self.coverage,
            "uncoveredTop": [u.to_dict() for u in self.uncovered_top],
        }


def compute_functionality_coverage(
    catalog: FunctionalityCatalog,
    stories: list[dict],
    threshold: float = COVERAGE_MATCH_THRESHOLD,
    top_n: int = GAP_COVERAGE_TOP_N,
) -> FunctionalityCoverage:
    """Score every functionality against the stories.

    An empty catalog yields zero coverage.
    """
    functionalities = catalog.functionalities
    if not functionalities:
        return FunctionalityCoverage()

    story_texts = [story_match_text(s) for s in stories]
    covered = 0
    uncovered: list[UncoveredFunctionality] = []

    for functionality in functionalities:
        text = functionality.full_text
        best = max((overlap(text, s) for s in story_texts), default=0.0)
        if best >= threshold:
            covered += 1
        else:
            uncovered.append(
                UncoveredFunctionality(id=functionality.id, score=best, action=functionality.action)
            )

    uncovered.sort(key=lambda u: u.score)
    return FunctionalityCoverage(
        total_functionalities=len(functionalities),
        covered_functionalities=covered,
        coverage=covered / len(functionalities),
        uncovered_top=uncovered[:top_n],
    )
