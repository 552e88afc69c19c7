"""Post-hoc business thresholds for a finished run."""

from dataclasses import dataclass, field

from storyforge.config import HardConstraintsMode, PipelineSettings


@dataclass
class HardConstraintsResult:
    mode: HardConstraintsMode
    passed: bool
    violations: list[str] = field(default_factory=list)
    thresholds: dict = field(default_factory=dict)
    values: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "passed": self.passed,
            "violations": self.violations,
            "thresholds": self.thresholds,
            "values": self.values,
        }


def evaluate_hard_constraints(
    settings: PipelineSettings,
    generated_count: int,
    target_count: int,
    validation_score: float,
    quality_score: float,
    functionality_coverage: float,
) -> HardConstraintsResult:
    """Check story count, validation score, quality score and coverage."""
    violations = []
    if generated_count < target_count:
        violations.append(f"stories {generated_count}/{target_count}")
    if validation_score < settings.min_validation_score:
        violations.append(f"validation_score {validation_score}<{settings.min_validation_score}")
    if quality_score < settings.min_quality_score:
        violations.append(f"quality_score {quality_score}<{settings.min_quality_score}")
    if functionality_coverage < settings.min_functionality_coverage:
        violations.append(
            f"functionality_coverage {functionality_coverage:.3f}<{settings.min_functionality_coverage}"
        )

    return HardConstraintsResult(
        mode=settings.hard_constraints_mode,
        passed=not violations,
        violations=violations,
        thresholds={
            "minStories": target_count,
            "minValidationScore": settings.min_validation_score,
            "minQualityScore": settings.min_quality_score,
            "minFunctionalityCoverage": settings.min_functionality_coverage,
        },
        values={
            "stories": generated_count,
            "validationScore": validation_score,
            "qualityScore": quality_score,
            "functionalityCoverage": functionality_coverage,
        },
    )
