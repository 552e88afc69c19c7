from storyforge.runs.registry import RunFeedbackSummary, RunRecord, RunRegistry

__all__ = ["RunFeedbackSummary", "RunRecord", "RunRegistry"]
