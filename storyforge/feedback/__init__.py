from storyforge.feedback.applier import FeedbackApplier, FeedbackResult, load_feedback_history
from storyforge.feedback.human_feedback import HumanFeedbackPack, load_human_feedback

__all__ = [
    "FeedbackApplier",
    "FeedbackResult",
    "HumanFeedbackPack",
    "load_feedback_history",
    "load_human_feedback",
]
