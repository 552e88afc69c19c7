from storyforge.learning.store import LearningProfile, LearningStore, LearningUpdate

__all__ = ["LearningProfile", "LearningStore", "LearningUpdate"]
