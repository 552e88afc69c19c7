"""Storyforge: requirements documents to validated, traceable user-story backlogs."""

__version__ = "0.1.0"
