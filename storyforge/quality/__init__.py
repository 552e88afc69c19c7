"""Generative validation, deterministic gating and hard constraints."""
