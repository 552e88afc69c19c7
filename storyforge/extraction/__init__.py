"""Functionality catalog, story extraction loop, coverage and normalization."""
