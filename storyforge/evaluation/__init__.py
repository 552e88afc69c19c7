"""Reference story loading and backlog evaluation."""
