"""Top-level commands run under the supervisor."""
