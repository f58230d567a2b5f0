"""Domain types for action tokens (values, kinds, errors)."""
