"""Atomic components (functional core)."""
