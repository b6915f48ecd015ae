"""Locale label resolution and caching."""
