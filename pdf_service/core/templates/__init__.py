"""Template resolution and caching."""
