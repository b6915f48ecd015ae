"""
Core Module
===========

Business logic for document generation.

Components:
- errors: Error taxonomy shared by every component
- locales: Locale label loading with fallback
- templates: Template resolution, compilation and caching
- rendering: Browser lifecycle and PDF rendering
- orchestrator: Composition of the above per request
"""
