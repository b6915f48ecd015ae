"""
PDF Rendering Service
=====================

A service that turns templates plus data, raw HTML, or a remote page into PDF
documents by driving a long-lived headless Chromium process.

This package provides:
- FastAPI REST endpoints for HTTP access
- Template resolution and caching with Jinja2
- Locale label resolution with default-locale fallback
- Browser lifecycle management and PDF rendering with Playwright
"""

__version__ = "1.0.0"
