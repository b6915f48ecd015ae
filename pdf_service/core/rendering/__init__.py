"""
Rendering Module
===============

PDF creation with browser automation.

Components:
- engine: Owns the shared Chromium process and per-request page lifecycles
"""
