"""
Data Models
===========

Pydantic models for render options, rendered documents and API envelopes.
"""
