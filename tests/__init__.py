"""
Test Suite
==========

Unit tests for the core components and contract tests for the HTTP API.
"""
