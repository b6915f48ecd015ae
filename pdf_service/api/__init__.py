"""
API Module
==========

FastAPI application, middleware and route definitions.
"""
