"""
Test Helpers
============

Small factories shared by fixtures and tests.
"""

from pdf_service.config.settings import Settings


def make_settings(**overrides) -> Settings:
    """Settings suitable for tests: quiet logs, no self-termination."""
    values = {
        "environment": "testing",
        "exit_on_engine_failure": False,
        "log_level": "DEBUG",
    }
    values.update(overrides)
    return Settings(**values)
