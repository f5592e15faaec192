"""
Calling engine package.

Keep package import side-effects to a minimum to avoid circular imports.
Do not import factory/runners here.
"""

__all__ = [
    "interface",
    "local",
    "factory",
    "http_runner",
    "mock_runner",
]
