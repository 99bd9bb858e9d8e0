"""
Common utilities for the campaign contract.

Modules:
- auth: per-invocation authorization capability and identity parsing
- errors: typed business errors and fatal invocation aborts
"""

__all__ = [
    "auth",
    "errors",
]
