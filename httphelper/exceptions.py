"""
Shared exception classes used across the codebase.

Transfer failures (timeouts, DNS, TLS, refused connections) are not
exceptions: the session reports them through its error getters. Only
mistakes made while configuring a session raise.
"""

from __future__ import annotations


class ConfigurationError(ValueError):
    """
    Raised when a session cannot be configured as requested.

    Examples:
        - The engine rejects an option value
        - A certificate bundle or other required file is missing
        - A bulk import payload is empty
        - An unknown session parameter name is supplied
        - A POST body of the wrong shape (empty mapping, non-string keys)
    """

    pass


__all__ = [
    "ConfigurationError",
]
