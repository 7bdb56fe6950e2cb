"""Exceptions raised at the adapter boundary.

Every failure aborts the whole call. Input and configuration errors are raised before the engine runs; engine errors carry the engine's own message.
"""

from __future__ import annotations


class SCMError(Exception):
    """Base class for errors raised by the adapter."""


class InputShapeError(SCMError, ValueError):
    """The grouped input data is missing or malformed."""


class ConfigurationError(SCMError, ValueError):
    """A recognised option has a malformed or out-of-domain value."""


class EngineError(SCMError, RuntimeError):
    """The clustering engine failed, or returned an inconsistent result."""
