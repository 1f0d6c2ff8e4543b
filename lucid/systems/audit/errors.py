"""
Lucid — Audit Error Taxonomy

Remote failures are collapsed into the heuristic fallback at the analysis
engine boundary. InvalidUserInput is handled at the edit boundary.
Nothing here is fatal to the process.
"""

from __future__ import annotations


class LucidError(Exception):
    """Base for all Lucid errors."""


class RemoteError(LucidError):
    """The explainability service could not produce a usable result."""

    kind = "remote"


class RemoteTransportError(RemoteError):
    kind = "transport"


class RemoteQuotaError(RemoteError):
    kind = "quota"


class SchemaValidationError(RemoteError):
    kind = "schema"


class LocalParseError(RemoteError):
    kind = "parse"


class InvalidUserInput(LucidError):
    """Malformed decision typed into the manual editor."""
