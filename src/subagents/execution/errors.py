"""Exceptions raised by the execution engine."""

from __future__ import annotations


class InvalidParametersError(ValueError):
    """Raised before spawning when a request lacks an agent context or prompt."""
