"""Errors shared by external collaborators."""

from __future__ import annotations


class CollaboratorError(RuntimeError):
    """Base class for failures talking to an external collaborator."""


class CapabilityUnavailableError(RuntimeError):
    """Raised when a workflow asks for a capability that is not configured."""


__all__ = ["CapabilityUnavailableError", "CollaboratorError"]
