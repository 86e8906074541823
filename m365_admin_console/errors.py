"""
Error taxonomy shared by every console component.

  ValidationError        — operator input rejected; always re-prompted
  RemoteError            — base for failures reported by the remote service
  RemoteLookupError      — an object expected to exist was not found
  RemoteSubmissionError  — a create/start/export/permission call was rejected
"""

from __future__ import annotations


class ValidationError(ValueError):
    """Raised when operator input fails validation. Callers re-prompt."""
    pass


class RemoteError(Exception):
    """Raised when the remote administration service reports a failure."""
    pass


class RemoteLookupError(RemoteError):
    """Raised when a mailbox, search or folder cannot be found."""
    pass


class RemoteSubmissionError(RemoteError):
    """Raised when the remote service rejects a mutating call."""
    pass
