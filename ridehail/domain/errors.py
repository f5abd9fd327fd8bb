"""
Error taxonomy surfaced by the state machine and its collaborators.

Every error carries a stable ``code`` and the HTTP status the API layer
renders it with.  ``DispatchDegraded`` is never raised to a command
caller; the dispatcher records it per recipient and logs it.
"""

from __future__ import annotations


class DomainError(Exception):
    code = "domain_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidTransition(DomainError):
    """The entity is in a state that does not allow the command."""

    code = "invalid_transition"
    status_code = 409


class Unauthorized(DomainError):
    """The actor is not a counterpart of the entity."""

    code = "unauthorized"
    status_code = 403


class Conflict(DomainError):
    """A conditional update matched zero rows: the race was lost."""

    code = "conflict"
    status_code = 409


class NotFound(DomainError):
    code = "not_found"
    status_code = 404


class StorageUnavailable(DomainError):
    """The ledger did not answer within its retry budget.

    The command is *not* assumed to have applied.
    """

    code = "storage_unavailable"
    status_code = 503


class DispatchDegraded(DomainError):
    """Record persisted, but neither delivery channel reached the recipient."""

    code = "dispatch_degraded"
    status_code = 202


class AuthError(DomainError):
    code = "auth_error"
    status_code = 401
