"""Error taxonomy for quotation lifecycle operations."""

from __future__ import annotations


class LifecycleError(Exception):
    """Base class for all quotation lifecycle failures."""


class ValidationError(LifecycleError):
    """Caller-supplied data violates a precondition."""


class NotFoundError(LifecycleError):
    """Referenced record does not exist."""


class InvalidStateError(LifecycleError):
    """Operation is not legal for the record's current status."""


class StoreError(LifecycleError):
    """Underlying persistence call failed; the original error is ``__cause__``."""


class ConflictError(LifecycleError):
    """Row changed since it was read (optimistic concurrency check failed)."""
