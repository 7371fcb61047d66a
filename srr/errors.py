from __future__ import annotations


class ReconcileError(Exception):
    """Base class for failures surfaced by a reconcile pass.

    Every subclass is retryable from the scheduler's point of view; the core
    never retries on its own.
    """

    def __init__(self, message: str, kind: str | None = None, namespace: str | None = None, name: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.namespace = namespace
        self.name = name


class NotFoundError(ReconcileError):
    pass


class ConflictError(ReconcileError):
    """Optimistic concurrency failure: the stored object changed under us."""


class AlreadyExistsError(ConflictError):
    pass


class OwnershipViolation(ReconcileError):
    pass


class SelectorResolutionError(ReconcileError):
    pass


class ReconcileTimeout(ReconcileError):
    pass
