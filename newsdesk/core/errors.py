from __future__ import annotations


class NewsdeskError(Exception):
    """Base error for newsdesk."""


class IdempotencyKeyError(NewsdeskError):
    """Idempotency key is empty or too long."""


class IdempotencyInFlightError(NewsdeskError):
    """Idempotency key exists but its response has not been saved yet."""


class DeliveryError(NewsdeskError):
    """Newsletter delivery to a single recipient failed."""


class TransientDeliveryError(DeliveryError):
    """Email provider rejected or timed out; the attempt may be retried."""


class InvalidRecipientError(DeliveryError):
    """Stored subscriber address is malformed; never retried."""


class IssueNotFoundError(NewsdeskError):
    """Delivery task references a newsletter issue that no longer exists."""


class DatabaseError(NewsdeskError):
    """Database layer failure."""
