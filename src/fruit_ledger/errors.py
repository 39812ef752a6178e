"""Exception hierarchy raised by the Fruit Ledger core."""

from __future__ import annotations


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a ledger rule."""


class ValidationError(BusinessRuleViolation, ValueError):
    """Raised when a required field is missing or malformed."""


class NotFoundError(BusinessRuleViolation):
    """Raised when a referenced supplier, container, or other record is unknown."""


class EmptyAllocationError(BusinessRuleViolation):
    """Raised when a payment would not clear any outstanding transaction."""


__all__ = [
    "BusinessRuleViolation",
    "ValidationError",
    "NotFoundError",
    "EmptyAllocationError",
]
