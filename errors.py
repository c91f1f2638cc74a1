"""
Error Taxonomy
==============
Exceptions raised by the ordering services.

The HTTP layer maps each class to a status code:
- ValidationError      -> 400
- AuthenticationError  -> 401
- NotFoundError        -> 404
- PersistenceError     -> 500
"""

from typing import Optional


class OrderingError(Exception):
    """Base class for all service errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(OrderingError):
    """Missing field, empty cart, duplicate phone/email, bad reference."""

    status_code = 400

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason or "invalid"


class StateTransitionError(ValidationError):
    """Raised when an order status change is not allowed."""

    def __init__(self, message: str):
        super().__init__(message, reason="invalid_transition")


class NotFoundError(OrderingError):
    """Unknown identifier on read, update or delete."""

    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class PersistenceError(OrderingError):
    """Backend or network failure in the persistence service."""

    status_code = 500


class AuthenticationError(OrderingError):
    """Missing or wrong admin credentials."""

    status_code = 401
