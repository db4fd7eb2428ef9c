"""
Error types raised by loan operations.

ValidationError and NotFoundError subclass ValueError and LookupError so
callers that catch the builtin types keep working.
"""

from typing import Optional


class MicrofinanceError(Exception):
    """Base class for all domain errors"""


class ValidationError(MicrofinanceError, ValueError):
    """Missing or out-of-range input to a loan operation"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class NotFoundError(MicrofinanceError, LookupError):
    """Referenced record does not exist"""

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type.capitalize()} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id
