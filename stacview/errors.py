"""
Exception types for stacview
"""

from typing import Optional


class StacViewError(Exception):
    """Base class for stacview errors"""

    pass


class InvalidGeometryError(StacViewError):
    """Raised when a drawn geometry is malformed or of an unsupported type"""

    pass


class FilterError(StacViewError):
    """Raised when filter input (e.g. a date) cannot be normalized"""

    pass


class TransportError(StacViewError):
    """Raised when a catalog request fails; the message is shown to the operator"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
