from typing import Any, Dict, Optional


class AppException(Exception):
    """Base application exception with an optional structured context."""

    def __init__(self, message: str = "", context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ValidationError(AppException):
    """Invalid argument passed to a service or store."""

    pass


class StorageError(AppException):
    """Persistence backend could not complete an operation."""

    pass
