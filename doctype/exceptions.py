"""Custom exception hierarchy for doctype."""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(str, Enum):
    """Standardized error codes carried by every doctype exception."""

    # Map errors
    ENTRY_NOT_FOUND = "ENTRY_NOT_FOUND"
    DUPLICATE_ENTRY_ID = "DUPLICATE_ENTRY_ID"
    MAP_LOAD_FAILED = "MAP_LOAD_FAILED"

    # Anchor / injection errors
    ANCHOR_NOT_FOUND = "ANCHOR_NOT_FOUND"

    # Configuration errors
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


class DoctypeError(Exception):
    """
    Base exception for all doctype errors.

    Provides structured errors with:
    - Human-readable message
    - Machine-readable error code
    - Optional additional details
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for JSON log output."""
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


class NotFoundError(DoctypeError):
    """Map entry not found."""

    def __init__(self, entry_id: str):
        super().__init__(
            f"Map entry not found: {entry_id}",
            ErrorCode.ENTRY_NOT_FOUND,
            details={"id": entry_id}
        )


class DuplicateIdError(DoctypeError):
    """A map entry with this id already exists."""

    def __init__(self, entry_id: str):
        super().__init__(
            f"Map entry already exists: {entry_id}",
            ErrorCode.DUPLICATE_ENTRY_ID,
            details={"id": entry_id}
        )


class AnchorNotFoundError(DoctypeError):
    """Anchor id not present in the target markdown file."""

    def __init__(self, anchor_id: str, file_path: str = ""):
        super().__init__(
            f"Anchor {anchor_id} not found in {file_path or 'document'}",
            ErrorCode.ANCHOR_NOT_FOUND,
            details={"id": anchor_id, "file_path": file_path}
        )


class ConfigurationError(DoctypeError):
    """Project configuration is missing or invalid. Fatal for a command."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(
            message,
            ErrorCode.CONFIGURATION_ERROR,
            details={"path": path} if path else {}
        )


class MapLoadError(ConfigurationError):
    """The anchor map file is missing or unreadable."""

    def __init__(self, message: str, path: str):
        super().__init__(message, path=path)
        self.error_code = ErrorCode.MAP_LOAD_FAILED
