"""
Error types for the AppData server.

Every failure in the persistence core is raised as a subclass of
AppDataError so the boundary layer can translate it into a
caller-visible result without inspecting messages:

- NotFoundError: Unknown identifier or missing configuration record
- DuplicateRegistrationError: Two entity types claim the same store name
- DecodingError / ValidationError: Malformed payload from outside
- EncodingError: Stored value could not be re-encoded for the boundary
- StoreError: Failure inside the key-value store
- KeyOverflowError: Key space exhausted while scanning
- InvalidKeyError: Key outside the unsigned 32-bit range
- AlreadyInitializedError: A process-wide singleton was initialized twice

Invariants:
    - All errors inherit from AppDataError
    - Each error carries a stable code for programmatic handling
    - No operation turns a failure into an empty/default success
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class AppDataError(Exception):
    """Base exception for all AppData errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    code = "APPDATA_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or type(self).code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON error body returned across the boundary."""
        return {
            "error": self.message,
            "error_code": self.code,
            "details": self.details,
        }


class NotFoundError(AppDataError):
    """Identifier is not registered, or a required record is absent."""

    code = "NOT_FOUND"

    def __init__(self, message: str, id: Optional[str] = None) -> None:
        super().__init__(message, details={"id": id})
        self.id = id


class DuplicateRegistrationError(AppDataError):
    """A second entity type tried to register an existing store name.

    Raised only during startup. The registry keeps the first entry.
    """

    code = "DUPLICATE_REGISTRATION"

    def __init__(self, id: str, existing_type: str, new_type: str) -> None:
        super().__init__(
            f"AppData already registered: id={id}, type={existing_type}, new_type={new_type}",
            details={"id": id, "existing_type": existing_type, "new_type": new_type},
        )
        self.id = id
        self.existing_type = existing_type
        self.new_type = new_type


class DecodingError(AppDataError):
    """Payload could not be decoded into the target entity type.

    Attributes:
        errors: Individual validation messages, one per offending field
    """

    code = "DECODING_ERROR"

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        super().__init__(message, details={"errors": errors or []})
        self.errors = errors or []


class ValidationError(DecodingError):
    """Configuration value supplied by a caller is invalid."""

    code = "VALIDATION_ERROR"


class EncodingError(AppDataError):
    """A stored value could not be encoded for the boundary."""

    code = "ENCODING_ERROR"


class StoreError(AppDataError):
    """The underlying key-value store failed.

    Not retried here; retry policy belongs to whoever owns the fault.
    """

    code = "STORE_ERROR"


class KeyOverflowError(AppDataError):
    """No free key exists between the start key and the key maximum."""

    code = "KEY_OVERFLOW"

    def __init__(self, message: str, start: Optional[int] = None) -> None:
        super().__init__(message, details={"start": start})
        self.start = start


class InvalidKeyError(AppDataError, ValueError):
    """Key is negative or larger than the key maximum."""

    code = "INVALID_KEY"


class AlreadyInitializedError(AppDataError):
    """A process-wide component was initialized twice."""

    code = "ALREADY_INITIALIZED"


def format_validation_errors(exc: Any) -> List[str]:
    """Flatten a pydantic ValidationError into readable strings.

    Args:
        exc: pydantic.ValidationError

    Returns:
        List of "loc: message" strings
    """
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "<root>"
        messages.append(f"{loc}: {err.get('msg', 'invalid')}")
    return messages
