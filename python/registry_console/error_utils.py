"""
Error types for the registry console, with actionable guidance for users.

The console distinguishes four kinds of failure:

- FetchError: the backend could not be reached, timed out, or answered a
  read with a non-success status.
- ValidationError: user input rejected at the UI boundary (empty candidate
  set at confirmation time, unusable threshold, overlapping action).
- PartialDeletionError: the backend removed some, but not all, of the
  requested images.
- FatalDeletionError: the backend removed nothing.

Deletion errors are only raised on request (DeletionOutcome.raise_for_status);
the delete-by-date workflow itself reports outcomes as values.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from registry_console.models import DeletionOutcome


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    CONNECTION = "connection"
    TIMEOUT = "timeout"
    BACKEND = "backend"
    VALIDATION = "validation"
    STATE = "state"
    DELETION = "deletion"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


class ActionableError(Exception):
    """Exception with actionable guidance for users"""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize actionable error

        Args:
            message: Primary error message (what the user sees first)
            category: Error category for classification
            suggestions: List of suggested fixes
            details: Additional context information
        """
        self.message = message
        self.category = category
        self.suggestions = suggestions or []
        self.details = details or {}
        super().__init__(message)

    def format_message(self) -> str:
        """Format the complete error message with suggestions"""
        lines = [f"❌ {self.message}"]

        if self.suggestions:
            lines.append("\n💡 Suggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        if self.details:
            lines.append("\n📋 Additional details:")
            for key, value in self.details.items():
                lines.append(f"   {key}: {value}")

        return "\n".join(lines)


class FetchError(ActionableError):
    """Network/transport failure, or a non-success answer from the backend"""

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None,
                 category: ErrorCategory = ErrorCategory.BACKEND, suggestions: Optional[List[str]] = None,
                 details: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self.url = url
        details = dict(details or {})
        if url:
            details.setdefault("url", url)
        if status_code is not None:
            details.setdefault("status_code", status_code)
        super().__init__(message, category=category, suggestions=suggestions, details=details)


class ValidationError(ActionableError):
    """User input rejected before it reaches an engine"""

    def __init__(self, message: str, suggestions: Optional[List[str]] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, category=ErrorCategory.VALIDATION, suggestions=suggestions, details=details)


class InvalidTransitionError(ActionableError):
    """A confirmation-gate transition was requested from the wrong state"""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot {requested} while the confirmation dialog is {current}",
            category=ErrorCategory.STATE,
            details={"state": current, "requested": requested},
        )


class DeletionError(ActionableError):
    """Base for errors derived from a recorded DeletionOutcome"""

    def __init__(self, message: str, outcome: "DeletionOutcome", suggestions: Optional[List[str]] = None):
        self.outcome = outcome
        super().__init__(
            message,
            category=ErrorCategory.DELETION,
            suggestions=suggestions,
            details={
                "repository": outcome.repository,
                "requested": outcome.requested,
                "deleted": outcome.deleted,
                "failed": outcome.failed_count,
            },
        )


class PartialDeletionError(DeletionError):
    """The backend reported per-digest failures alongside some deletions"""


class FatalDeletionError(DeletionError):
    """The backend deleted nothing"""


def create_backend_connection_error(url: str, error: Exception) -> FetchError:
    """Create actionable error for transport failures talking to the registry API"""
    error_str = str(error).lower()
    is_timeout = "timeout" in error_str or "timed out" in error_str or type(error).__name__.endswith("Timeout")

    suggestions = [
        f"Verify the registry API URL is correct: {url}",
        "Check that the registry API service is running",
        "Check network connectivity between the console and the registry API",
    ]

    if is_timeout:
        suggestions.insert(1, "The registry API may be under heavy load; try again shortly")
        suggestions.insert(2, "Increase api.timeout in config.yaml for large repositories")

    return FetchError(
        f"Could not reach the registry API at {url}: {error}",
        url=url,
        category=ErrorCategory.TIMEOUT if is_timeout else ErrorCategory.CONNECTION,
        suggestions=suggestions,
        details={"error_type": type(error).__name__},
    )


def create_threshold_error(value: Any) -> ValidationError:
    """Create actionable error for an age threshold that cannot be used"""
    return ValidationError(
        f"Age threshold must be a positive whole number of days, got: {value!r}",
        suggestions=["Enter the number of days since last pull, for example 30"],
        details={"value": value},
    )
