"""Custom exceptions for Sideport.

Provides readable error messages and structured error handling.
"""

from typing import Optional, Any


class SideportError(Exception):
    """Base exception for all Sideport errors.

    Provides:
    - Human-readable message
    - Technical details for debugging
    - Suggested fixes when applicable
    """

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        suggestion: Optional[str] = None,
        cause: Optional[Exception] = None
    ):
        self.message = message
        self.details = details
        self.suggestion = suggestion
        self.cause = cause
        super().__init__(message)

    def format_user_friendly(self) -> str:
        """Format error for display to user."""
        parts = [f"error: {self.message}"]

        if self.details:
            parts.append(f"   Details: {self.details}")

        if self.suggestion:
            parts.append(f"   Try: {self.suggestion}")

        return "\n".join(parts)

    def __str__(self) -> str:
        return self.format_user_friendly()


class ConfigError(SideportError):
    """Settings-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion and config_key:
            suggestion = f"Check the '{config_key}' entry of the settings file"
        super().__init__(message, suggestion=suggestion, **kwargs)
        self.config_key = config_key


class AcquisitionFailure(SideportError):
    """Every capture strategy finished without producing a handle."""

    def __init__(
        self,
        message: str,
        errors: Optional[dict[str, Any]] = None,
        **kwargs
    ):
        details = kwargs.pop("details", None)
        if not details and errors:
            details = "; ".join(f"{name}: {error}" for name, error in errors.items())
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = "Start the bridge before the host page finishes loading"

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)
        self.errors = errors or {}


class NormalizationError(SideportError):
    """A descriptor or one of its entries could not be normalized."""

    def __init__(
        self,
        message: str,
        extension_id: Optional[str] = None,
        entry: Optional[Any] = None,
        **kwargs
    ):
        details = kwargs.pop("details", None)
        if not details:
            parts = []
            if extension_id is not None:
                parts.append(f"Extension: {extension_id!r}")
            if entry is not None:
                parts.append(f"Entry: {repr(entry)[:80]}")
            if parts:
                details = ", ".join(parts)

        super().__init__(message, details=details, **kwargs)
        self.extension_id = extension_id
        self.entry = entry


class InvalidIdError(NormalizationError):
    """Extension id does not match [a-z0-9]+."""

    def __init__(self, message: str = "Invalid extension id", **kwargs):
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = "Use only letters and digits in the extension id"
        super().__init__(message, suggestion=suggestion, **kwargs)


class MissingOpcodeError(NormalizationError):
    """A regular block entry has no opcode."""

    def __init__(self, message: str = "Missing opcode for block", **kwargs):
        super().__init__(message, **kwargs)


class EmptyMenuError(SideportError):
    """A dynamic menu resolver returned no items."""

    def __init__(self, message: str, menu_function: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", None)
        if not details and menu_function:
            details = f"Menu function: {menu_function}"
        super().__init__(message, details=details, **kwargs)
        self.menu_function = menu_function


class ScriptExecutionError(SideportError):
    """A sideloaded script raised before registering its extension."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        traceback: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", None)
        if not details and url:
            details = f"Script: {url}"

        super().__init__(message, details=details, **kwargs)
        self.url = url
        self.traceback = traceback


class FetchError(SideportError):
    """Extension source could not be fetched."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs
    ):
        details = kwargs.pop("details", None)
        if not details:
            parts = []
            if url:
                parts.append(f"URL: {url}")
            if status_code is not None:
                parts.append(f"Status: {status_code}")
            if parts:
                details = ", ".join(parts)

        super().__init__(message, details=details, **kwargs)
        self.url = url
        self.status_code = status_code


class MutationParseError(SideportError):
    """Embedded mutation JSON of a sideloaded block is malformed."""

    def __init__(
        self,
        message: str,
        opcode: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", None)
        if not details and opcode:
            details = f"Opcode: {opcode}"
        super().__init__(message, details=details, **kwargs)
        self.opcode = opcode


def format_exception_chain(error: Exception, max_depth: int = 5) -> str:
    """Format an exception chain for display.

    Handles nested exceptions and provides clean output.
    """
    lines = []
    current = error
    depth = 0

    while current and depth < max_depth:
        if isinstance(current, SideportError):
            lines.append(current.format_user_friendly())
        else:
            lines.append(f"error: {type(current).__name__}: {current}")

        current = getattr(current, "__cause__", None) or getattr(current, "cause", None)
        depth += 1

        if current:
            lines.append("   Caused by:")

    return "\n".join(lines)
