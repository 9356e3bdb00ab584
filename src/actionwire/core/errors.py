"""Error types raised and captured by the dispatch runtime.

Every error shares :class:`ActionwireError`, which carries a machine-readable
code plus a human-readable message and serializes consistently through
:meth:`ActionwireError.to_dict`. Registration errors are the only ones meant to
escape to callers; everything else is captured by the pipeline and turned into
an ``@@ERROR`` action.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------


class ErrorCode:
    """Constants for error codes carried by runtime errors."""

    # Registration errors
    DUPLICATE_NAMESPACE = "duplicate_namespace"
    RESERVED_ACTION_TYPE = "reserved_action_type"
    INVALID_HANDLER = "invalid_handler"
    MODULE_ALREADY_REGISTERED = "module_already_registered"

    # Dispatch errors
    LOADING_UNDERFLOW = "loading_underflow"
    SCHEDULER_UNAVAILABLE = "scheduler_unavailable"
    INVALID_BOUND_ARGUMENT = "invalid_bound_argument"

    # Collaborator errors
    API_ERROR = "api_error"
    NETWORK_ERROR = "network_error"
    VIEW_LIFECYCLE = "view_lifecycle"

    # General errors
    INTERNAL_ERROR = "internal_error"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------


@dataclass(eq=False)
class ActionwireError(Exception):
    """Base exception class for all runtime errors.

    Attributes:
        code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
    """

    code: str = ErrorCode.INTERNAL_ERROR
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    severity: ClassVar[str] = "error"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dictionary."""
        result: dict[str, Any] = {
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


# -----------------------------------------------------------------------------
# Registration Errors
# -----------------------------------------------------------------------------


@dataclass(eq=False)
class RegistrationError(ActionwireError):
    """Raised when a handler or module cannot be registered.

    Registration happens at startup, so these errors abort module
    initialization instead of being converted into actions.
    """

    code: str = field(default=ErrorCode.INVALID_HANDLER)
    message: str = field(default="Handler registration failed")


@dataclass(eq=False)
class DuplicateNamespaceError(RegistrationError):
    """Raised when a namespace is already claimed by another handler set."""

    code: str = field(default=ErrorCode.DUPLICATE_NAMESPACE)
    message: str = field(default="Namespace is already claimed")

    namespace: str | None = field(default=None)
    owner: str | None = field(default=None)
    claimed_by: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.namespace is not None:
            result["namespace"] = self.namespace
        if self.claimed_by is not None:
            result["claimed_by"] = self.claimed_by
        return result


@dataclass(eq=False)
class ReservedActionTypeError(RegistrationError):
    """Raised when a handler targets an action type owned by the runtime."""

    code: str = field(default=ErrorCode.RESERVED_ACTION_TYPE)
    message: str = field(default="Action type is reserved by the runtime")

    action_type: str | None = field(default=None)


@dataclass(eq=False)
class InvalidHandlerError(RegistrationError):
    """Raised when a handler descriptor is malformed."""

    code: str = field(default=ErrorCode.INVALID_HANDLER)
    message: str = field(default="Handler descriptor is invalid")


# -----------------------------------------------------------------------------
# Dispatch Errors
# -----------------------------------------------------------------------------


@dataclass(eq=False)
class LoadingUnderflowError(ActionwireError):
    """Raised when a loading counter would drop below zero."""

    code: str = field(default=ErrorCode.LOADING_UNDERFLOW)
    message: str = field(default="Loading counter cannot go below zero")

    key: str | None = field(default=None)
    current: int = field(default=0)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["key"] = self.key
        result["current"] = self.current
        return result


@dataclass(eq=False)
class SchedulerUnavailableError(ActionwireError):
    """Raised when async handlers match but no event loop can run them."""

    code: str = field(default=ErrorCode.SCHEDULER_UNAVAILABLE)
    message: str = field(default="No event loop is available to run effects")

    action_type: str | None = field(default=None)


@dataclass(eq=False)
class InvalidBoundArgumentError(ActionwireError, TypeError):
    """Raised when a callback is bound to arguments that cannot be memoized."""

    code: str = field(default=ErrorCode.INVALID_BOUND_ARGUMENT)
    message: str = field(default="Bound arguments must be str, int, float, bool or None")


# -----------------------------------------------------------------------------
# Collaborator Errors
# -----------------------------------------------------------------------------


@dataclass(eq=False)
class APIException(ActionwireError):
    """The server answered with an error status.

    Attributes:
        status_code: HTTP status returned by the server.
        request_url: URL of the failed request.
        response_data: Decoded response body, if any.
        error_id: Server-side error identifier, if the body carried one.
        error_code: Server-side error code, if the body carried one.
    """

    code: str = field(default=ErrorCode.API_ERROR)
    message: str = field(default="[No response message]")

    status_code: int | None = field(default=None)
    request_url: str = field(default="-")
    response_data: Any = field(default=None)
    error_id: str | None = field(default=None)
    error_code: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["status_code"] = self.status_code
        result["request_url"] = self.request_url
        if self.error_id is not None:
            result["error_id"] = self.error_id
        if self.error_code is not None:
            result["error_code"] = self.error_code
        return result


@dataclass(eq=False)
class NetworkConnectionException(ActionwireError):
    """The request never produced a usable server answer."""

    code: str = field(default=ErrorCode.NETWORK_ERROR)
    message: str = field(default="Un-categorized network error")

    request_url: str = field(default="[No URL retrieved]")
    original_error: BaseException | None = field(default=None, repr=False)

    @property
    def status_code(self) -> int | None:
        return None

    @property
    def response_data(self) -> Any:
        return None

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["request_url"] = self.request_url
        return result


@dataclass(eq=False)
class ViewLifecycleException(ActionwireError):
    """A view failed while rendering."""

    code: str = field(default=ErrorCode.VIEW_LIFECYCLE)
    message: str = field(default="Render failed")

    stack: str | None = field(default=None, repr=False)
    component_stack: str = field(default="")


__all__ = [
    "ErrorCode",
    "ActionwireError",
    "RegistrationError",
    "DuplicateNamespaceError",
    "ReservedActionTypeError",
    "InvalidHandlerError",
    "LoadingUnderflowError",
    "SchedulerUnavailableError",
    "InvalidBoundArgumentError",
    "APIException",
    "NetworkConnectionException",
    "ViewLifecycleException",
]
