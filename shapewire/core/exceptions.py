"""
Shapewire - Custom Exceptions

This module defines the exception taxonomy shared by the protocol,
event-stream and endpoint layers.
"""

from typing import Any, Dict, Iterable, Optional


class ShapewireException(Exception):
    """Base exception for all Shapewire errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "SHAPEWIRE_ERROR"
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} (Code: {self.error_code}, Context: {self.context})"
        return f"{self.message} (Code: {self.error_code})"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": dict(self.context),
            "cause": str(self.__cause__) if self.__cause__ else None,
        }


class ConfigurationError(ShapewireException):
    """Raised for configuration and model-load defects.

    A shape with no registered (un)marshaller, an invalid partitions table or
    an invalid config file all land here. These are startup-time problems and
    are never wrapped by the marshalling layer.
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        shape_name: Optional[str] = None,
    ):
        context: Dict[str, Any] = {}
        if config_key:
            context["config_key"] = config_key
        if shape_name:
            context["shape_name"] = shape_name

        super().__init__(message, error_code="CONFIG_ERROR", context=context)


class MarshallingError(ShapewireException):
    """Raised when a request cannot be serialized."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        member: Optional[str] = None,
    ):
        context: Dict[str, Any] = {}
        if operation:
            context["operation"] = operation
        if member:
            context["member"] = member

        super().__init__(message, error_code="MARSHALLING_ERROR", context=context)
        self.operation = operation


class UnmarshallingError(ShapewireException):
    """Raised when a response body cannot be parsed."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        context: Dict[str, Any] = {}
        if operation:
            context["operation"] = operation
        if status_code is not None:
            context["status_code"] = status_code

        super().__init__(message, error_code="UNMARSHALLING_ERROR", context=context)
        self.operation = operation


class EventStreamError(UnmarshallingError):
    """Raised for an `error` frame received on an event stream."""

    def __init__(
        self,
        message: str,
        stream_error_code: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message, operation=operation)
        self.error_code = "EVENT_STREAM_ERROR"
        self.stream_error_code = stream_error_code
        if stream_error_code:
            self.context["stream_error_code"] = stream_error_code


class UnknownEventTypeError(ShapewireException):
    """Raised when an event name has no registered handler.

    Recoverable: stream loops report it and move on to the next frame.
    """

    def __init__(self, event_type: Optional[str], known_events: Optional[Iterable[str]] = None):
        self.event_type = event_type
        self.known_events = sorted(known_events or [])

        message = f"Unknown event type '{event_type}'"
        if self.known_events:
            message += f". Known events: {', '.join(self.known_events)}"

        super().__init__(
            message,
            error_code="UNKNOWN_EVENT_TYPE",
            context={"event_type": event_type},
        )


class ServiceError(ShapewireException):
    """A typed error returned by the remote service."""

    def __init__(
        self,
        error_code: str,
        error_message: str = "",
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        context: Dict[str, Any] = {}
        if status_code is not None:
            context["status_code"] = status_code
        if request_id:
            context["request_id"] = request_id
        if operation:
            context["operation"] = operation

        message = f"{error_code}: {error_message}" if error_message else error_code
        super().__init__(message, error_code=error_code, context=context)
        self.error_message = error_message
        self.status_code = status_code
        self.request_id = request_id
        self.operation = operation
