from __future__ import annotations

from nowbench.util.core import ReadableException

__all__ = [
    "BenchmarkError",
    "ValidationError",
    "ConfigurationError",
    "ExecutionError",
    "ServiceError",
    "AuthFailedError",
    "NetworkError",
    "TokenRefreshFailedError",
    "RequestFailedError",
    "ATTEMPT_ERRORS",
    "UNIT_SETUP_ERRORS",
]


class BenchmarkError(ReadableException):
    code = "BENCHMARK_ERROR"
    friendly_message = "The benchmark could not complete this step."

    def user_message(self) -> str:
        return f"{self.friendly_message} ({self.message})"


class ValidationError(BenchmarkError):
    """
    A scenario or request descriptor failed validation.
    ===================================================

    Never retried. ``errors`` holds the individual field-level problems as
    ``(field, message)`` pairs.
    """

    code = "VALIDATION"
    friendly_message = "The scenario is not valid."

    def __init__(self, message, errors=(), cause=None):
        super().__init__(message, cause)
        self.errors = tuple(errors)

    def __str__(self):
        if not self.errors:
            return super().__str__()
        details = "; ".join(f"{field}: {problem}" for field, problem in self.errors)
        return f"{self.message}: {details}"

    def user_message(self) -> str:
        return str(self)


class ConfigurationError(BenchmarkError):
    code = "CONFIGURATION"
    friendly_message = "The benchmark configuration is not valid."

    def user_message(self) -> str:
        return str(self)


class ExecutionError(BenchmarkError):
    code = "EXECUTION"
    friendly_message = "The benchmark unit could not be executed."


class ServiceError(BenchmarkError):
    """Base class for failures of a single outbound call."""

    code = "SERVICE_ERROR"
    friendly_message = "The request to the instance failed."

    def __init__(self, message, status_code=None, cause=None):
        super().__init__(message, cause)
        self.status_code = status_code


class AuthFailedError(ServiceError):
    code = "AUTH_FAILED"
    friendly_message = "Authentication failed. Please check your credentials."


class NetworkError(ServiceError):
    code = "NETWORK_ERROR"
    friendly_message = "Network error occurred. Please check your connection."


class TokenRefreshFailedError(ServiceError):
    code = "TOKEN_FETCH_FAILED"
    friendly_message = "Unable to authenticate with the instance. Please check your session."


class RequestFailedError(ServiceError):
    code = "REQUEST_FAILED"
    friendly_message = "The instance rejected the request."


# Absorbed per attempt by the trial runner.
ATTEMPT_ERRORS = (ServiceError,)

# Fail a whole unit without touching the running totals.
UNIT_SETUP_ERRORS = (ValidationError, ConfigurationError, ExecutionError)
