"""Errors that map onto HTTP error responses."""

from __future__ import annotations

from http import HTTPStatus

ERROR_CACHE_NOT_READY = "cache_not_ready"
ERROR_INVALID_PARAMETER = "invalid_parameter"
ERROR_INVALID_REQUEST = "invalid_request"


class ServiceError(Exception):
    """An error carrying a machine-readable code and an HTTP status."""

    def __init__(self, tag: str, code: str, status: int, message: str) -> None:
        super().__init__(message)
        self.tag = tag
        self.code = code
        self.status = int(status)
        self.message = message

    def to_dict(self) -> dict:
        """Return the JSON body sent to clients for this error."""
        return {"code": self.code, "message": self.message}


class CacheNotReady(ServiceError):
    """The edge cache has not finished loading."""

    def __init__(self) -> None:
        super().__init__(
            "CacheNotReady",
            ERROR_CACHE_NOT_READY,
            HTTPStatus.SERVICE_UNAVAILABLE,
            "Edge cache not ready",
        )


class InvalidParameterError(ServiceError):
    """A request parameter has an unacceptable value."""

    def __init__(self, parameter: str, message: str) -> None:
        super().__init__(
            "InvalidParameterError",
            ERROR_INVALID_PARAMETER,
            HTTPStatus.BAD_REQUEST,
            f"Invalid {parameter}: {message}",
        )
        self.parameter = parameter


class InvalidRequestError(ServiceError):
    """A request body could not be understood."""

    def __init__(self, message: str) -> None:
        super().__init__(
            "InvalidRequestError",
            ERROR_INVALID_REQUEST,
            HTTPStatus.BAD_REQUEST,
            message,
        )