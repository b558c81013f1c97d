"""The HTTP server that answers authorization checks from the cache."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from werkzeug.serving import run_simple
from werkzeug.wrappers import Request, Response

from .errors import InvalidParameterError, InvalidRequestError, ServiceError
from .middleware import LoggingMiddleware
from .repository import Repository

API_VERSION = "v2"
OP_ANY_OF = "anyOf"
OP_ALL_OF = "allOf"
RESULT_AUTHORIZED = "Authorized"
RESULT_NOT_AUTHORIZED = "Not Authorized"

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class WarrantSpec:
    """One warrant to check: an object, a relation and a subject."""

    object_type: str
    object_id: str
    relation: str
    subject_type: str
    subject_id: str
    subject_relation: str = ""
    policy: str = ""

    def __str__(self) -> str:
        subject = f"{self.subject_type}:{self.subject_id}"
        if self.subject_relation:
            subject = f"{subject}#{self.subject_relation}"
        text = f"{self.object_type}:{self.object_id}#{self.relation}@{subject}"
        if self.policy:
            text = f"{text}[{self.policy}]"
        return text


@dataclass(frozen=True)
class CheckRequest:
    """A request to check one or more warrants combined by ``op``."""

    op: str
    warrants: tuple[WarrantSpec, ...]


def _string_field(data: dict, name: str, required: bool = True) -> str:
    value = data.get(name)
    if value is None or value == "":
        if required:
            raise InvalidParameterError(name, "must be provided")
        return ""
    if not isinstance(value, str):
        raise InvalidParameterError(name, "must be a string")
    return value


def parse_warrant(data: Any) -> WarrantSpec:
    """Build a :class:`WarrantSpec` from its JSON object form."""
    if not isinstance(data, dict):
        raise InvalidParameterError("warrants", "must be a list of warrant objects")
    subject = data.get("subject")
    if not isinstance(subject, dict):
        raise InvalidParameterError("subject", "must be provided")
    return WarrantSpec(
        object_type=_string_field(data, "objectType"),
        object_id=_string_field(data, "objectId"),
        relation=_string_field(data, "relation"),
        subject_type=_string_field(subject, "objectType"),
        subject_id=_string_field(subject, "objectId"),
        subject_relation=_string_field(subject, "relation", required=False),
        policy=_string_field(data, "policy", required=False),
    )


def parse_check_request(body: Any) -> CheckRequest:
    """Parse a JSON request body into a :class:`CheckRequest`."""
    try:
        data = json.loads(body)
    except ValueError as exc:
        raise InvalidRequestError("Invalid request body") from exc
    if not isinstance(data, dict):
        raise InvalidRequestError("Invalid request body")
    op = data.get("op") or ""
    if not isinstance(op, str):
        raise InvalidParameterError("op", "must be a string")
    warrants = data.get("warrants")
    if not isinstance(warrants, list) or not warrants:
        raise InvalidParameterError("warrants", "must include at least one warrant")
    return CheckRequest(op=op, warrants=tuple(parse_warrant(w) for w in warrants))


@dataclass
class ServerConfig:
    repository: Repository
    port: int = 0
    api_key: str = field(default="", repr=False)


def _json_response(body: Any, status: int = 200) -> Response:
    return Response(json.dumps(body), status=status, mimetype="application/json")


def _error_response(error: Exception) -> Response:
    if isinstance(error, ServiceError):
        return _json_response(error.to_dict(), error.status)
    _log.error("error handling request: %s", error)
    return _json_response(
        {"code": "internal_error", "message": "Internal server error"}, 500
    )


class Server:
    """Serves health and authorization-check endpoints over WSGI."""

    def __init__(self, config: ServerConfig) -> None:
        self.config = config
        handlers: dict[str, Callable[[Request], Response]] = {
            "/health": self.health,
            f"/{API_VERSION}/authorize": self.check,
            f"/{API_VERSION}/check": self.check,
        }
        self._apps = {
            path: LoggingMiddleware(self._endpoint(handler))
            for path, handler in handlers.items()
        }

    @staticmethod
    def _endpoint(handler: Callable[[Request], Response]) -> Callable:
        def app(environ, start_response):
            response = handler(Request(environ))
            return response(environ, start_response)

        return app

    def health(self, request: Request) -> Response:
        if request.method == "POST":
            return Response(status=404)
        if self.config.repository.is_ready():
            return Response(status=200)
        return Response(status=500)

    def check(self, request: Request) -> Response:
        if request.method != "POST":
            return Response(status=404)
        repository = self.config.repository
        try:
            if not repository.is_ready():
                from .errors import CacheNotReady

                raise CacheNotReady()
            spec = parse_check_request(request.get_data())
            keys = [str(w) for w in spec.warrants]
            if spec.op == OP_ANY_OF:
                authorized = any(repository.get(k) for k in keys)
            elif spec.op == OP_ALL_OF:
                authorized = all(repository.get(k) for k in keys)
            else:
                if spec.op:
                    raise InvalidParameterError("op", "must be one of anyOf or allOf")
                if len(keys) > 1:
                    raise InvalidParameterError(
                        "op", "must include operator when including multiple warrants"
                    )
                authorized = repository.get(keys[0])
        except Exception as exc:  # every failure becomes an error response
            return _error_response(exc)

        if authorized:
            return _json_response({"code": 200, "result": RESULT_AUTHORIZED})
        return _json_response({"code": 403, "result": RESULT_NOT_AUTHORIZED})

    def wsgi_app(self, environ: dict, start_response: Callable):
        app = self._apps.get(environ.get("PATH_INFO", ""))
        if app is None:
            response = Response("404 page not found\n", status=404, mimetype="text/plain")
            return response(environ, start_response)
        return app(environ, start_response)

    def __call__(self, environ: dict, start_response: Callable):
        return self.wsgi_app(environ, start_response)

    def run(self) -> None:
        """Serve requests on the configured port until stopped."""
        _log.info("Edge agent ready to serve authz requests on port %d", self.config.port)
        run_simple("0.0.0.0", self.config.port, self, threaded=True)