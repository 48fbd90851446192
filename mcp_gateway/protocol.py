"""
MCP request/response envelopes.

Request:   {"id": <string|number>, "method": <string>, "params": {...}}
Response:  {"id": ..., "result": ...}
       or  {"id": ..., "error": {"code": <int>, "message": <string>, "data": {...}}}

A response carries either `result` or `error`, never both, and always echoes
the caller's id.
"""

from dataclasses import dataclass, field
from typing import Any

from .errors import GatewayError, InvalidRequestError


RequestId = str | int | float | None


def _valid_id(value: Any) -> bool:
    # bool is an int subclass but not a usable correlation id
    return isinstance(value, str | int | float) and not isinstance(value, bool)


@dataclass
class McpRequest:
    id: RequestId
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, body: Any) -> "McpRequest":
        """Validate a decoded request body.

        Raises:
            InvalidRequestError: If the envelope is malformed
        """
        if not isinstance(body, dict):
            raise InvalidRequestError("invalid request: body must be a JSON object")

        request_id = body.get("id")
        if not _valid_id(request_id):
            raise InvalidRequestError("invalid request: id must be a string or number")

        method = body.get("method")
        if not isinstance(method, str) or not method:
            raise InvalidRequestError("invalid request: method must be a non-empty string")

        params = body.get("params")
        if params is None:
            params = {}
        elif not isinstance(params, dict):
            raise InvalidRequestError("invalid request: params must be an object")

        return cls(id=request_id, method=method, params=params)


def request_id_of(body: Any) -> RequestId:
    """Best-effort id extraction for error responses to malformed requests."""
    if isinstance(body, dict) and _valid_id(body.get("id")):
        return body["id"]
    return None


@dataclass
class McpError:
    code: int
    message: str
    data: dict[str, Any] | None = None

    @classmethod
    def from_exception(cls, error: GatewayError, code: int) -> "McpError":
        return cls(code=code, message=error.message, data=error.to_dict())

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data:
            result["data"] = self.data
        return result


@dataclass
class McpResponse:
    id: RequestId
    result: Any = None
    error: McpError | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"id": self.id, "error": self.error.to_dict()}
        return {"id": self.id, "result": self.result}
