import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from .errors import MalformedEventError
from .models import CanonicalRequest, CanonicalResponse, HeaderMap, QueryParams


def _header_value(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        values = [str(v) for v in value if v is not None]
        return ", ".join(values) if values else None
    return None if value is None else str(value)


def _body_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _query_value(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        value = value[-1] if value else None
    return None if value is None else str(value)


def _decode_base64(data: str, what: str) -> str:
    try:
        return base64.b64decode(data, validate=True).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError) as e:
        raise MalformedEventError(what, f"Malformed event: '{what}' is not valid base64: {e}") from e


@dataclass
class LambdaEvent:
    """The subset of an API-gateway style event the adapter consumes."""

    http_method: str
    headers: Dict[str, str] = field(default_factory=dict)
    query_string_parameters: Dict[str, Optional[str]] = field(default_factory=dict)
    body: Optional[str] = None
    path: str = ""
    is_base64_encoded: bool = False

    @classmethod
    def from_dict(cls, event: Mapping[str, Any]) -> "LambdaEvent":
        if not isinstance(event, Mapping):
            raise MalformedEventError("event", "Malformed event: expected a JSON object")
        method = event.get("httpMethod")
        if not isinstance(method, str):
            raise MalformedEventError("httpMethod")
        headers = event.get("headers")
        params = event.get("queryStringParameters")
        if not isinstance(headers, Mapping):
            headers = {}
        if not isinstance(params, Mapping):
            params = {}
        header_values = {}
        for name, value in headers.items():
            value = _header_value(value)
            # null headers are dropped, not stringified
            if value is not None:
                header_values[str(name)] = value
        return cls(
            http_method=method,
            headers=header_values,
            query_string_parameters={str(k): _query_value(v) for k, v in params.items()},
            body=_body_value(event.get("body")),
            path=str(event.get("path") or ""),
            is_base64_encoded=bool(event.get("isBase64Encoded", False)),
        )


class EventRequestAdapter:
    """Bridges an event-object invocation to the canonical model.

    ``httpMethod`` is the only required field; everything else degrades to
    empty or absent.
    """

    mode = "lambda"

    def __init__(self, event: Optional[Mapping[str, Any]] = None) -> None:
        self.event = event

    def decode(self, event: Optional[Mapping[str, Any]] = None) -> CanonicalRequest:
        raw = self.event if event is None else event
        if raw is None:
            raise MalformedEventError("event", "Malformed event: no event to decode")
        parsed = LambdaEvent.from_dict(raw)
        body = parsed.body
        if body is not None and parsed.is_base64_encoded:
            body = _decode_base64(body, "body")
        return CanonicalRequest(
            method=parsed.http_method,
            headers=HeaderMap((k.lower(), v) for k, v in parsed.headers.items()),
            query_params=QueryParams(parsed.query_string_parameters),
            body=body,
            path=parsed.path,
        )

    def encode(self, response: CanonicalResponse) -> Dict[str, Any]:
        return {
            "statusCode": response.status_code,
            "headers": {name: list(values) for name, values in response.headers.items()},
            "body": response.body,
        }


def build_event(request: CanonicalRequest) -> Dict[str, Any]:
    """Build the event a function running in lambda mode receives for ``request``."""
    return {
        "resource": request.path,
        "path": request.path,
        "httpMethod": request.method,
        "headers": dict(request.headers.items()),
        "queryStringParameters": dict(request.query_params.items()),
        "pathParameters": None,
        "stageVariables": None,
        "body": request.body,
        "isBase64Encoded": False,
    }


def parse_envelope(data: Mapping[str, Any]) -> CanonicalResponse:
    """Read a ``{statusCode, headers, body}`` envelope returned by a function."""
    if not isinstance(data, Mapping):
        raise MalformedEventError("statusCode", "Malformed response: expected a JSON object")
    status = data.get("statusCode")
    if isinstance(status, bool) or not isinstance(status, int):
        raise MalformedEventError("statusCode")
    body = data.get("body")
    if body is None:
        body = ""
    elif isinstance(body, (dict, list)):
        body = json.dumps(body)
    elif data.get("isBase64Encoded"):
        body = _decode_base64(str(body), "body")
    return CanonicalResponse(status, data.get("headers") or {}, str(body))
