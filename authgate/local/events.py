"""Payload format 1.0 proxy events, as API Gateway hands them to a function."""

import base64
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from authgate.exceptions import MalformedResponseError


@dataclass(frozen=True)
class HttpRequest:
    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, list[str]] = field(default_factory=dict)
    body: str | bytes | None = None
    source_ip: str = "127.0.0.1"


@dataclass(frozen=True)
class ProxyResponse:
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""
    is_base64_encoded: bool = False

    @classmethod
    def from_function(cls, result: Any) -> "ProxyResponse":  # noqa: ANN401
        if not isinstance(result, Mapping) or "statusCode" not in result:
            raise MalformedResponseError(
                f"Function response must be a mapping with statusCode, got {type(result).__name__}"
            )
        status = result["statusCode"]
        if not isinstance(status, int):
            raise MalformedResponseError(f"statusCode must be an integer, got {status!r}")
        body = result.get("body")
        if body is not None and not isinstance(body, str):
            raise MalformedResponseError("body must be a string")
        return cls(
            status_code=status,
            headers={str(k): str(v) for k, v in (result.get("headers") or {}).items()},
            body=body or "",
            is_base64_encoded=bool(result.get("isBase64Encoded", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"statusCode": self.status_code, "headers": dict(self.headers), "body": self.body}


def build_proxy_event(  # noqa: PLR0913
    request: HttpRequest,
    *,
    resource: str,
    path_parameters: Mapping[str, str] | None,
    stage: str,
    api_id: str,
    claims: Mapping[str, Any],
    account_id: str,
) -> dict[str, Any]:
    """Build a version 1.0 proxy event."""
    body = request.body
    is_base64 = isinstance(body, bytes)
    if is_base64:
        body = base64.b64encode(body).decode()

    query = {k: v for k, v in request.query.items() if v}
    now = time.time()
    return {
        "version": "1.0",
        "resource": resource,
        "path": f"/{stage}{request.path}",
        "httpMethod": request.method,
        "headers": dict(request.headers),
        "multiValueHeaders": {k: [v] for k, v in request.headers.items()},
        "queryStringParameters": {k: v[-1] for k, v in query.items()} or None,
        "multiValueQueryStringParameters": dict(query) or None,
        "pathParameters": dict(path_parameters) if path_parameters else None,
        "stageVariables": None,
        "requestContext": {
            "accountId": account_id,
            "apiId": api_id,
            # API Gateway passes JWT claims through as strings
            "authorizer": {"claims": {k: str(v) for k, v in claims.items()}, "scopes": None},
            "domainName": f"{api_id}.execute-api.amazonaws.com",
            "domainPrefix": api_id,
            "httpMethod": request.method,
            "identity": {"sourceIp": request.source_ip, "userAgent": _user_agent(request)},
            "path": f"/{stage}{request.path}",
            "protocol": "HTTP/1.1",
            "requestId": str(uuid.uuid4()),
            "requestTime": time.strftime("%d/%b/%Y:%H:%M:%S +0000", time.gmtime(now)),
            "requestTimeEpoch": int(now * 1000),
            "resourcePath": resource,
            "stage": stage,
        },
        "body": body,
        "isBase64Encoded": is_base64,
    }


def _user_agent(request: HttpRequest) -> str | None:
    return next((v for k, v in request.headers.items() if k.lower() == "user-agent"), None)
