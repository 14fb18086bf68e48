import json
import logging
import re
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, final
from urllib.parse import parse_qs, urlsplit

from authgate.aws.iam import API_GATEWAY_PRINCIPAL, INVOKE_FUNCTION_ACTION, statements_allow
from authgate.exceptions import AuthorizationFailure, InvocationError, PlatformError
from authgate.local.authorizer import JwtValidator, extract_bearer_token
from authgate.local.cloud import ApiRecord, LocalPlatform, RouteSnapshot
from authgate.local.events import HttpRequest, ProxyResponse, build_proxy_event
from authgate.local.handlers import invoke_function
from authgate.local.identity import LocalIdentityProvider

logger = logging.getLogger("authgate.local.gateway")

_HOST_PATTERN = re.compile(
    r"^(?P<api_id>[a-z0-9]+)\.execute-api\.(?P<region>[a-z0-9-]+)\.amazonaws\.com$"
)


@final
@dataclass(frozen=True)
class GatewayResponse:
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""

    def json(self) -> Any:  # noqa: ANN401
        return json.loads(self.body)


def _message(status_code: int, message: str) -> GatewayResponse:
    return GatewayResponse(
        status_code,
        {"content-type": "application/json"},
        json.dumps({"message": message}),
    )


NOT_FOUND = _message(404, "Not Found")
UNAUTHORIZED = _message(401, "Unauthorized")
INTERNAL_SERVER_ERROR = _message(500, "Internal Server Error")


@dataclass(frozen=True)
class _RouteMatch:
    route: RouteSnapshot
    path_parameters: dict[str, str]


def _path_pattern(path: str) -> re.Pattern[str]:
    parts = []
    for segment in path.strip("/").split("/"):
        if segment == "{proxy+}":
            parts.append("(?P<proxy>.+)")
        elif segment.startswith("{") and segment.endswith("}"):
            parts.append(f"(?P<{segment[1:-1]}>[^/]+)")
        else:
            parts.append(re.escape(segment))
    return re.compile("^/" + "/".join(parts) + "$")


def match_route(
    routes: Mapping[str, RouteSnapshot], method: str, path: str
) -> _RouteMatch | None:
    """Pick the most specific route: static segments beat parameters, greedy paths and
    ANY come last."""
    candidates = []
    for key, route in routes.items():
        route_method, route_path = key.split(" ", 1)
        if route_method not in (method, "ANY"):
            continue
        found = _path_pattern(route_path).match(path)
        if not found:
            continue
        segments = route_path.strip("/").split("/")
        static = sum(1 for s in segments if not s.startswith("{"))
        rank = ("{proxy+}" in route_path, -static, route_method == "ANY")
        candidates.append((rank, route, found.groupdict()))
    if not candidates:
        return None
    _, route, params = min(candidates, key=lambda c: c[0])
    return _RouteMatch(route, params)


@final
class LocalGateway:
    """Serves requests against what a LocalPlatform has provisioned.

    A request is matched against the routes of the deployment its stage points to.
    The route's JWT authorizer has to accept the bearer token before the integration
    invokes the function; any authorization failure is a 401 and the function is
    never called.
    """

    def __init__(self, platform: LocalPlatform, identity: LocalIdentityProvider):
        self._platform = platform
        self._identity = identity
        self.invocations: list[str] = []

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: str | bytes | None = None,
    ) -> GatewayResponse:
        """Send a request to a stage URL.

        ``url`` looks like ``https://{api_id}.execute-api.{region}.amazonaws.com/{stage}/...``.
        """
        parts = urlsplit(url)
        host = _HOST_PATTERN.match(parts.hostname or "")
        if parts.scheme != "https" or not host:
            raise ValueError(f"Not an execute-api URL: {url}")
        stage, _, path = parts.path.lstrip("/").partition("/")
        request = HttpRequest(
            method=method.upper(),
            path=f"/{path}",
            headers=dict(headers or {}),
            query=parse_qs(parts.query),
            body=body,
        )
        return self.handle(host["api_id"], stage, request)

    def handle(self, api_id: str, stage_name: str, request: HttpRequest) -> GatewayResponse:
        try:
            api = self._platform.api(api_id)
        except PlatformError:
            return NOT_FOUND
        stage = api.stages.get(stage_name)
        if stage is None:
            return NOT_FOUND
        deployment = api.deployments[stage.deployment_id]

        preflight = self._preflight(api, request)
        if preflight is not None:
            return preflight

        matched = match_route(deployment.routes, request.method, request.path)
        if matched is None:
            logger.debug(
                "No route for %s %s in stage '%s'", request.method, request.path, stage_name
            )
            return NOT_FOUND
        route = matched.route

        try:
            claims = self._authorize(route, request)
        except AuthorizationFailure as e:
            logger.info("Rejected %s %s: %s", request.method, request.path, e)
            return UNAUTHORIZED

        request_id = str(uuid.uuid4())
        try:
            function = self._platform.function_by_arn(route.integration.integration_uri)
            self._check_invoke_permission(route, function.arn)
            event = build_proxy_event(
                request,
                resource=route.key.split(" ", 1)[1],
                path_parameters=matched.path_parameters,
                stage=stage_name,
                api_id=api.id,
                claims=claims,
                account_id=api.account_id,
            )
            event["requestContext"]["requestId"] = request_id
            self.invocations.append(function.name)
            result = invoke_function(function, event, request_id, api.region)
            response = ProxyResponse.from_function(result)
        except (PlatformError, InvocationError) as e:
            logger.error("Integration for %s failed: %s", route.key, e)
            return INTERNAL_SERVER_ERROR

        return GatewayResponse(
            response.status_code,
            {**response.headers, **self._cors_headers(api, request)},
            response.body,
        )

    def _authorize(self, route: RouteSnapshot, request: HttpRequest) -> dict[str, Any]:
        authorizer = route.authorizer
        token = extract_bearer_token(request.headers, authorizer.identity_sources[0])
        validator = JwtValidator(
            authorizer.issuer, authorizer.audience, self._identity.jwks_for_issuer
        )
        return validator.validate(token)

    def _check_invoke_permission(self, route: RouteSnapshot, function_arn: str) -> None:
        role = self._platform.role_by_arn(route.integration.credentials_arn)
        if API_GATEWAY_PRINCIPAL not in role.principals:
            raise PlatformError(f"Role '{role.name}' cannot be assumed by API Gateway")
        if not statements_allow(role.statements, INVOKE_FUNCTION_ACTION, function_arn):
            raise PlatformError(f"Role '{role.name}' is not allowed to invoke {function_arn}")

    @staticmethod
    def _origin(request: HttpRequest) -> str | None:
        return next((v for k, v in request.headers.items() if k.lower() == "origin"), None)

    def _cors_headers(self, api: ApiRecord, request: HttpRequest) -> dict[str, str]:
        origin = self._origin(request)
        cors = api.cors
        if not cors or origin is None:
            return {}
        allowed = cors["allow_origins"]
        if "*" not in allowed and origin not in allowed:
            return {}
        headers = {"access-control-allow-origin": "*" if "*" in allowed else origin}
        if cors["allow_credentials"]:
            headers["access-control-allow-credentials"] = "true"
        if cors["expose_headers"]:
            headers["access-control-expose-headers"] = ",".join(cors["expose_headers"])
        return headers

    def _preflight(self, api: ApiRecord, request: HttpRequest) -> GatewayResponse | None:
        """Answer CORS preflight requests. Disallowed origins get no CORS headers."""
        if not api.cors or request.method != "OPTIONS" or self._origin(request) is None:
            return None
        if not any(k.lower() == "access-control-request-method" for k in request.headers):
            return None
        headers = self._cors_headers(api, request)
        if headers:
            cors = api.cors
            if cors["allow_methods"]:
                headers["access-control-allow-methods"] = ",".join(cors["allow_methods"])
            if cors["allow_headers"]:
                headers["access-control-allow-headers"] = ",".join(cors["allow_headers"])
            if cors["max_age"] is not None:
                headers["access-control-max-age"] = str(cors["max_age"])
        return GatewayResponse(204, headers, "")
