"""Executor - Sends built requests and validates the responses.

Each call creates its own httpx client, sends one request, buffers the whole
response body and releases the connection before returning, whatever the
path. Redirects are never followed: a 3xx comes back as a failure carrying
its status, body and headers (including Location).

Results are returned as RequestOutcome values rather than raised.
`raise_for_failure` turns a failed outcome into the matching exception for
callers that prefer exceptions.
"""

from __future__ import annotations

import logging
import ssl
from typing import Any

import httpx

from rest_client.models import (
    APIResponse,
    BuiltRequest,
    EndpointConfig,
    FailureKind,
    HttpMethod,
    RequestOutcome,
)
from rest_client.multipart import encode_multipart

logger = logging.getLogger(__name__)

SUCCESS_STATUS_CODES = frozenset({200, 201})


class RESTError(Exception):
    """Base class for request errors."""

    def __init__(self, message: str, outcome: RequestOutcome | None = None) -> None:
        super().__init__(message)
        self.outcome = outcome


class HTTPStatusError(RESTError):
    """Raised when the server answered with a status other than 200/201."""

    def __init__(self, status_code: int, body: str, outcome: RequestOutcome | None = None) -> None:
        super().__init__(f"HTTP {status_code}: {body}", outcome)
        self.status_code = status_code
        self.body = body


class TransportError(RESTError):
    """Raised when the exchange failed (DNS, connect, TLS, I/O)."""


class ReleaseError(RESTError):
    """Raised when releasing the connection failed after a response was read."""


class ClientConstructionError(RESTError):
    """Raised when the client or payload could not be set up."""


_ERRORS_BY_KIND: dict[FailureKind, type[RESTError]] = {
    FailureKind.TRANSPORT: TransportError,
    FailureKind.RELEASE: ReleaseError,
    FailureKind.CONSTRUCTION: ClientConstructionError,
}


def raise_for_failure(outcome: RequestOutcome) -> APIResponse:
    """Return the response of a successful outcome, or raise its error.

    Raises:
        HTTPStatusError: For non-success status codes.
        TransportError, ReleaseError, ClientConstructionError: For the
            corresponding failure kinds. The original exception is chained.
    """
    if outcome.response is not None:
        return outcome.response

    if outcome.failure_kind is FailureKind.HTTP_STATUS:
        raise HTTPStatusError(outcome.status_code, outcome.body or "", outcome)

    error_cls = _ERRORS_BY_KIND[outcome.failure_kind]
    raise error_cls(outcome.message or outcome.failure_kind.value, outcome) from outcome.cause


def trust_all_ssl_context() -> ssl.SSLContext:
    """TLS context accepting any certificate for any hostname.

    Only used when EndpointConfig.trust_all_certs is set. Never the default.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def _collect_headers(response: httpx.Response) -> dict[str, list[str]]:
    """Lowercase keys, list values."""
    headers: dict[str, list[str]] = {}
    for key, value in response.headers.multi_items():
        headers.setdefault(key.lower(), []).append(value)
    return headers


class Executor:
    """Realizes built requests over HTTP for one endpoint configuration.

    Usage:
        executor = Executor(EndpointConfig(url="https://api.example.com/v1/speech"))
        outcome = executor.execute(builder.build_get())
        if outcome.ok:
            print(outcome.response.body)

    The executor keeps no per-request state, so concurrent execute() calls
    are safe. A custom httpx transport may be supplied (e.g. for tests);
    it is handed to every per-call client. httpx applies proxy and TLS
    settings only to its own transports, so a custom transport cannot be
    combined with a proxy or trust_all_certs: execute() reports that
    combination as a construction failure instead of bypassing the transport.
    """

    def __init__(
        self,
        config: EndpointConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport

    @property
    def config(self) -> EndpointConfig:
        return self._config

    def build_client_kwargs(self) -> dict[str, Any]:
        """Build kwargs for httpx.Client: redirects, proxy and TLS trust policy.

        Raises:
            ssl.SSLError: If the trust-all TLS context cannot be created.
            ValueError: If a custom transport is combined with a proxy or
                trust_all_certs.
        """
        if self._transport is not None:
            ignored = []
            if self._config.proxy_url is not None:
                ignored.append("proxy")
            if self._config.trust_all_certs:
                ignored.append("trust_all_certs")
            if ignored:
                raise ValueError(
                    f"A custom transport cannot honor {' and '.join(ignored)}; "
                    "configure them on the transport and leave them unset on the endpoint"
                )

        kwargs: dict[str, Any] = {
            "follow_redirects": False,
            # Proxy and CA settings come from EndpointConfig only, never the environment.
            "trust_env": False,
            "timeout": self._config.timeout,
        }

        proxy_url = self._config.proxy_url
        if proxy_url is not None:
            kwargs["proxy"] = proxy_url

        if self._config.trust_all_certs:
            kwargs["verify"] = trust_all_ssl_context()
        # else: use httpx default verification

        if self._transport is not None:
            kwargs["transport"] = self._transport

        return kwargs

    def execute(self, request: BuiltRequest) -> RequestOutcome:
        """Send one request and classify the result.

        Never raises for request failures; every failure is returned as a
        RequestOutcome with its FailureKind.
        """
        try:
            client = httpx.Client(**self.build_client_kwargs())
        except (ssl.SSLError, httpx.InvalidURL, ValueError) as e:
            return self._failed(
                FailureKind.CONSTRUCTION, f"Unable to create HTTP client: {e}", e
            )

        with client:
            return self._execute_with_client(client, request)

    def _execute_with_client(
        self,
        client: httpx.Client,
        request: BuiltRequest,
    ) -> RequestOutcome:
        try:
            content = self._build_content(request)
            http_request = client.build_request(
                request.method.verb,
                request.target_url,
                headers=list(request.headers),
                content=content,
            )
        except OSError as e:
            return self._failed(
                FailureKind.CONSTRUCTION, f"Unable to read multipart attachment: {e}", e
            )
        except (httpx.InvalidURL, UnicodeEncodeError) as e:
            return self._failed(FailureKind.CONSTRUCTION, f"Invalid request: {e}", e)

        # The query may carry credentials; log the bare endpoint URL.
        logger.debug("%s %s", http_request.method, request.url)

        try:
            response = client.send(http_request, stream=True)
        except httpx.TimeoutException as e:
            return self._failed(FailureKind.TRANSPORT, f"Request timeout: {e}", e)
        except httpx.ConnectError as e:
            return self._failed(FailureKind.TRANSPORT, f"Connection error: {e}", e)
        except httpx.RequestError as e:
            return self._failed(FailureKind.TRANSPORT, f"Request error: {e}", e)

        return self._consume(response)

    def _build_content(self, request: BuiltRequest) -> bytes | None:
        """Encode the request body.

        Raises:
            OSError: If a multipart attachment cannot be read.
        """
        if request.method is HttpMethod.MULTIPART_POST:
            return encode_multipart(request.parts)
        if request.method is HttpMethod.POST and request.body:
            return request.body.encode("utf-8")
        return None

    def _consume(self, response: httpx.Response) -> RequestOutcome:
        """Buffer the body, release the connection, then validate.

        The connection is released on every path. A read failure counts as a
        transport failure even though a status line was received.
        """
        chunks: list[bytes] = []
        read_error: Exception | None = None
        release_error: Exception | None = None
        try:
            # httpx closes the stream once it is exhausted, so a CloseError
            # here means every byte arrived and only the release failed.
            for chunk in response.iter_bytes():
                chunks.append(chunk)
        except httpx.CloseError as e:
            release_error = e
        except (httpx.HTTPError, httpx.StreamError, OSError) as e:
            read_error = e

        if release_error is None:
            release_error = self._release(response)

        if read_error is not None:
            message = f"Unable to read response body: {read_error}"
            if release_error is not None:
                message += f" (connection release also failed: {release_error})"
            return self._failed(FailureKind.TRANSPORT, message, read_error)

        body_bytes = b"".join(chunks)
        body = body_bytes.decode(response.encoding or "utf-8", errors="replace")
        headers = _collect_headers(response)

        if release_error is not None:
            return self._failed(
                FailureKind.RELEASE,
                f"Unable to release connection: {release_error}",
                release_error,
                status_code=response.status_code,
                body=body,
                headers=headers,
            )

        return self._validate(response.status_code, body, body_bytes, headers)

    @staticmethod
    def _release(response: httpx.Response) -> Exception | None:
        """Close the response; hand back the error instead of raising it."""
        try:
            response.close()
        except (httpx.HTTPError, httpx.StreamError, OSError) as e:
            return e
        return None

    def _validate(
        self,
        status_code: int,
        body: str,
        body_bytes: bytes,
        headers: dict[str, list[str]],
    ) -> RequestOutcome:
        if status_code in SUCCESS_STATUS_CODES:
            outcome = RequestOutcome.success(
                APIResponse(
                    status_code=status_code,
                    body=body,
                    body_bytes=body_bytes,
                    headers=headers,
                )
            )
        else:
            outcome = RequestOutcome.failure(
                FailureKind.HTTP_STATUS,
                f"Unexpected status code {status_code}",
                status_code=status_code,
                body=body,
                headers=headers,
            )
        logger.debug("%s", outcome.summary)
        return outcome

    @staticmethod
    def _failed(
        kind: FailureKind,
        message: str,
        cause: BaseException,
        **kwargs: Any,
    ) -> RequestOutcome:
        logger.debug("%s failure: %s", kind.value, message)
        return RequestOutcome.failure(kind, message, cause=cause, **kwargs)
