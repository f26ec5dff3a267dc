"""RESTClient - chainable builder plus executor for one endpoint.

Example:
    client = RESTClient("https://api.example.com/speechToText")
    outcome = (
        client.set_header("Accept", "application/json")
        .add_authorization_header(token)
        .http_post("postbody")
    )
    if outcome.ok:
        print(outcome.response.body)

Headers and parameters persist across calls on the same instance until
replaced. Every http_* call snapshots the current state and executes it
with a fresh connection.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from rest_client.builder import PARAMETERS_BODY, RequestBuilder
from rest_client.executor import Executor
from rest_client.models import EndpointConfig, FailureKind, RequestOutcome


class RESTClient(RequestBuilder):
    """Builder that can also send what it has built."""

    def __init__(
        self,
        config: EndpointConfig | str,
        proxy_host: str | None = None,
        proxy_port: int | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Create a client from a config object, or from a URL and optional proxy.

        Args:
            config: Endpoint configuration, or the URL to send requests to.
            proxy_host: Proxy host (only with a URL string).
            proxy_port: Proxy port (only with a URL string).
            transport: Optional httpx transport used for every request. It owns
                proxy and TLS handling, so it cannot be combined with a proxy
                or trust_all_certs.
        """
        if isinstance(config, str):
            settings: dict[str, Any] = {"url": config}
            if proxy_host is not None:
                settings["proxy_host"] = proxy_host
            if proxy_port is not None:
                settings["proxy_port"] = proxy_port
            config = EndpointConfig(**settings)
        elif proxy_host is not None or proxy_port is not None:
            raise ValueError("proxy_host/proxy_port are only accepted with a URL string")

        super().__init__(config)
        self._executor = Executor(config, transport=transport)

    @property
    def executor(self) -> Executor:
        return self._executor

    def http_get(self) -> RequestOutcome:
        """GET ``<url>?<form-encoded parameters>`` with the current headers."""
        return self._executor.execute(self.build_get())

    def get(self) -> RequestOutcome:
        """Alias for http_get()."""
        return self.http_get()

    def http_post(self, body: Any = PARAMETERS_BODY) -> RequestOutcome:
        """POST with the current headers.

        With no argument the form-encoded parameters are sent as the body.
        A None or empty body sends no body.
        """
        return self._executor.execute(self.build_post(body))

    def post(self) -> RequestOutcome:
        """Alias for http_post()."""
        return self.http_post()

    def http_post_multipart(
        self,
        json_obj: Mapping[str, Any] | str,
        file_names: list[str] | tuple[str, ...] = (),
    ) -> RequestOutcome:
        """POST a JSON start part followed by the given files as attachments."""
        try:
            request = self.build_multipart(json_obj, file_names)
        except OSError as e:
            return RequestOutcome.failure(
                FailureKind.CONSTRUCTION,
                f"Unable to read multipart attachment: {e}",
                cause=e,
            )
        return self._executor.execute(request)
