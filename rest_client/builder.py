"""Request builder - accumulates headers and parameters without touching the network.

Headers and parameters are multimaps: each name maps to a non-empty,
ordered list of values. `add_*` appends, `set_*` replaces every value for
the name. Names are stored exactly as given (case-sensitive).

The builder is mutable and persists state across requests; each `build_*`
call returns a frozen BuiltRequest snapshot, so a request already handed to
the executor is unaffected by later mutation. The multimaps are not
thread-safe; callers sharing a builder must synchronize mutation.
"""

from __future__ import annotations

import copy
import json
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote_plus

from rest_client.models import (
    AccessToken,
    BuiltRequest,
    EndpointConfig,
    HttpMethod,
)
from rest_client.multipart import MULTIPART_CONTENT_TYPE, build_parts

# Default for build_post(body=...): send the form-encoded parameters as the body.
# Distinct from None, which sends no body.
PARAMETERS_BODY = object()


def form_encode(text: str) -> str:
    """Percent-encode text with UTF-8 form encoding.

    Spaces become '+'; letters, digits and ``.-*_`` pass through; everything
    else (including '~') is %XX-escaped. UTF-8 can encode every str, so this
    never fails.
    """
    return quote_plus(text, safe="*").replace("~", "%7E")


def _add(multimap: dict[str, list[str]], name: str, value: str) -> None:
    multimap.setdefault(name, []).append(value)


def _set(multimap: dict[str, list[str]], name: str, value: str) -> None:
    # Replacing in place keeps the name's original insertion position.
    multimap[name] = [value]


class RequestBuilder:
    """Accumulates request intent for one endpoint.

    Usage:
        builder = RequestBuilder(EndpointConfig(url="https://api.example.com/v1/items"))
        request = (
            builder.set_header("Accept", "application/json")
            .add_parameter("tag", "a")
            .add_parameter("tag", "b")
            .build_get()
        )
    """

    def __init__(self, config: EndpointConfig | str) -> None:
        if isinstance(config, str):
            config = EndpointConfig(url=config)
        self._config = config
        self._headers: dict[str, list[str]] = {}
        self._parameters: dict[str, list[str]] = {}

    @property
    def config(self) -> EndpointConfig:
        return self._config

    @property
    def url(self) -> str:
        return self._config.url

    # -- mutation ------------------------------------------------------------

    def add_parameter(self, name: str, value: str) -> RequestBuilder:
        """Append a parameter value; existing values for `name` are kept."""
        _add(self._parameters, name, value)
        return self

    def set_parameter(self, name: str, value: str) -> RequestBuilder:
        """Replace all values of a parameter with `value`."""
        _set(self._parameters, name, value)
        return self

    def add_header(self, name: str, value: str) -> RequestBuilder:
        """Append a header value; existing values for `name` are kept."""
        _add(self._headers, name, value)
        return self

    def set_header(self, name: str, value: str) -> RequestBuilder:
        """Replace all values of a header with `value`."""
        _set(self._headers, name, value)
        return self

    def add_authorization_header(self, token: AccessToken) -> RequestBuilder:
        """Set ``Authorization: Bearer <access token>`` from an OAuth token object."""
        return self.set_header("Authorization", f"Bearer {token.access_token}")

    def remove_header(self, name: str) -> RequestBuilder:
        self._headers.pop(name, None)
        return self

    def clear_parameters(self) -> RequestBuilder:
        self._parameters.clear()
        return self

    # -- reads ---------------------------------------------------------------

    def header_values(self, name: str) -> list[str]:
        return list(self._headers.get(name, []))

    def parameter_values(self, name: str) -> list[str]:
        return list(self._parameters.get(name, []))

    @property
    def headers(self) -> dict[str, list[str]]:
        return copy.deepcopy(self._headers)

    @property
    def parameters(self) -> dict[str, list[str]]:
        return copy.deepcopy(self._parameters)

    def _header_pairs(self) -> tuple[tuple[str, str], ...]:
        return tuple(
            (name, value) for name, values in self._headers.items() for value in values
        )

    # -- serialization -------------------------------------------------------

    def build_query(self) -> str:
        """Form-encode the parameters as ``name=value`` pairs joined by '&'.

        Names keep insertion order; each value of a repeated name becomes
        its own pair, in insertion order. Returns "" when no parameters are set.
        """
        return "&".join(
            f"{form_encode(name)}={form_encode(value)}"
            for name, values in self._parameters.items()
            for value in values
        )

    def build_get(self) -> BuiltRequest:
        return BuiltRequest(
            method=HttpMethod.GET,
            url=self.url,
            headers=self._header_pairs(),
            query=self.build_query(),
        )

    def build_post(self, body: Any = PARAMETERS_BODY) -> BuiltRequest:
        """Snapshot a POST.

        Without a body argument the form-encoded parameters are sent as the
        body. An explicit None or "" body sends no body at all.
        """
        query = self.build_query()
        if body is PARAMETERS_BODY:
            body = query
        if body == "":
            body = None
        return BuiltRequest(
            method=HttpMethod.POST,
            url=self.url,
            headers=self._header_pairs(),
            query=query,
            body=body,
        )

    def build_multipart(
        self,
        json_obj: Mapping[str, Any] | str,
        file_names: list[str] | tuple[str, ...] = (),
    ) -> BuiltRequest:
        """Snapshot a multipart POST: JSON start part, then one part per file.

        The multipart Content-Type replaces any Content-Type on the snapshot
        but is not stored on the builder.

        Raises:
            OSError: If a file cannot be read for content-type probing.
        """
        json_text = json_obj if isinstance(json_obj, str) else json.dumps(json_obj)
        headers = tuple(
            (name, value) for name, value in self._header_pairs() if name != "Content-Type"
        )
        headers += (("Content-Type", MULTIPART_CONTENT_TYPE),)
        return BuiltRequest(
            method=HttpMethod.MULTIPART_POST,
            url=self.url,
            headers=headers,
            query=self.build_query(),
            parts=build_parts(json_text, list(file_names)),
        )
