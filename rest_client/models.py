"""Internal data models for rest-client.

All models use Pydantic v2. Built requests and outcomes are frozen so a
value handed to the executor cannot change underneath it.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Protocol, Self, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Sentinel proxy port meaning "no proxy configured".
NO_PROXY_PORT = -1


# =============================================================================
# Configuration Models
# =============================================================================


class EndpointConfig(BaseModel):
    """Connection settings for one target URL.

    trust_all_certs disables certificate and hostname verification. It is
    only meant for sandbox endpoints and must be switched on explicitly.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    url: str = Field(description="URL requests are sent to")
    proxy_host: str | None = Field(default=None, description="HTTP proxy host")
    proxy_port: int = Field(default=NO_PROXY_PORT, description="HTTP proxy port (-1 = unset)")
    trust_all_certs: bool = Field(
        default=False, description="Accept any server certificate (testing only)"
    )
    timeout: float = Field(default=30.0, description="Per-request timeout in seconds")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("url must not be empty")
        return v

    @field_validator("proxy_port")
    @classmethod
    def validate_proxy_port(cls, v: int) -> int:
        if v != NO_PROXY_PORT and not 1 <= v <= 65535:
            raise ValueError("proxy_port must be -1 (unset) or between 1 and 65535")
        return v

    @property
    def proxy_url(self) -> str | None:
        """Proxy URL for the transport, or None when no proxy is configured."""
        if self.proxy_host and self.proxy_port != NO_PROXY_PORT:
            return f"http://{self.proxy_host}:{self.proxy_port}"
        return None


@runtime_checkable
class AccessToken(Protocol):
    """Anything carrying an OAuth access token string."""

    @property
    def access_token(self) -> str: ...


# =============================================================================
# Request Models
# =============================================================================


class HttpMethod(str, Enum):
    """Kinds of request the executor knows how to send."""

    GET = "GET"
    POST = "POST"
    MULTIPART_POST = "MULTIPART_POST"

    @property
    def verb(self) -> str:
        """HTTP verb on the wire."""
        return "GET" if self is HttpMethod.GET else "POST"


class MultipartPart(BaseModel):
    """One part of a multipart payload.

    Text parts carry their content in `text`; file parts point at `path`
    and are read when the payload is encoded.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(description="Form field name")
    content_type: str = Field(description="Part Content-Type")
    content_id: str = Field(description="Content-ID header value, e.g. <startpart>")
    text: str | None = Field(default=None, description="Inline text content")
    path: str | None = Field(default=None, description="File to attach")
    filename: str | None = Field(default=None, description="Basename sent for file parts")

    @model_validator(mode="after")
    def check_content_source(self) -> Self:
        if (self.text is None) == (self.path is None):
            raise ValueError("exactly one of text and path must be set")
        return self

    @property
    def is_file(self) -> bool:
        return self.path is not None


class BuiltRequest(BaseModel):
    """Snapshot of everything needed to send one request.

    Headers are (name, value) pairs in multimap order so repeated names
    survive. `query` is the form-encoded parameter string at build time.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: HttpMethod = Field(description="Request kind")
    url: str = Field(description="Endpoint URL without query")
    headers: tuple[tuple[str, str], ...] = Field(
        default=(), description="Header pairs in insertion order"
    )
    query: str = Field(default="", description="Form-encoded parameters")
    body: str | None = Field(default=None, description="Literal POST body")
    parts: tuple[MultipartPart, ...] = Field(default=(), description="Multipart parts")

    @property
    def target_url(self) -> str:
        # GET always carries the separator, even for an empty query.
        if self.method is HttpMethod.GET:
            return f"{self.url}?{self.query}"
        return self.url

    def header_values(self, name: str) -> list[str]:
        return [value for key, value in self.headers if key == name]


# =============================================================================
# Response Models
# =============================================================================


class APIResponse(BaseModel):
    """A successful (200/201) response, fully buffered.

    Header keys are lowercase. Header values are lists for repeated headers.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    status_code: int = Field(description="HTTP status code")
    body: str = Field(default="", description="Decoded response body")
    body_bytes: bytes = Field(default=b"", description="Raw response body")
    headers: dict[str, list[str]] = Field(
        default_factory=dict, description="Response headers (lowercase keys, list values)"
    )

    def header(self, name: str) -> str | None:
        """First value of a header, case-insensitive."""
        values = self.headers.get(name.lower())
        return values[0] if values else None

    def json(self) -> Any:
        return json.loads(self.body)


class FailureKind(str, Enum):
    """Why a request did not produce a successful response."""

    HTTP_STATUS = "http_status"  # Exchange completed, status not 200/201
    TRANSPORT = "transport"  # DNS, connect, TLS, or I/O failure
    RELEASE = "release"  # Response read, connection cleanup failed
    CONSTRUCTION = "construction"  # Client or payload could not be set up


class RequestOutcome(BaseModel):
    """Result of one executed request: a response or a classified failure."""

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    response: APIResponse | None = Field(default=None, description="Set on success")
    failure_kind: FailureKind | None = Field(default=None, description="Set on failure")
    status_code: int | None = Field(default=None, description="Status code when one was received")
    body: str | None = Field(default=None, description="Response body when one was received")
    headers: dict[str, list[str]] = Field(
        default_factory=dict, description="Response headers when a response was received"
    )
    message: str | None = Field(default=None, description="Human-readable failure reason")
    cause: BaseException | None = Field(
        default=None, exclude=True, description="Underlying exception"
    )

    @model_validator(mode="after")
    def check_exclusivity(self) -> Self:
        if (self.response is None) == (self.failure_kind is None):
            raise ValueError("exactly one of response and failure_kind must be set")
        return self

    @classmethod
    def success(cls, response: APIResponse) -> RequestOutcome:
        return cls(
            response=response,
            status_code=response.status_code,
            body=response.body,
            headers=response.headers,
        )

    @classmethod
    def failure(
        cls,
        kind: FailureKind,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
        headers: dict[str, list[str]] | None = None,
        cause: BaseException | None = None,
    ) -> RequestOutcome:
        return cls(
            failure_kind=kind,
            message=message,
            status_code=status_code,
            body=body,
            headers=headers or {},
            cause=cause,
        )

    @property
    def ok(self) -> bool:
        return self.response is not None

    @property
    def summary(self) -> str:
        """One-liner for logs."""
        if self.ok:
            return f"OK {self.status_code}"
        if self.status_code is not None:
            return f"{self.failure_kind.value} failure: HTTP {self.status_code}"
        return f"{self.failure_kind.value} failure: {self.message}"
