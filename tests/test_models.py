"""Tests for Pydantic models and their validators."""

import pytest
from pydantic import ValidationError

from rest_client.models import (
    NO_PROXY_PORT,
    AccessToken,
    APIResponse,
    BuiltRequest,
    EndpointConfig,
    FailureKind,
    HttpMethod,
    MultipartPart,
    RequestOutcome,
)


class TestEndpointConfig:
    def test_defaults(self) -> None:
        config = EndpointConfig(url="https://api.example.com")
        assert config.proxy_host is None
        assert config.proxy_port == NO_PROXY_PORT
        assert config.trust_all_certs is False
        assert config.timeout == 30.0
        assert config.proxy_url is None

    def test_proxy_url(self) -> None:
        config = EndpointConfig(url="https://a", proxy_host="proxy.local", proxy_port=8080)
        assert config.proxy_url == "http://proxy.local:8080"

    def test_proxy_needs_both_parts(self) -> None:
        assert EndpointConfig(url="https://a", proxy_host="proxy.local").proxy_url is None
        assert EndpointConfig(url="https://a", proxy_port=3128).proxy_url is None

    @pytest.mark.parametrize("port", [0, -2, 65536])
    def test_invalid_proxy_port(self, port: int) -> None:
        with pytest.raises(ValidationError, match="proxy_port"):
            EndpointConfig(url="https://a", proxy_host="p", proxy_port=port)

    @pytest.mark.parametrize("url", ["", "   "])
    def test_empty_url_rejected(self, url: str) -> None:
        with pytest.raises(ValidationError, match="url must not be empty"):
            EndpointConfig(url=url)

    def test_url_immutable(self) -> None:
        config = EndpointConfig(url="https://a")
        with pytest.raises(ValidationError):
            config.url = "https://b"

    def test_extra_fields_forbidden(self) -> None:
        with pytest.raises(ValidationError):
            EndpointConfig(url="https://a", verify_ssl=False)


class TestAccessTokenProtocol:
    def test_object_with_access_token(self) -> None:
        class Token:
            access_token = "abc"

        assert isinstance(Token(), AccessToken)

    def test_object_without_access_token(self) -> None:
        assert not isinstance(object(), AccessToken)


class TestMultipartPart:
    def test_text_part(self) -> None:
        part = MultipartPart(name="root-fields", content_type="application/json",
                             content_id="<startpart>", text="{}")
        assert not part.is_file

    def test_needs_exactly_one_source(self) -> None:
        with pytest.raises(ValidationError, match="exactly one of text and path"):
            MultipartPart(name="x", content_type="a/b", content_id="<x>")
        with pytest.raises(ValidationError, match="exactly one of text and path"):
            MultipartPart(name="x", content_type="a/b", content_id="<x>", text="t", path="/p")


class TestBuiltRequest:
    def test_get_target_url(self) -> None:
        request = BuiltRequest(method=HttpMethod.GET, url="https://a/b", query="x=1")
        assert request.target_url == "https://a/b?x=1"

    def test_post_target_url_has_no_query(self) -> None:
        request = BuiltRequest(method=HttpMethod.POST, url="https://a/b", query="x=1")
        assert request.target_url == "https://a/b"

    def test_verbs(self) -> None:
        assert HttpMethod.GET.verb == "GET"
        assert HttpMethod.POST.verb == "POST"
        assert HttpMethod.MULTIPART_POST.verb == "POST"

    def test_header_values(self) -> None:
        request = BuiltRequest(
            method=HttpMethod.GET,
            url="https://a",
            headers=(("A", "1"), ("B", "2"), ("A", "3")),
        )
        assert request.header_values("A") == ["1", "3"]
        assert request.header_values("a") == []


class TestAPIResponse:
    def test_header_lookup_case_insensitive(self) -> None:
        response = APIResponse(status_code=200, headers={"location": ["/x", "/y"]})
        assert response.header("Location") == "/x"
        assert response.header("missing") is None

    def test_json(self) -> None:
        response = APIResponse(status_code=200, body='{"Recognition": {"Status": "OK"}}')
        assert response.json() == {"Recognition": {"Status": "OK"}}


class TestRequestOutcome:
    def test_success(self) -> None:
        response = APIResponse(status_code=201, body="created")
        outcome = RequestOutcome.success(response)
        assert outcome.ok
        assert outcome.status_code == 201
        assert outcome.body == "created"
        assert outcome.summary == "OK 201"

    def test_http_failure_summary(self) -> None:
        outcome = RequestOutcome.failure(
            FailureKind.HTTP_STATUS, "bad", status_code=400, body="oops"
        )
        assert not outcome.ok
        assert outcome.summary == "http_status failure: HTTP 400"

    def test_transport_failure_keeps_cause(self) -> None:
        cause = ConnectionRefusedError("refused")
        outcome = RequestOutcome.failure(FailureKind.TRANSPORT, "refused", cause=cause)
        assert outcome.cause is cause
        assert outcome.status_code is None
        assert outcome.summary == "transport failure: refused"

    def test_cause_excluded_from_dump(self) -> None:
        outcome = RequestOutcome.failure(
            FailureKind.TRANSPORT, "refused", cause=OSError("x")
        )
        assert "cause" not in outcome.model_dump()

    def test_requires_exactly_one_of_response_or_failure(self) -> None:
        with pytest.raises(ValidationError):
            RequestOutcome()
        with pytest.raises(ValidationError):
            RequestOutcome(
                response=APIResponse(status_code=200),
                failure_kind=FailureKind.TRANSPORT,
            )
