"""
Tests for the request pipeline and its standard stages.

Stages are exercised against a recording terminal so the exact request that
reaches the wire can be inspected.
"""
from __future__ import annotations

import asyncio
from typing import List

import httpx
import pytest

from ocidist.endpoint import ENDPOINT_EXTENSION, Endpoint, endpoint_of
from ocidist.media_types import OCI_IMAGE_INDEX, OCI_IMAGE_MANIFEST
from ocidist.transport import (
    USER_AGENT,
    Accept,
    HttpxTransport,
    PathPrefix,
    Pipeline,
    Retry,
    Stage,
    Transport,
    Unsecure,
    rebuild_request,
)


class RecordingTerminal:
    """Terminal transport answering 200 and remembering every request."""

    def __init__(self, status: int = 200):
        self.status = status
        self.requests: List[httpx.Request] = []

    async def send(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, request=request)


class Tracer:
    """Stage logging entry and exit into a shared list."""

    def __init__(self, name: str, log: List[str]):
        self.name = name
        self.log = log

    async def handle(self, request, next):
        self.log.append(f"{self.name}:in")
        response = await next.send(request)
        self.log.append(f"{self.name}:out")
        return response


def _request(url: str = "https://x.com/v2/app/manifests/latest", endpoint: Endpoint = None) -> httpx.Request:
    extensions = {ENDPOINT_EXTENSION: endpoint} if endpoint is not None else {}
    return httpx.Request("GET", url, extensions=extensions)


class TestPipeline:
    """Test stage ordering and continuation semantics."""

    def test_stages_run_in_configuration_order(self):
        """First stage sees the request first and the response last."""
        log: List[str] = []
        terminal = RecordingTerminal()
        pipeline = Pipeline([Tracer("a", log), Tracer("b", log)], terminal)

        response = asyncio.run(pipeline.send(_request()))

        assert response.status_code == 200
        assert log == ["a:in", "b:in", "b:out", "a:out"]
        assert len(terminal.requests) == 1

    def test_empty_pipeline_goes_straight_to_terminal(self):
        """Test a pipeline without stages."""
        terminal = RecordingTerminal()
        asyncio.run(Pipeline([], terminal).send(_request()))
        assert len(terminal.requests) == 1

    def test_next_can_be_invoked_twice(self):
        """Calling next twice re-runs all remaining stages."""
        log: List[str] = []
        terminal = RecordingTerminal()

        class Twice:
            async def handle(self, request, next):
                await next.send(request)
                return await next.send(request)

        pipeline = Pipeline([Twice(), Tracer("inner", log)], terminal)
        asyncio.run(pipeline.send(_request()))

        assert log == ["inner:in", "inner:out", "inner:in", "inner:out"]
        assert len(terminal.requests) == 2

    def test_stage_can_answer_without_forwarding(self):
        """Test short-circuiting the rest of the pipeline."""
        terminal = RecordingTerminal()

        class Canned:
            async def handle(self, request, next):
                return httpx.Response(418, request=request)

        response = asyncio.run(Pipeline([Canned()], terminal).send(_request()))
        assert response.status_code == 418
        assert terminal.requests == []

    def test_pipeline_nests_as_stage(self):
        """An inner pipeline forwards to the outer continuation, not its own terminal."""
        log: List[str] = []
        outer_terminal = RecordingTerminal()
        inner_terminal = RecordingTerminal(status=500)
        inner = Pipeline([Tracer("inner", log)], inner_terminal)
        outer = Pipeline([Tracer("outer", log), inner], outer_terminal)

        response = asyncio.run(outer.send(_request()))

        assert response.status_code == 200
        assert log == ["outer:in", "inner:in", "inner:out", "outer:out"]
        assert inner_terminal.requests == []
        assert len(outer_terminal.requests) == 1

    def test_protocols(self):
        """Pipelines satisfy both the Transport and Stage protocols."""
        pipeline = Pipeline([], RecordingTerminal())
        assert isinstance(pipeline, Transport)
        assert isinstance(pipeline, Stage)
        assert isinstance(Unsecure(), Stage)


class TestRebuildRequest:
    """Test request copying used by rewriting stages."""

    def test_copies_body_headers_and_endpoint(self):
        """Test that a rebuilt request keeps everything but what is replaced."""
        endpoint = Endpoint(name="app", resource="blobs", method="PUT")
        original = httpx.Request(
            "PUT", "https://x.com/v2/app/blobs/uploads/1",
            headers={"Content-Type": "application/octet-stream"},
            content=b"payload",
            extensions={ENDPOINT_EXTENSION: endpoint},
        )
        url = httpx.URL("http://y.com:5000/v2/app/blobs/uploads/1")
        rebuilt = rebuild_request(original, url=url, headers={"X-Extra": "1"})

        assert rebuilt.url == url
        assert rebuilt.headers["Host"] == "y.com:5000"
        assert rebuilt.headers["Content-Type"] == "application/octet-stream"
        assert rebuilt.headers["X-Extra"] == "1"
        assert rebuilt.content == b"payload"
        assert endpoint_of(rebuilt) is endpoint
        # original is untouched
        assert "X-Extra" not in original.headers
        assert original.url.host == "x.com"


class TestUnsecure:
    """Test the https to http downgrade."""

    def test_downgrades_https(self):
        """Test that https requests go out as http."""
        terminal = RecordingTerminal()
        asyncio.run(Pipeline([Unsecure()], terminal).send(_request("https://x.com:5000/v2/")))
        assert str(terminal.requests[0].url) == "http://x.com:5000/v2/"

    def test_http_passes_through(self):
        """Test that an http request is forwarded unchanged."""
        terminal = RecordingTerminal()
        request = _request("http://x.com/v2/")
        asyncio.run(Pipeline([Unsecure()], terminal).send(request))
        assert terminal.requests[0] is request


class TestPathPrefix:
    """Test sub-path mounting."""

    def test_prefixes_path(self):
        """Test that the prefix is inserted before the path."""
        terminal = RecordingTerminal()
        asyncio.run(Pipeline([PathPrefix("foo")], terminal).send(_request("https://x.com/bar?n=1")))
        assert str(terminal.requests[0].url) == "https://x.com/foo/bar?n=1"

    def test_idempotent(self):
        """Stacking the same prefix twice does not double it."""
        terminal = RecordingTerminal()
        pipeline = Pipeline([PathPrefix("/foo/"), PathPrefix("foo")], terminal)
        asyncio.run(pipeline.send(_request("https://x.com/v2/")))
        assert terminal.requests[0].url.path == "/foo/v2/"

    def test_prefix_must_match_whole_segment(self):
        """A path starting with '/foobar' does not already carry '/foo'."""
        terminal = RecordingTerminal()
        asyncio.run(Pipeline([PathPrefix("foo")], terminal).send(_request("https://x.com/foobar")))
        assert terminal.requests[0].url.path == "/foo/foobar"

    @pytest.mark.parametrize("prefix", ["", "/", "//"])
    def test_empty_prefix_rejected(self, prefix):
        """Test that an empty prefix raises ValueError."""
        with pytest.raises(ValueError, match="prefix cannot be empty"):
            PathPrefix(prefix)


class TestAccept:
    """Test manifest content negotiation."""

    def test_manifest_get_gets_accept(self):
        """Test that GET manifests carries every configured type."""
        terminal = RecordingTerminal()
        endpoint = Endpoint(name="app", resource="manifests", method="GET", reference="latest")
        stage = Accept([OCI_IMAGE_INDEX, OCI_IMAGE_MANIFEST])
        asyncio.run(Pipeline([stage], terminal).send(_request(endpoint=endpoint)))
        assert terminal.requests[0].headers["Accept"] == f"{OCI_IMAGE_INDEX}, {OCI_IMAGE_MANIFEST}"

    @pytest.mark.parametrize("endpoint", [
        Endpoint(name="app", resource="manifests", method="HEAD", reference="latest"),
        Endpoint(name="app", resource="blobs", method="GET"),
        None,
    ])
    def test_other_requests_untouched(self, endpoint):
        """Test that HEAD, non-manifest and untagged requests pass through."""
        terminal = RecordingTerminal()
        request = _request(endpoint=endpoint)
        asyncio.run(Pipeline([Accept()], terminal).send(request))
        assert terminal.requests[0] is request
        assert "Accept" not in request.headers

    def test_requires_media_types(self):
        """Test that an empty type list raises ValueError."""
        with pytest.raises(ValueError):
            Accept([])


class FlakyTerminal:
    """Terminal failing with a connect error a fixed number of times."""

    def __init__(self, failures: int, status: int = 200):
        self.failures = failures
        self.status = status
        self.calls = 0

    async def send(self, request):
        self.calls += 1
        if self.calls <= self.failures:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(self.status, request=request)


class TestRetry:
    """Test the opt-in retry stage."""

    def test_recovers_from_transport_errors(self):
        """Test that connect errors are retried until an attempt succeeds."""
        terminal = FlakyTerminal(failures=2)
        stage = Retry(attempts=3, wait_min=0, wait_max=0)
        response = asyncio.run(Pipeline([stage], terminal).send(_request()))
        assert response.status_code == 200
        assert terminal.calls == 3

    def test_gives_up_and_reraises(self):
        """Test that the last transport error surfaces after all attempts."""
        terminal = FlakyTerminal(failures=5)
        stage = Retry(attempts=2, wait_min=0, wait_max=0)
        with pytest.raises(httpx.ConnectError):
            asyncio.run(Pipeline([stage], terminal).send(_request()))
        assert terminal.calls == 2

    def test_http_errors_not_retried(self):
        """Test that a 5xx response is returned, not retried."""
        terminal = FlakyTerminal(failures=0, status=503)
        stage = Retry(attempts=3, wait_min=0, wait_max=0)
        response = asyncio.run(Pipeline([stage], terminal).send(_request()))
        assert response.status_code == 503
        assert terminal.calls == 1

    def test_attempts_must_be_positive(self):
        """Test that zero attempts raises ValueError."""
        with pytest.raises(ValueError):
            Retry(attempts=0)


class TestHttpxTransport:
    """Test the httpx-backed terminal."""

    def test_sets_default_user_agent(self):
        """Test that requests go out with the library User-Agent."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        async def run():
            async with HttpxTransport(transport=httpx.MockTransport(handler)) as transport:
                return await transport.send(_request("https://x.com/v2/"))

        response = asyncio.run(run())
        assert response.status_code == 200
        assert seen[0].headers["User-Agent"] == USER_AGENT

    def test_keeps_explicit_user_agent(self):
        """Test that a caller-supplied User-Agent wins."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        async def run():
            async with HttpxTransport(transport=httpx.MockTransport(handler)) as transport:
                request = httpx.Request("GET", "https://x.com/v2/", headers={"User-Agent": "custom/1.0"})
                await transport.send(request)

        asyncio.run(run())
        assert seen[0].headers["User-Agent"] == "custom/1.0"

    def test_does_not_close_borrowed_client(self):
        """Test that aclose() leaves a caller-owned client open."""
        async def run():
            client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
            await HttpxTransport(client).aclose()
            closed = client.is_closed
            await client.aclose()
            return closed

        assert asyncio.run(run()) is False
