"""Tests for the aiohttp transport against an in-process server."""
from unittest.mock import AsyncMock, Mock

import pytest
from aiohttp import web
from aiohttp import test_utils
from tenacity import wait_fixed, wait_none

from reposcope.application.client import GitHubClient
from reposcope.config import Settings
from reposcope.domain.errors import (
    ApiError,
    DeserializationError,
    RateLimitException,
    TransportError
)
from reposcope.domain.models import Release
from reposcope.infrastructure.http_transport import AiohttpTransport, wait_for_rate_limit

from transport_fakes import release_json, run_async


def _settings(base_url: str, **overrides) -> Settings:
    values = dict(token="t0ken", api_base_url=base_url, max_retries=3)
    values.update(overrides)
    return Settings(**values)


def serve(routes, scenario):
    """Run ``scenario(client, seen)`` against an app built from ``routes``.

    ``seen`` collects one dict per request the server received.
    """
    seen = []

    async def runner():
        app = web.Application()
        for method, path, handler in routes:
            async def recording(request, _handler=handler):
                seen.append({
                    "method": request.method,
                    "query": dict(request.query),
                    "authorization": request.headers.get("Authorization"),
                    "json": await request.json() if request.can_read_body else None,
                })
                return await _handler(request)
            app.router.add_route(method, path, recording)

        server = test_utils.TestServer(app)
        await server.start_server()
        transport = AiohttpTransport(
            _settings(str(server.make_url("/"))), retry_wait=wait_none()
        )
        try:
            async with GitHubClient(transport) as client:
                return await scenario(client, seen)
        finally:
            await server.close()

    return run_async(runner()), seen


def test_list_sends_query_and_parses_links():
    async def releases(request):
        next_url = request.url.with_query(per_page="2", page="3")
        return web.json_response(
            [release_json(2, "v2"), release_json(1, "v1")],
            headers={
                "Link": f'<{next_url}>; rel="next"',
                "X-RateLimit-Remaining": "4999",
                "X-RateLimit-Reset": "1700000000",
            },
        )

    async def scenario(client, seen):
        page = await client.repos("owner", "repo").releases().list().per_page(2).page(2).send()
        return page, client.transport.rate_limit_remaining

    (page, remaining), seen = serve(
        [("GET", "/repos/owner/repo/releases", releases)], scenario
    )

    assert seen[0]["method"] == "GET"
    assert seen[0]["query"] == {"per_page": "2", "page": "2"}
    assert seen[0]["authorization"] == "Bearer t0ken"
    assert [release.tag_name for release in page] == ["v2", "v1"]
    assert page.next_page_number == 3
    assert remaining == 4999


def test_bare_list_sends_no_query():
    async def releases(request):
        return web.json_response([])

    _, seen = serve(
        [("GET", "/repos/owner/repo/releases", releases)],
        lambda client, seen: client.repos("owner", "repo").releases().list().send(),
    )

    assert seen[0]["query"] == {}


def test_create_posts_json_body():
    async def create(request):
        body = await request.json()
        return web.json_response(release_json(10, body["tag_name"], draft=body.get("draft", False)), status=201)

    async def scenario(client, seen):
        return await (
            client.repos("owner", "repo").releases()
            .create("v1.0.0")
            .target_commitish("main")
            .draft(False)
            .send()
        )

    release, seen = serve([("POST", "/repos/owner/repo/releases", create)], scenario)

    assert seen[0]["method"] == "POST"
    assert seen[0]["json"] == {"tag_name": "v1.0.0", "target_commitish": "main", "draft": False}
    assert release == Release(id=10, tag_name="v1.0.0", draft=False)


def test_get_page_follows_link():
    async def releases(request):
        page = int(request.query.get("page", "1"))
        headers = {}
        if page == 1:
            headers["Link"] = f'<{request.url.with_query(page="2")}>; rel="next"'
        return web.json_response([release_json(page, f"v{page}")], headers=headers)

    async def scenario(client, seen):
        first = await client.repos("owner", "repo").releases().list().send()
        second = await client.get_page(first.next, Release.from_dict)
        missing = await client.get_page(second.next, Release.from_dict)
        return first, second, missing

    (first, second, missing), seen = serve(
        [("GET", "/repos/owner/repo/releases", releases)], scenario
    )

    assert first.items[0].tag_name == "v1"
    assert second.items[0].tag_name == "v2"
    assert missing is None
    assert len(seen) == 2


def test_error_status_raises_api_error_without_retry():
    async def not_found(request):
        return web.json_response(
            {"message": "Not Found", "documentation_url": "https://docs.example.test"},
            status=404,
        )

    async def scenario(client, seen):
        with pytest.raises(ApiError) as raised:
            await client.repos("owner", "missing").releases().list().send()
        return raised.value

    error, seen = serve([("GET", "/repos/owner/missing/releases", not_found)], scenario)

    assert not isinstance(error, RateLimitException)
    assert error.status_code == 404
    assert error.message == "Not Found"
    assert error.documentation_url == "https://docs.example.test"
    assert len(seen) == 1


def test_validation_errors_are_exposed():
    async def invalid(request):
        return web.json_response(
            {"message": "Validation Failed", "errors": [{"field": "tag_name", "code": "already_exists"}]},
            status=422,
        )

    async def scenario(client, seen):
        with pytest.raises(ApiError) as raised:
            await client.repos("owner", "repo").releases().create("v1").send()
        return raised.value

    error, seen = serve([("POST", "/repos/owner/repo/releases", invalid)], scenario)

    assert error.status_code == 422
    assert error.errors == [{"field": "tag_name", "code": "already_exists"}]
    assert len(seen) == 1


def test_rate_limited_request_is_retried():
    attempts = []

    async def releases(request):
        attempts.append(1)
        if len(attempts) == 1:
            # Reset time in the past so the transport does not sleep
            return web.json_response(
                {"message": "API rate limit exceeded"},
                status=403,
                headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "0"},
            )
        return web.json_response([release_json(1, "v1")])

    page, seen = serve(
        [("GET", "/repos/owner/repo/releases", releases)],
        lambda client, seen: client.repos("owner", "repo").releases().list().send(),
    )

    assert len(seen) == 2
    assert page.items[0].tag_name == "v1"


def test_rate_limit_error_reraised_after_attempts():
    async def releases(request):
        return web.json_response(
            {"message": "secondary rate limit"}, status=429, headers={"Retry-After": "0"}
        )

    async def scenario(client, seen):
        with pytest.raises(RateLimitException) as raised:
            await client.repos("owner", "repo").releases().create("v1").send()
        return raised.value

    error, seen = serve([("POST", "/repos/owner/repo/releases", releases)], scenario)

    assert error.status_code == 429
    assert error.retry_after == 0
    assert len(seen) == 3


def test_non_json_success_is_a_deserialization_error():
    async def releases(request):
        return web.Response(text="<html>oops</html>", content_type="text/html")

    async def scenario(client, seen):
        with pytest.raises(DeserializationError):
            await client.repos("owner", "repo").releases().list().send()

    serve([("GET", "/repos/owner/repo/releases", releases)], scenario)


def test_unreachable_server_raises_transport_error():
    transport = AiohttpTransport(
        _settings(f"http://127.0.0.1:{test_utils.unused_port()}", timeout_seconds=2),
        retry_wait=wait_none(),
    )

    async def scenario():
        try:
            await GitHubClient(transport).repos("owner", "repo").releases().list().send()
        finally:
            await transport.close()

    with pytest.raises(TransportError) as raised:
        run_async(scenario())
    assert not isinstance(raised.value, ApiError)


class TestRetryPolicy:
    def _transport(self, error):
        transport = AiohttpTransport(_settings("https://api.example.test"), retry_wait=wait_none())
        transport._execute = AsyncMock(side_effect=error)
        return transport

    def test_get_retries_connection_failures(self):
        transport = self._transport(TransportError("connection reset"))

        with pytest.raises(TransportError):
            run_async(transport.get("/repos/o/r/releases", {}, lambda response: response))
        assert transport._execute.await_count == 3

    def test_post_does_not_replay_connection_failures(self):
        transport = self._transport(TransportError("connection reset"))

        with pytest.raises(TransportError):
            run_async(transport.post("/repos/o/r/releases", {"tag_name": "v1"}, lambda response: response))
        assert transport._execute.await_count == 1

    def test_absolute_urls_are_used_verbatim(self):
        transport = self._transport(ApiError("boom", 500))

        with pytest.raises(ApiError):
            run_async(transport.get("https://other.example.test/x?page=2", None, lambda response: response))
        assert transport._execute.await_args.args[1] == "https://other.example.test/x?page=2"
        assert transport._execute.await_count == 1

    def test_query_values_are_stringified(self):
        transport = self._transport(ApiError("boom", 500))

        with pytest.raises(ApiError):
            run_async(transport.get("releases", {"page": 2, "draft": True}, lambda response: response))
        method, url, params, body = transport._execute.await_args.args
        assert url == "https://api.example.test/releases"
        assert params == {"page": "2", "draft": "true"}
        assert body is None


def test_non_text_error_message_is_stringified():
    async def forbidden(request):
        return web.json_response({"message": {"detail": "blocked"}}, status=403)

    async def scenario(client, seen):
        with pytest.raises(ApiError) as raised:
            await client.repos("owner", "repo").releases().list().send()
        return raised.value

    error, seen = serve([("GET", "/repos/owner/repo/releases", forbidden)], scenario)

    assert not isinstance(error, RateLimitException)
    assert error.status_code == 403
    assert error.message == "{'detail': 'blocked'}"


class TestRateLimitWait:
    def _state(self, error):
        return Mock(outcome=Mock(failed=True, exception=Mock(return_value=error)))

    def _wait(self):
        return wait_for_rate_limit(wait_fixed(2), clock=lambda: 1000.0)

    def test_retry_after_is_honoured(self):
        error = RateLimitException("slow down", 429, retry_after=7, reset_at=5000)

        assert self._wait()(self._state(error)) == 7.0

    def test_waits_until_reset(self):
        error = RateLimitException("API rate limit exceeded", 403, reset_at=1030)

        assert self._wait()(self._state(error)) == 31.0

    def test_past_reset_falls_back(self):
        error = RateLimitException("API rate limit exceeded", 403, reset_at=10)

        assert self._wait()(self._state(error)) == 2

    def test_other_errors_fall_back(self):
        assert self._wait()(self._state(TransportError("connection reset"))) == 2

    def test_transport_prefers_server_wait_over_fallback(self):
        fallback = Mock(return_value=0.0)
        transport = AiohttpTransport(_settings("https://api.example.test"), retry_wait=fallback)
        transport._execute = AsyncMock(side_effect=[
            RateLimitException("slow down", 429, retry_after=0),
            TransportError("connection reset"),
            "response",
        ])

        result = run_async(transport.get("releases", None, lambda response: response))

        assert result == "response"
        assert transport._execute.await_count == 3
        # only the connection failure consulted the fallback strategy
        assert fallback.call_count == 1
