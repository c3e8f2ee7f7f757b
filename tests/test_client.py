"""Dashboard-side HTTP helper and the page load lifecycle."""

import asyncio

import httpx
import pytest

from membership.client.api import api_request, format_api_error, make_client, truncate
from membership.client.pages import PageLoader, PageState


def _client(handler, member_id=None):
    return make_client("http://api.test/", member_id=member_id, transport=httpx.MockTransport(handler))


class TestApiRequest:
    @pytest.mark.asyncio
    async def test_json_response_and_actor_header(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["member"] = request.headers.get("X-Member-Id")
            seen["path"] = request.url.path
            return httpx.Response(200, json={"status": "healthy"})

        async with _client(handler, member_id=7) as client:
            code, text, data = await api_request(client, "get", "admin/health")

        assert code == 200
        assert data == {"status": "healthy"}
        assert seen == {"member": "7", "path": "/admin/health"}

    @pytest.mark.asyncio
    async def test_non_dict_json_gives_no_data(self):
        async with _client(lambda request: httpx.Response(200, json=[1, 2])) as client:
            code, _, data = await api_request(client, "GET", "/events")

        assert code == 200
        assert data is None

    @pytest.mark.asyncio
    async def test_timeout_maps_to_408(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        async with _client(handler) as client:
            code, text, data = await api_request(client, "GET", "/health")

        assert code == 408
        assert text == "Request timed out contacting API."
        assert data is None

    @pytest.mark.asyncio
    async def test_network_error_maps_to_503(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            code, text, _ = await api_request(client, "GET", "/health")

        assert code == 503
        assert text.startswith("Network error contacting API:")


class TestFormatting:
    def test_detail_wins_over_body(self):
        assert format_api_error(403, "{...}", {"detail": "Admin role required"}) == "Error (403): Admin role required"

    def test_body_is_truncated(self):
        message = format_api_error(500, "x" * 1000, None)

        assert message.startswith("Error (500): ")
        assert message.endswith("...")
        assert len(truncate("x" * 1000)) == 500


class TestPageLoader:
    @pytest.mark.asyncio
    async def test_mount_goes_loading_then_ready(self):
        states = []

        async def fetch():
            return 200, "{}", {"ok": True}

        loader = PageLoader(fetch, listener=lambda snap: states.append(snap.state))
        snap = await loader.mount()

        assert states == [PageState.LOADING, PageState.READY]
        assert snap.data == {"ok": True}
        assert loader.mounted is True

    @pytest.mark.asyncio
    async def test_error_then_manual_retry(self):
        responses = [(503, "", {"detail": "Database unavailable"}), (200, "{}", {"status": "healthy"})]

        async def fetch():
            return responses.pop(0)

        loader = PageLoader(fetch)

        failed = await loader.mount()
        assert failed.state == PageState.ERROR
        assert failed.error == "Error (503): Database unavailable"
        assert failed.status_code == 503

        recovered = await loader.retry()
        assert recovered.state == PageState.READY
        assert recovered.data == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_result_after_unmount_is_discarded(self):
        gate = asyncio.Event()
        states = []

        async def fetch():
            await gate.wait()
            return 200, "{}", {"late": True}

        loader = PageLoader(fetch, listener=lambda snap: states.append(snap.state))
        task = asyncio.create_task(loader.mount())
        await asyncio.sleep(0)

        loader.unmount()
        gate.set()
        snap = await task

        assert snap.state == PageState.LOADING
        assert snap.data is None
        assert states == [PageState.LOADING]

    @pytest.mark.asyncio
    async def test_retry_after_unmount_does_nothing(self):
        calls = []

        async def fetch():
            calls.append(1)
            return 500, "boom", None

        loader = PageLoader(fetch)
        await loader.mount()
        loader.unmount()

        snap = await loader.retry()

        assert len(calls) == 1
        assert snap.state == PageState.ERROR

    @pytest.mark.asyncio
    async def test_for_path_uses_api_request(self):
        def handler(request):
            assert request.url.params["upcoming_only"] == "true"
            return httpx.Response(200, json={"data": []})

        async with _client(handler, member_id=1) as client:
            loader = PageLoader.for_path(client, "/events", params={"upcoming_only": "true"})
            snap = await loader.mount()

        assert snap.state == PageState.READY
        assert snap.data == {"data": []}
