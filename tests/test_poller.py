"""Tests for the driver-side polling worker (``httpx.MockTransport``)."""

import asyncio

import httpx
import pytest

from ride_dispatch.workers.poller import AVAILABLE_RIDES_PATH, AvailableRidesPoller


def _listing(ride_ids, seen=(), suppressed=None) -> dict:
    return {
        "rides": [
            {"ride": {"id": rid}, "is_new": rid not in seen, "distance_to_pickup_km": None}
            for rid in ride_ids
        ],
        "polled_at": "2026-10-19T12:00:00+00:00",
        "next_poll_after_seconds": 30,
        "suppressed": suppressed,
        "active_ride_id": None,
    }


class FakeServer:
    """Serves a scripted sequence of responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        nxt = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(nxt, Exception):
            raise nxt
        if callable(nxt):
            return nxt(request)
        return nxt


def _client(server: FakeServer) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.MockTransport(server), base_url="http://dispatch"
    )


def _echo_listing(ride_ids):
    """Respond like the server: rides in the ``seen`` params are not new."""

    def respond(request: httpx.Request) -> httpx.Response:
        seen = request.url.params.get_list("seen")
        return httpx.Response(200, json=_listing(ride_ids, seen=seen))

    return respond


class TestPollOnce:
    @pytest.mark.asyncio
    async def test_reports_new_rides_once(self):
        server = FakeServer(_echo_listing(["r1", "r2"]))
        received = []

        async def on_new(rides):
            received.append([r["ride"]["id"] for r in rides])

        async with _client(server) as client:
            poller = AvailableRidesPoller(client, on_new, retry_delay_seconds=0)
            first = await poller.poll_once()
            second = await poller.poll_once()

        assert [r["ride"]["id"] for r in first] == ["r1", "r2"]
        assert second == []
        assert received == [["r1", "r2"]]
        assert server.requests[0].url.path == AVAILABLE_RIDES_PATH
        assert server.requests[1].url.params.get_list("seen") == ["r1", "r2"]

    @pytest.mark.asyncio
    async def test_seen_set_tracks_the_latest_listing(self):
        server = FakeServer(
            _echo_listing(["r1", "r2"]),
            _echo_listing(["r2", "r3"]),
        )
        async with _client(server) as client:
            poller = AvailableRidesPoller(client, _noop)
            await poller.poll_once()
            new = await poller.poll_once()

        assert [r["ride"]["id"] for r in new] == ["r3"]
        assert poller.seen_ride_ids == {"r2", "r3"}

    @pytest.mark.asyncio
    async def test_suppressed_listing_resets_seen(self):
        server = FakeServer(
            _echo_listing(["r1"]),
            httpx.Response(200, json=_listing([], suppressed="active_ride")),
        )
        async with _client(server) as client:
            poller = AvailableRidesPoller(client, _noop)
            await poller.poll_once()
            assert await poller.poll_once() == []

        assert poller.seen_ride_ids == set()


class TestRetries:
    @pytest.mark.asyncio
    async def test_retries_store_unavailable(self):
        server = FakeServer(
            httpx.Response(503, json={"kind": "StoreUnavailableError"}),
            httpx.Response(503, json={"kind": "StoreUnavailableError"}),
            httpx.Response(200, json=_listing(["r1"])),
        )
        async with _client(server) as client:
            poller = AvailableRidesPoller(
                client, _noop, retry_delay_seconds=0, max_retries=3
            )
            new = await poller.poll_once()

        assert len(server.requests) == 3
        assert [r["ride"]["id"] for r in new] == ["r1"]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        server = FakeServer(httpx.ConnectError("refused"))
        async with _client(server) as client:
            poller = AvailableRidesPoller(
                client, _noop, retry_delay_seconds=0, max_retries=2
            )
            assert await poller.poll_once() == []

        assert len(server.requests) == 3

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        server = FakeServer(
            httpx.Response(403, json={"kind": "AuthorizationError", "detail": "no"})
        )
        async with _client(server) as client:
            poller = AvailableRidesPoller(
                client, _noop, retry_delay_seconds=0, max_retries=3
            )
            assert await poller.poll_once() == []

        assert len(server.requests) == 1


class TestLoop:
    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        server = FakeServer(_echo_listing(["r1"]))
        delivered = asyncio.Event()

        async def on_new(rides):
            delivered.set()

        async with _client(server) as client:
            poller = AvailableRidesPoller(client, on_new, interval_seconds=0.01)
            await poller.start()
            await asyncio.wait_for(delivered.wait(), timeout=2)
            await poller.stop()

        assert poller._task.done()
        assert len(server.requests) >= 1


async def _noop(rides):
    return None
