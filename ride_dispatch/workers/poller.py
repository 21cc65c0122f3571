"""
Driver-side Polling Worker
==========================

The dispatch engine never pushes rides; the driver's client pulls
``GET /api/v1/rides/available`` on an interval.  This worker is that
client loop, kept outside the engine so the cadence is configured where
it runs.

Retry policy
------------
* Transport errors and ``503`` (store unavailable) are retried up to
  ``max_retries`` times, ``retry_delay_seconds`` apart.
* Any other error response is logged and not retried; the next regular
  poll happens after the interval.

Poll state (seen ride ids, task, stop event) lives on the instance and is
sent to the server as the poll cursor.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import httpx

from ride_dispatch.config import settings

logger = logging.getLogger(__name__)

AVAILABLE_RIDES_PATH = "/api/v1/rides/available"

NewRidesCallback = Callable[[list[dict]], Awaitable[None]]


class AvailableRidesPoller:
    def __init__(
        self,
        client: httpx.AsyncClient,
        on_new_rides: NewRidesCallback,
        *,
        interval_seconds: float = settings.poll_interval_seconds,
        retry_delay_seconds: float = settings.poll_retry_delay_seconds,
        max_retries: int = settings.poll_max_retries,
    ):
        self.client = client
        self.on_new_rides = on_new_rides
        self.interval_seconds = interval_seconds
        self.retry_delay_seconds = retry_delay_seconds
        self.max_retries = max_retries
        self.seen_ride_ids: set[str] = set()
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None

    # ── Public API ────────────────────────────────────────────────────

    async def start(self) -> None:
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        logger.info("Ride poller started (interval=%ss)", self.interval_seconds)

    async def stop(self) -> None:
        if self._stop_event:
            self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Ride poller stopped")

    async def poll_once(self) -> list[dict]:
        """Fetch the listing (with retries) and report rides not seen before.

        Returns the new rides; an empty list when the driver is offline,
        busy, or the listing could not be fetched.
        """
        payload = await self._fetch_with_retries()
        if payload is None:
            return []

        if payload.get("suppressed"):
            logger.debug("Listing suppressed: %s", payload["suppressed"])
            self.seen_ride_ids.clear()
            return []

        rides = payload.get("rides", [])
        new_rides = [r for r in rides if r.get("is_new")]
        # Forget rides that are no longer pending so the cursor stays small
        self.seen_ride_ids = {r["ride"]["id"] for r in rides}
        if new_rides:
            await self.on_new_rides(new_rides)
        return new_rides

    # ── Internals ─────────────────────────────────────────────────────

    async def _fetch_with_retries(self) -> Optional[dict]:
        params = [("seen", ride_id) for ride_id in sorted(self.seen_ride_ids)]
        attempt = 0
        while True:
            try:
                resp = await self.client.get(AVAILABLE_RIDES_PATH, params=params)
            except httpx.HTTPError as exc:
                reason = f"transport error: {exc}"
            else:
                if resp.status_code == 200:
                    return resp.json()
                if resp.status_code != 503:
                    logger.warning(
                        "Listing rejected (%d): %s", resp.status_code, resp.text
                    )
                    return None
                reason = "store unavailable"

            if attempt >= self.max_retries:
                logger.error("Giving up on listing after %d retries (%s)", attempt, reason)
                return None
            attempt += 1
            logger.info(
                "Retrying listing in %ss (%s, attempt %d/%d)",
                self.retry_delay_seconds,
                reason,
                attempt,
                self.max_retries,
            )
            await asyncio.sleep(self.retry_delay_seconds)

    async def _loop(self) -> None:
        """Periodic loop: poll then sleep."""
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Unhandled error while polling rides")
            # Wait for the interval or until stop is signalled
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self.interval_seconds
                )
                break
            except asyncio.TimeoutError:
                pass  # next poll
