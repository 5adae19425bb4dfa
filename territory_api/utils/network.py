"""
Access to the IGN WMS map service.

All GetMap calls of the process go through one `RequestQueue` so the service
sees at most one request every 1.5 seconds.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, Sequence, TypeVar
from urllib.parse import urlencode

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_WMS_BASE_URL = "https://data.geopf.fr/wms-r"
DEFAULT_WMS_LAYER = "GEOGRAPHICALGRIDSYSTEMS.PLANIGNV2"
DEFAULT_WMS_FORMAT = "image/png"
DEFAULT_WMS_CRS = "EPSG:4326"
REQUEST_TIMEOUT_SECONDS = 60.0
MIN_REQUEST_INTERVAL_SECONDS = 1.5


class UpstreamError(RuntimeError):
    """Raised when the map service cannot deliver an image after all retries."""


# PUBLIC_INTERFACE
def build_ign_url(
    bbox: Sequence[float],
    size: int,
    base_url: str = DEFAULT_WMS_BASE_URL,
    layer: str = DEFAULT_WMS_LAYER,
    image_format: str = DEFAULT_WMS_FORMAT,
    crs: str = DEFAULT_WMS_CRS,
) -> str:
    """
    Build a WMS 1.3.0 GetMap URL for a square image of `size` pixels.

    WMS 1.3.0 with EPSG:4326 expects the bbox in lat,lon axis order; other
    CRS use lon,lat.
    """
    min_lon, min_lat, max_lon, max_lat = bbox
    if crs == "EPSG:4326":
        bbox_str = f"{min_lat},{min_lon},{max_lat},{max_lon}"
    else:
        bbox_str = f"{min_lon},{min_lat},{max_lon},{max_lat}"

    params = {
        "SERVICE": "WMS",
        "VERSION": "1.3.0",
        "REQUEST": "GetMap",
        "LAYERS": layer,
        "STYLES": "",
        "CRS": crs,
        "BBOX": bbox_str,
        "WIDTH": str(size),
        "HEIGHT": str(size),
        "FORMAT": image_format,
    }
    return f"{base_url}?{urlencode(params)}"


async def _get(client: httpx.AsyncClient, url: str) -> bytes:
    logger.debug("Requesting %s", url)
    response = await client.get(url)
    if response.status_code >= 400:
        logger.error("Map service returned HTTP %s", response.status_code)
    response.raise_for_status()
    return response.content


# PUBLIC_INTERFACE
async def load_image_bytes(
    url: str,
    retries: int = 3,
    delay_ms: int = 1000,
    client: Optional[httpx.AsyncClient] = None,
) -> bytes:
    """
    Download `url`, retrying `retries` times in total with `delay_ms` between attempts.

    Raises:
        UpstreamError: when every attempt failed.
    """
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS, follow_redirects=True)
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(retries, 1)),
            wait=wait_fixed(delay_ms / 1000),
            retry=retry_if_exception_type(httpx.HTTPError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
        ):
            with attempt:
                return await _get(client, url)
    except RetryError as exc:
        cause = exc.last_attempt.exception()
        raise UpstreamError(f"Request failed after {retries} attempts: {cause}") from cause
    finally:
        if owns_client:
            await client.aclose()
    raise UpstreamError("Request was never attempted")


class RequestQueue:
    """
    Serializes coroutines and spaces their starts by at least `min_interval` seconds.
    """

    def __init__(self, min_interval: float = MIN_REQUEST_INTERVAL_SECONDS) -> None:
        self.min_interval = min_interval
        self._lock = asyncio.Lock()
        self._last_request = 0.0

    async def add(self, request: Callable[[], Awaitable[T]]) -> T:
        """Run `request` once every earlier request has run and the interval has elapsed."""
        async with self._lock:
            elapsed = time.monotonic() - self._last_request
            if elapsed < self.min_interval:
                await asyncio.sleep(self.min_interval - elapsed)
            self._last_request = time.monotonic()
            return await request()


wms_queue = RequestQueue()
