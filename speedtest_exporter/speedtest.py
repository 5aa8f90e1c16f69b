"""speedtest.net client used by the refresher.

The refresher only depends on the `Backend` protocol; `SpeedtestClient` is
the production implementation on top of httpx. Every call is a coroutine so
cancelling the scheduler task aborts an in-flight test.

Measurement:
    latency   -- best of PING_COUNT GETs of latency.txt
    jitter    -- mean absolute difference of consecutive ping RTTs
    download  -- concurrent GETs of the server's random JPEG files
    upload    -- concurrent POSTs of a random payload to upload.php
Throughput is reported in bytes per second.
"""

import asyncio
import logging
import os
import time
from typing import Protocol, Sequence
from xml.etree import ElementTree

import httpx

from .errors import FetchError, MeasurementError
from .models import Endpoint, Measurement, RequesterInfo
from .stats import haversine_km, jitter_ms, latency_ms, throughput_bps

logger = logging.getLogger(__name__)

CONFIG_URL = "https://www.speedtest.net/speedtest-config.php"
SERVERS_URL = "https://www.speedtest.net/api/js/servers"
SERVER_LIMIT = 10

USER_AGENT = "speedtest-exporter/0.1.0"
DEFAULT_TIMEOUT = 30.0

PING_COUNT = 10
DOWNLOAD_SIZES = (350, 500, 750, 1000, 1500, 2000)
DOWNLOAD_REPEAT = 2
UPLOAD_SIZE = 1024 * 1024
UPLOAD_COUNT = 8
DEFAULT_CONNECTIONS = 4

class Backend(Protocol):
    """What a refresh cycle needs from the outside world."""

    async def fetch_requester_info(self) -> RequesterInfo:
        ...

    async def fetch_endpoints(self, requester: RequesterInfo | None = None) -> list[Endpoint]:
        ...

    async def measure(self, endpoint: Endpoint) -> Measurement:
        ...

    async def aclose(self) -> None:
        ...

class SpeedtestClient:
    """Backend talking to speedtest.net and its test servers."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        ping_count: int = PING_COUNT,
        download_sizes: Sequence[int] = DOWNLOAD_SIZES,
        download_repeat: int = DOWNLOAD_REPEAT,
        upload_size: int = UPLOAD_SIZE,
        upload_count: int = UPLOAD_COUNT,
        connections: int = DEFAULT_CONNECTIONS,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout
        self.ping_count = ping_count
        self.download_sizes = tuple(download_sizes)
        self.download_repeat = download_repeat
        self.upload_size = upload_size
        self.upload_count = upload_count
        self.connections = connections

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # -------------------------------------------------------------------
    # Directory
    # -------------------------------------------------------------------

    async def fetch_requester_info(self) -> RequesterInfo:
        logger.debug("fetching user information", extra={"event": "speedtest.user"})
        try:
            resp = await self._http().get(CONFIG_URL)
            resp.raise_for_status()
            root = ElementTree.fromstring(resp.content)
        except (httpx.HTTPError, ElementTree.ParseError) as exc:
            raise FetchError(f"could not fetch user information: {exc}") from exc
        return parse_requester_info(root)

    async def fetch_endpoints(self, requester: RequesterInfo | None = None) -> list[Endpoint]:
        logger.debug("fetching server list", extra={"event": "speedtest.servers"})
        try:
            resp = await self._http().get(
                SERVERS_URL,
                params={"engine": "js", "https_functional": "true", "limit": SERVER_LIMIT},
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise FetchError(f"could not fetch server list: {exc}") from exc
        servers = parse_server_list(data, requester)
        logger.debug(
            "server list fetched",
            extra={"event": "speedtest.servers", "extra_fields": {"count": len(servers)}},
        )
        return servers

    # -------------------------------------------------------------------
    # Measurement
    # -------------------------------------------------------------------

    async def measure(self, endpoint: Endpoint) -> Measurement:
        base = endpoint_base_url(endpoint)
        logger.debug(
            "running speedtest (ping, download, upload)",
            extra={"event": "speedtest.run", "extra_fields": {"server_id": endpoint.id, "base": base}},
        )
        try:
            rtts = await self._ping(base)
            download = await self._download(base)
            upload = await self._upload(base)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            raise MeasurementError(f"speedtest failed: {exc}") from exc

        result = Measurement(
            latency_ms=latency_ms(rtts),
            jitter_ms=jitter_ms(rtts),
            download_bps=download,
            upload_bps=upload,
        )
        logger.debug(
            "speedtest completed",
            extra={
                "event": "speedtest.done",
                "extra_fields": {
                    "latency_ms": result.latency_ms,
                    "jitter_ms": result.jitter_ms,
                    "download_bps": result.download_bps,
                    "upload_bps": result.upload_bps,
                },
            },
        )
        return result

    async def _ping(self, base: str) -> list[float]:
        http = self._http()
        rtts: list[float] = []
        for i in range(self.ping_count):
            t0 = time.perf_counter()
            resp = await http.get(f"{base}/latency.txt", params={"x": f"{time.time()}.{i}"})
            resp.raise_for_status()
            rtts.append((time.perf_counter() - t0) * 1000.0)
        return rtts

    async def _download(self, base: str) -> float:
        http = self._http()
        sem = asyncio.Semaphore(self.connections)
        urls = [
            f"{base}/random{size}x{size}.jpg"
            for size in self.download_sizes
            for _ in range(self.download_repeat)
        ]

        async def fetch(url: str) -> int:
            async with sem:
                resp = await http.get(url)
                resp.raise_for_status()
                return len(resp.content)

        t0 = time.perf_counter()
        sizes = await asyncio.gather(*(fetch(u) for u in urls))
        return throughput_bps(sum(sizes), time.perf_counter() - t0)

    async def _upload(self, base: str) -> float:
        http = self._http()
        sem = asyncio.Semaphore(self.connections)
        payload = os.urandom(self.upload_size)

        async def push() -> int:
            async with sem:
                resp = await http.post(
                    f"{base}/upload.php",
                    content=payload,
                    headers={"Content-Type": "application/octet-stream"},
                )
                resp.raise_for_status()
                return len(payload)

        t0 = time.perf_counter()
        sizes = await asyncio.gather(*(push() for _ in range(self.upload_count)))
        return throughput_bps(sum(sizes), time.perf_counter() - t0)

def parse_requester_info(root: ElementTree.Element) -> RequesterInfo:
    """Extract the <client> element of speedtest-config.php."""
    client = root.find("client")
    if client is None:
        raise FetchError("could not fetch user information: no <client> element")
    return RequesterInfo(
        lat=client.get("lat", ""),
        lon=client.get("lon", ""),
        ip=client.get("ip", ""),
        isp=client.get("isp", ""),
    )

def parse_server_list(data: object, requester: RequesterInfo | None = None) -> list[Endpoint]:
    """Build endpoints from the servers API, closest first.

    When the requester position is known the distance is recomputed from it,
    otherwise the API's own `distance` field is used. Sorting is stable so
    servers at equal distance keep the API order.
    """
    if not isinstance(data, list):
        raise FetchError("could not fetch server list: unexpected payload")

    origin = _position(requester.lat, requester.lon) if requester else None
    servers: list[Endpoint] = []
    for item in data:
        try:
            lat, lon = str(item["lat"]), str(item["lon"])
            position = _position(lat, lon)
            if origin is not None and position is not None:
                distance = haversine_km(origin[0], origin[1], position[0], position[1])
            else:
                distance = float(item.get("distance") or 0.0)
            servers.append(
                Endpoint(
                    id=str(item["id"]),
                    name=str(item.get("name", "")),
                    country=str(item.get("country", "")),
                    lat=lat,
                    lon=lon,
                    distance_km=distance,
                    url=str(item.get("url", "")),
                    host=str(item.get("host", "")),
                    sponsor=str(item.get("sponsor", "")),
                )
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise FetchError(f"could not fetch server list: malformed entry {item!r}") from exc

    servers.sort(key=lambda s: s.distance_km)
    return servers

def endpoint_base_url(endpoint: Endpoint) -> str:
    """Directory URL of the server's test files (where upload.php lives)."""
    if endpoint.url:
        return endpoint.url.rsplit("/", 1)[0]
    return f"http://{endpoint.host}/speedtest"

def _position(lat: str, lon: str) -> tuple[float, float] | None:
    try:
        return float(lat), float(lon)
    except (TypeError, ValueError):
        return None
