import httpx
import pytest

from speedtest_exporter.errors import FetchError, MeasurementError
from speedtest_exporter.models import Endpoint, RequesterInfo
from speedtest_exporter.speedtest import SpeedtestClient, endpoint_base_url, parse_server_list

from fakes import make_endpoint

CONFIG_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<settings>
<client ip="203.0.113.7" lat="52.3700" lon="4.8900" isp="Example ISP" isprating="3.7" country="NL"/>
</settings>
"""

SERVERS = [
    {"url": "http://far.example.net:8080/speedtest/upload.php", "lat": "48.8566", "lon": "2.3522",
     "distance": 1, "name": "Paris", "country": "France", "sponsor": "Far", "id": "200",
     "host": "far.example.net:8080"},
    {"url": "http://near.example.net:8080/speedtest/upload.php", "lat": "52.3667", "lon": "4.9000",
     "distance": 900, "name": "Amsterdam", "country": "Netherlands", "sponsor": "Near", "id": "100",
     "host": "near.example.net:8080"},
]

REQUESTER = RequesterInfo(lat="52.3700", lon="4.8900", ip="203.0.113.7", isp="Example ISP")

def _client(handler) -> SpeedtestClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SpeedtestClient(
        http, ping_count=3, download_sizes=(350,), download_repeat=2, upload_size=1024, upload_count=2
    )

def _directory(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/speedtest-config.php":
        return httpx.Response(200, content=CONFIG_XML)
    if request.url.path == "/api/js/servers":
        return httpx.Response(200, json=SERVERS)
    return httpx.Response(404)

@pytest.mark.asyncio
async def test_fetch_requester_info():
    client = _client(_directory)
    info = await client.fetch_requester_info()
    assert info == REQUESTER

@pytest.mark.asyncio
async def test_fetch_endpoints_sorted_closest_first():
    client = _client(_directory)
    servers = await client.fetch_endpoints(REQUESTER)
    assert [s.id for s in servers] == ["100", "200"]
    assert servers[0].distance_km < 5
    assert 400 < servers[1].distance_km < 450
    assert servers[0].name == "Amsterdam"
    assert servers[0].country == "Netherlands"

def test_parse_server_list_without_requester_uses_api_distance():
    servers = parse_server_list(SERVERS)
    assert [s.id for s in servers] == ["200", "100"]
    assert servers[0].distance_km == 1.0

def test_parse_server_list_rejects_garbage():
    with pytest.raises(FetchError):
        parse_server_list({"not": "a list"})
    with pytest.raises(FetchError):
        parse_server_list([{"name": "no id"}])

@pytest.mark.asyncio
async def test_directory_http_errors_become_fetch_errors():
    client = _client(lambda request: httpx.Response(500))
    with pytest.raises(FetchError):
        await client.fetch_requester_info()
    with pytest.raises(FetchError):
        await client.fetch_endpoints()

@pytest.mark.asyncio
async def test_bad_payloads_become_fetch_errors():
    client = _client(lambda request: httpx.Response(200, content=b"<<not xml"))
    with pytest.raises(FetchError):
        await client.fetch_requester_info()
    with pytest.raises(FetchError):
        await client.fetch_endpoints()

@pytest.mark.asyncio
async def test_fetch_requester_info_without_client_element():
    client = _client(lambda request: httpx.Response(200, content=b"<settings/>"))
    with pytest.raises(FetchError):
        await client.fetch_requester_info()

@pytest.mark.asyncio
async def test_measure():
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(f"{request.method} {request.url.path}")
        if request.url.path.endswith("/latency.txt"):
            return httpx.Response(200, text="test=test")
        if request.url.path.endswith(".jpg"):
            return httpx.Response(200, content=b"x" * 4096)
        if request.url.path.endswith("/upload.php"):
            return httpx.Response(200, text="size=1024")
        return httpx.Response(404)

    client = _client(handler)
    m = await client.measure(make_endpoint("5"))

    assert m.latency_ms >= 0
    assert m.jitter_ms >= 0
    assert m.download_bps > 0
    assert m.upload_bps > 0
    assert seen.count("GET /speedtest/latency.txt") == 3
    assert seen.count("GET /speedtest/random350x350.jpg") == 2
    assert seen.count("POST /speedtest/upload.php") == 2

@pytest.mark.asyncio
async def test_measure_failure_becomes_measurement_error():
    client = _client(lambda request: httpx.Response(503))
    with pytest.raises(MeasurementError):
        await client.measure(make_endpoint("5"))

def test_endpoint_base_url():
    assert endpoint_base_url(make_endpoint("5")) == "http://speedtest5.example.net:8080/speedtest"
    bare = Endpoint(id="1", name="n", country="c", lat="0", lon="0", host="h:80")
    assert endpoint_base_url(bare) == "http://h:80/speedtest"

@pytest.mark.asyncio
async def test_aclose_leaves_injected_client_open():
    http = httpx.AsyncClient(transport=httpx.MockTransport(_directory))
    client = SpeedtestClient(http)
    await client.aclose()
    assert not http.is_closed
    await http.aclose()

@pytest.mark.asyncio
async def test_measure_without_server_address_is_measurement_error():
    client = _client(lambda request: httpx.Response(200, text="test=test"))
    nowhere = Endpoint(id="1", name="n", country="c", lat="0", lon="0")
    with pytest.raises(MeasurementError):
        await client.measure(nowhere)
