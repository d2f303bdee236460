import asyncio

import httpx
import pytest

from app.config import settings
from app.services import geolocation_service
from app.services.geolocation_service import LOCAL_NETWORK, UNKNOWN_LOCATION, resolve_location


@pytest.fixture
def ipinfo(monkeypatch):
    """Routes the lookup through an in-process transport; tests set `ipinfo.handler`."""

    class FakeIpinfo:
        requests = []
        handler = None

    real_client = httpx.AsyncClient

    def handle(request):
        FakeIpinfo.requests.append(request)
        return FakeIpinfo.handler(request)

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handle), **kwargs)

    monkeypatch.setattr(settings, "geolocation_enabled", True)
    monkeypatch.setattr(geolocation_service.httpx, "AsyncClient", client_factory)
    return FakeIpinfo


def lookup(ip):
    return asyncio.run(resolve_location(ip))


class TestLocalAddresses:
    @pytest.mark.parametrize("ip", ["127.0.0.1", "10.1.2.3", "192.168.0.10", "::1", "::ffff:127.0.0.1", "fe80::1"])
    def test_local_addresses_skip_the_network(self, ipinfo, ip):
        assert lookup(ip) == LOCAL_NETWORK
        assert ipinfo.requests == []

    @pytest.mark.parametrize("ip", ["", None, "   "])
    def test_missing_address_is_local(self, ipinfo, ip):
        assert lookup(ip) == LOCAL_NETWORK
        assert ipinfo.requests == []

    def test_unparseable_address(self, ipinfo):
        assert lookup("testclient") == UNKNOWN_LOCATION
        assert ipinfo.requests == []


class TestRemoteLookup:
    def test_formats_city_region_country(self, ipinfo):
        ipinfo.handler = lambda request: httpx.Response(
            200, json={"city": "Lagos", "region": "Lagos", "country": "NG"},
        )
        assert lookup("8.8.8.8") == "Lagos, NG"
        assert ipinfo.requests[0].url.path == "/8.8.8.8/json"

    def test_region_kept_when_different(self, ipinfo):
        ipinfo.handler = lambda request: httpx.Response(
            200, json={"city": "Austin", "region": "Texas", "country": "US"},
        )
        assert lookup("8.8.4.4") == "Austin, Texas, US"

    def test_timeout_degrades_to_unknown(self, ipinfo):
        def timeout(request):
            raise httpx.ReadTimeout("too slow", request=request)

        ipinfo.handler = timeout
        assert lookup("8.8.8.8") == UNKNOWN_LOCATION

    def test_http_error_degrades_to_unknown(self, ipinfo):
        ipinfo.handler = lambda request: httpx.Response(429, json={"error": "rate limited"})
        assert lookup("8.8.8.8") == UNKNOWN_LOCATION

    def test_malformed_body_degrades_to_unknown(self, ipinfo):
        ipinfo.handler = lambda request: httpx.Response(200, content=b"<html>")
        assert lookup("8.8.8.8") == UNKNOWN_LOCATION

    def test_disabled_lookup_never_calls_out(self, ipinfo, monkeypatch):
        monkeypatch.setattr(settings, "geolocation_enabled", False)
        assert lookup("8.8.8.8") == UNKNOWN_LOCATION
        assert ipinfo.requests == []
