"""
IP → human-readable location via ipinfo.io.

Best-effort only: a lookup never raises and never holds up a login for more
than LOOKUP_TIMEOUT_SECONDS. Loopback/private addresses (and a missing
peer address) short-circuit to "Local Network" without a network call;
anything else that cannot be resolved becomes "Unknown".
"""
import ipaddress
import logging

import httpx

from app.config import settings

logger = logging.getLogger(__name__)

LOOKUP_TIMEOUT_SECONDS = 5.0
LOCAL_NETWORK = "Local Network"
UNKNOWN_LOCATION = "Unknown"


def _is_local(ip) -> bool:
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped:
        ip = ip.ipv4_mapped
    return ip.is_loopback or ip.is_private or ip.is_link_local


def _format_location(data: dict) -> str:
    city = data.get("city") or "Unknown City"
    region = data.get("region") or ""
    country = data.get("country") or "Unknown"

    location = city
    if region and region != city:
        location += f", {region}"
    if country:
        location += f", {country}"
    return location


async def resolve_location(ip_address: str) -> str:
    raw = (ip_address or "").strip()
    if not raw:
        return LOCAL_NETWORK
    try:
        ip = ipaddress.ip_address(raw)
    except ValueError:
        return UNKNOWN_LOCATION

    if _is_local(ip):
        return LOCAL_NETWORK

    if not settings.geolocation_enabled:
        return UNKNOWN_LOCATION

    params = {"token": settings.ipinfo_token} if settings.ipinfo_token else None
    try:
        async with httpx.AsyncClient(timeout=LOOKUP_TIMEOUT_SECONDS) as client:
            response = await client.get(
                f"https://ipinfo.io/{ip}/json",
                params=params,
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            location = _format_location(response.json())
    except httpx.TimeoutException:
        logger.warning(f"Geolocation timeout for {ip}")
        return UNKNOWN_LOCATION
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning(f"Geolocation lookup failed for {ip}: {exc}")
        return UNKNOWN_LOCATION

    logger.debug(f"Geolocation: {ip} → {location}")
    return location
