"""
Request → device fingerprint used by the single-device session policy.

The classification is intentionally coarse (device class + browser family):
two logins are "the same device" when both values match.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from app.services.geolocation_service import resolve_location


@dataclass(frozen=True)
class DeviceContext:
    device: str
    browser: str
    ip_address: str
    location: str

    def describe(self) -> dict:
        return {"device": self.device, "browser": self.browser, "location": self.location}


def parse_user_agent(user_agent: Optional[str]) -> tuple[str, str]:
    """Returns (device, browser). Order of the browser checks matters: Edge and
    Chrome both claim Safari, Edge also claims Chrome."""
    if not user_agent:
        return "Unknown", "Unknown"

    if "Firefox" in user_agent:
        browser = "Firefox"
    elif "Edg" in user_agent:
        browser = "Edge"
    elif "Chrome" in user_agent:
        browser = "Chrome"
    elif "Safari" in user_agent:
        browser = "Safari"
    else:
        browser = "Unknown"

    if "Mobile" in user_agent:
        device = "Mobile"
    elif "Tablet" in user_agent:
        device = "Tablet"
    else:
        device = "Desktop"

    return device, browser


def client_ip(request: Request) -> str:
    return request.client.host if request.client else ""


async def build_device_context(request: Request) -> DeviceContext:
    device, browser = parse_user_agent(request.headers.get("user-agent"))
    ip_address = client_ip(request)
    location = await resolve_location(ip_address)
    return DeviceContext(device=device, browser=browser, ip_address=ip_address, location=location)
