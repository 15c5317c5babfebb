"""
auth/device.py -- Device fingerprint extraction from a User-Agent string.

user-agents wraps the ua-parser regex database, so browser and OS families
are reported with the same names as other ua-parser ports ("Chrome",
"Mobile Safari", "Windows", "iOS", ...).
"""

from __future__ import annotations

from user_agents import parse

from auth.models import DeviceFingerprint


def fingerprint_from_user_agent(raw: str | None) -> DeviceFingerprint:
    """Return the browser family, platform family and major.minor.patch version.

    An absent or unrecognized User-Agent yields "Other"/"Other"/"".
    """
    ua = parse(raw or "")
    version = ".".join(str(part) for part in ua.browser.version[:3])
    return DeviceFingerprint(
        browser_family=ua.browser.family,
        platform_family=ua.os.family,
        version_string=version,
    )
