"""
Derived fields shared by all source mappers.
"""
from dataclasses import dataclass
from typing import Dict
from urllib.parse import parse_qsl, urlsplit

from user_agents import parse as parse_ua

DESKTOP_OS = frozenset([
    "AIX", "macOS", "Windows", "Linux", "FreeBSD", "OpenBSD", "NetBSD", "DragonFly",
    "Solaris", "Unix", "HP-UX", "QNX", "BeOS", "Haiku", "OS/2", "OpenVMS", "RISC OS",
    "Plan9", "Hurd", "GNU", "Minix", "Arch", "CentOS", "Debian", "Fedora", "Gentoo",
    "Kubuntu", "Mageia", "Mandriva", "Manjaro", "Mint", "Red Hat", "RedHat", "Slackware",
    "SUSE", "Ubuntu", "Xubuntu", "Chrome OS", "Android-x86", "Fuchsia",
])

MOBILE_OS = frozenset([
    "Android", "iOS", "watchOS", "Windows Phone", "Windows Mobile", "Windows CE",
    "BlackBerry OS", "BlackBerry", "Symbian OS", "Symbian", "Palm", "Bada", "Firefox OS",
    "KaiOS", "MeeGo", "Maemo", "Sailfish", "Tizen", "WebOS", "HarmonyOS", "OpenHarmony",
    "RIM Tablet OS", "Series40", "Ubuntu Touch",
])

TV_OS = frozenset(["Chromecast", "tvOS", "NetTV", "Roku", "webOS TV", "Android TV"])

GAMING_OS = frozenset(["PlayStation", "Xbox", "Nintendo"])

EMBEDDED_OS = frozenset(["Windows IoT", "Contiki", "Raspbian", "Morph OS", "Pico", "NetRange"])

# ua-parser family names that differ from the names stored for live traffic
OS_FAMILY_ALIASES = {
    "Mac OS X": "macOS",
    "Mac OS": "macOS",
    "Windows XP": "Windows",
    "Windows Vista": "Windows",
    "Windows 7": "Windows",
    "Windows 8": "Windows",
    "Windows 8.1": "Windows",
    "Windows 10": "Windows",
    "Windows 11": "Windows",
    "Chrome OS": "Chrome OS",
}


@dataclass(frozen=True)
class UserAgentInfo:
    """Browser and operating system derived from a user agent string."""
    browser: str
    browser_version: str
    operating_system: str
    operating_system_version: str


def parse_user_agent(user_agent: str) -> UserAgentInfo:
    """Extract browser and OS families (with major/full versions) from a user agent."""
    if not user_agent:
        return UserAgentInfo("", "", "", "")

    ua = parse_ua(user_agent)
    browser = ua.browser.family if ua.browser.family != "Other" else ""
    os_family = ua.os.family if ua.os.family != "Other" else ""
    browser_major = str(ua.browser.version[0]) if browser and ua.browser.version else ""

    return UserAgentInfo(
        browser=browser,
        browser_version=browser_major,
        operating_system=OS_FAMILY_ALIASES.get(os_family, os_family),
        operating_system_version=ua.os.version_string if os_family else "",
    )


def get_device_type(screen_width: int, screen_height: int, os_name: str = "") -> str:
    """Classify a device from its OS family, falling back to screen size."""
    if os_name:
        if os_name in DESKTOP_OS:
            return "Desktop"
        if os_name in MOBILE_OS:
            return "Mobile"
        if os_name in TV_OS:
            return "TV"
        if os_name in GAMING_OS:
            return "Console"
        if os_name in EMBEDDED_OS:
            return "Embedded"

    larger = max(screen_width, screen_height)
    smaller = min(screen_width, screen_height)
    if larger > 1024:
        return "Desktop"
    if larger > 768 and smaller > 600:
        return "Tablet"
    return "Mobile"


def get_all_url_params(querystring: str) -> Dict[str, str]:
    """Decode a query string (with or without the leading '?') into a dict."""
    if not querystring:
        return {}
    query = querystring[1:] if querystring.startswith("?") else querystring
    return dict(parse_qsl(query, keep_blank_values=True))


def strip_www(hostname: str) -> str:
    hostname = hostname.lower()
    return hostname[4:] if hostname.startswith("www.") else hostname


def get_referrer_domain(referrer: str) -> str:
    """Host of a referrer URL without the www. prefix; empty when unparseable."""
    if not referrer:
        return ""
    try:
        host = urlsplit(referrer if "//" in referrer else f"//{referrer}").hostname or ""
    except ValueError:
        return ""
    return strip_www(host)


def clear_self_referrer(referrer: str, hostname: str) -> str:
    """Drop referrers that point back at the tracked site itself."""
    if not referrer or not hostname:
        return referrer
    if get_referrer_domain(referrer) == strip_www(hostname):
        return ""
    return referrer
