# ==============================================================================
# Environment Fingerprint Resolver
# ==============================================================================
"""
Device, browser and OS classification from the browsing context.

Pure functions of the user agent and the context's screen metrics: no I/O and
no error cases. Classification is ordered substring/pattern matching where the
first match wins, so e.g. an Edge user agent (which also carries "chrome")
classifies as Chrome.
"""

import re

from sitepulse.core.environment import BrowsingContext
from sitepulse.core.models import UNKNOWN, DeviceInfo, DeviceType

TABLET_PATTERN = re.compile(r"tablet|ipad|playbook|silk", re.IGNORECASE)
MOBILE_PATTERN = re.compile(
    r"mobile|iphone|ipod|android|blackberry|opera|mini|windows\sce|palm|smartphone|iemobile",
    re.IGNORECASE,
)

# (substring, label) in match order
BROWSER_MARKERS = (
    ("firefox", "Firefox"),
    ("chrome", "Chrome"),
    ("safari", "Safari"),
    ("edge", "Edge"),
    ("opera", "Opera"),
)

OS_MARKERS = (
    ("windows", "Windows"),
    ("mac", "macOS"),
    ("linux", "Linux"),
    ("android", "Android"),
    ("ios", "iOS"),
)


def _first_match(user_agent: str, markers: tuple[tuple[str, str], ...]) -> str:
    lowered = user_agent.lower()
    for marker, label in markers:
        if marker in lowered:
            return label
    return UNKNOWN


def classify_device_type(user_agent: str) -> DeviceType:
    """Tablet patterns are checked before mobile patterns; default is desktop."""
    if TABLET_PATTERN.search(user_agent):
        return DeviceType.TABLET
    if MOBILE_PATTERN.search(user_agent):
        return DeviceType.MOBILE
    return DeviceType.DESKTOP


def classify_browser(user_agent: str) -> str:
    return _first_match(user_agent, BROWSER_MARKERS)


def classify_os(user_agent: str) -> str:
    return _first_match(user_agent, OS_MARKERS)


def get_device_info(context: BrowsingContext) -> DeviceInfo:
    """
    Derive the device fingerprint of a browsing context.

    Args:
        context: The tab being instrumented

    Returns:
        DeviceInfo with device class, browser, OS and screen/viewport metrics
    """
    user_agent = context.user_agent
    return DeviceInfo(
        device_type=classify_device_type(user_agent),
        browser=classify_browser(user_agent),
        os=classify_os(user_agent),
        screen_resolution=f"{context.screen_width}x{context.screen_height}",
        viewport_size=f"{context.viewport_width}x{context.viewport_height}",
        color_depth=context.color_depth,
        language=context.language,
        cookie_enabled=context.cookie_enabled,
        online_status=context.online,
    )
