# ==============================================================================
# Tests for the Environment Fingerprint Resolver
# ==============================================================================
"""
Tests for device, browser and OS classification from the user agent.
"""

import pytest

from sitepulse.core.environment import BrowsingContext
from sitepulse.core.fingerprint import (
    classify_browser,
    classify_device_type,
    classify_os,
    get_device_info,
)
from sitepulse.core.models import DeviceType

IPAD_UA = (
    "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
ANDROID_UA = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0 Mobile Safari/537.36"
)
FIREFOX_LINUX_UA = "Mozilla/5.0 (X11; Linux x86_64; rv:127.0) Gecko/20100101 Firefox/127.0"
EDGE_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0 Safari/537.36 Edg/126.0"
)
SAFARI_MAC_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_5) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.5 Safari/605.1.15"
)


# ==============================================================================
# Device type
# ==============================================================================


class TestDeviceType:
    """Tablet patterns win over mobile patterns; desktop is the default."""

    def test_ipad_is_tablet(self):
        # The iPad UA also contains "Mobile"
        assert classify_device_type(IPAD_UA) == DeviceType.TABLET

    def test_iphone_is_mobile(self):
        assert classify_device_type(IPHONE_UA) == DeviceType.MOBILE

    def test_android_phone_is_mobile(self):
        assert classify_device_type(ANDROID_UA) == DeviceType.MOBILE

    def test_desktop_default(self):
        assert classify_device_type(SAFARI_MAC_UA) == DeviceType.DESKTOP

    def test_empty_user_agent(self):
        assert classify_device_type("") == DeviceType.DESKTOP


# ==============================================================================
# Browser and OS
# ==============================================================================


class TestBrowser:
    @pytest.mark.parametrize(
        "user_agent,expected",
        [
            (FIREFOX_LINUX_UA, "Firefox"),
            (SAFARI_MAC_UA, "Safari"),
            (ANDROID_UA, "Chrome"),
            ("curl/8.0", "Unknown"),
        ],
    )
    def test_classification(self, user_agent, expected):
        assert classify_browser(user_agent) == expected

    def test_first_match_wins(self):
        """Edge carries "chrome" in its UA and is reported as Chrome."""
        assert classify_browser(EDGE_UA) == "Chrome"


class TestOs:
    @pytest.mark.parametrize(
        "user_agent,expected",
        [
            (EDGE_UA, "Windows"),
            (SAFARI_MAC_UA, "macOS"),
            (FIREFOX_LINUX_UA, "Linux"),
            ("", "Unknown"),
        ],
    )
    def test_classification(self, user_agent, expected):
        assert classify_os(user_agent) == expected

    def test_android_reports_linux(self):
        # Android UAs contain "Linux", which is checked first
        assert classify_os(ANDROID_UA) == "Linux"

    def test_iphone_reports_macos(self):
        # "like Mac OS X" matches "mac" before "ios" is checked
        assert classify_os(IPHONE_UA) == "macOS"


# ==============================================================================
# get_device_info
# ==============================================================================


class TestGetDeviceInfo:
    def test_collects_context_metrics(self):
        context = BrowsingContext(
            user_agent=IPHONE_UA,
            screen_width=390,
            screen_height=844,
            viewport_width=390,
            viewport_height=664,
            color_depth=32,
            language="de-DE",
            cookie_enabled=False,
            online=False,
        )
        info = get_device_info(context)

        assert info.device_type == DeviceType.MOBILE
        assert info.browser == "Safari"
        assert info.screen_resolution == "390x844"
        assert info.viewport_size == "390x664"
        assert info.color_depth == 32
        assert info.language == "de-DE"
        assert info.cookie_enabled is False
        assert info.online_status is False

    def test_is_pure(self):
        context = BrowsingContext(user_agent=FIREFOX_LINUX_UA)
        assert get_device_info(context) == get_device_info(context)
