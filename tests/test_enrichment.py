"""Tests for channel classification and shared enrichment helpers."""

import pytest

from backfill.services.imports.mappers.channels import get_channel
from backfill.services.imports.mappers.enrichment import (
    clear_self_referrer,
    get_all_url_params,
    get_device_type,
    get_referrer_domain,
    parse_user_agent,
)

from factories import CHROME_WINDOWS_UA

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1"
)


@pytest.mark.parametrize(
    "referrer, querystring, expected",
    [
        ("", "", "Direct"),
        ("https://www.google.com/", "", "Organic Search"),
        ("https://duckduckgo.com/", "", "Organic Search"),
        ("https://t.co/abc", "", "Organic Social"),
        ("https://www.youtube.com/watch?v=1", "", "Organic Video"),
        ("https://chatgpt.com/", "", "AI"),
        ("https://mail.google.com/mail/u/0", "", "Email"),
        ("https://blog.other.org/post", "", "Referral"),
        ("", "?utm_source=google&utm_medium=cpc", "Paid Search"),
        ("", "?gclid=abc123", "Paid Search"),
        ("", "?utm_source=facebook&utm_medium=cpc", "Paid Social"),
        ("", "?utm_medium=display", "Display"),
        ("", "?utm_source=partner-site", "Referral"),
        ("https://www.google.com/", "?utm_medium=newsletter", "Email"),
    ],
)
def test_channel_classification(referrer, querystring, expected):
    assert get_channel(referrer, querystring, "example.com") == expected


def test_internal_navigation():
    assert get_channel("https://example.com/blog", "", "www.example.com") == "Internal"


def test_url_params_are_decoded():
    assert get_all_url_params("?a=1&b=hello%20world&c=") == {"a": "1", "b": "hello world", "c": ""}
    assert get_all_url_params("a=1") == {"a": "1"}
    assert get_all_url_params("") == {}


def test_referrer_domain_handles_bare_hosts():
    assert get_referrer_domain("https://www.Example.com/path") == "example.com"
    assert get_referrer_domain("news.ycombinator.com") == "news.ycombinator.com"
    assert get_referrer_domain("") == ""


def test_self_referrer_is_cleared_only_for_own_host():
    assert clear_self_referrer("https://www.example.com/a", "example.com") == ""
    assert clear_self_referrer("https://other.com/a", "example.com") == "https://other.com/a"
    assert clear_self_referrer("https://other.com/a", "") == "https://other.com/a"


def test_user_agent_parsing():
    desktop = parse_user_agent(CHROME_WINDOWS_UA)
    phone = parse_user_agent(IPHONE_UA)

    assert (desktop.browser, desktop.browser_version, desktop.operating_system) == ("Chrome", "120", "Windows")
    assert phone.operating_system == "iOS"
    assert phone.browser == "Mobile Safari"
    assert parse_user_agent("") == parse_user_agent("")
    assert parse_user_agent("").browser == ""


@pytest.mark.parametrize(
    "width, height, os_name, expected",
    [
        (1920, 1080, "", "Desktop"),
        (1024, 768, "", "Tablet"),
        (390, 844, "", "Mobile"),
        (390, 844, "Windows", "Desktop"),
        (1920, 1080, "Android", "Mobile"),
        (1920, 1080, "tvOS", "TV"),
        (1280, 720, "PlayStation", "Console"),
    ],
)
def test_device_type(width, height, os_name, expected):
    assert get_device_type(width, height, os_name) == expected
