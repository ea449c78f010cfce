import math

import pytest
from pydantic import ValidationError as ConfigError

from flowprobe.config import ScanConfig
from flowprobe.errors import SSRFError, ValidationError
from flowprobe.utils.network import ensure_public_hostname, is_private_address
from flowprobe.utils.validation import (
    resolve_navigation_target, sanitize_value, validate_max_pages, validate_navigation_url,
    validate_selector, validate_url,
)


class TestPrivateAddresses:

    @pytest.mark.parametrize("ip", [
        "127.0.0.1", "10.0.0.1", "172.16.5.4", "192.168.0.1", "169.254.169.254",
        "0.0.0.0", "::1", "fe80::1", "fc00::1", "::ffff:127.0.0.1", "224.0.0.1",
    ])
    def test_private(self, ip):
        assert is_private_address(ip)

    @pytest.mark.parametrize("ip", ["8.8.8.8", "1.1.1.1", "2606:4700:4700::1111"])
    def test_public(self, ip):
        assert not is_private_address(ip)

    def test_not_an_ip(self):
        assert not is_private_address("example.com")


class TestEnsurePublicHostname:

    @pytest.mark.asyncio
    async def test_localhost_rejected(self):
        with pytest.raises(SSRFError, match="SSRF protection"):
            await ensure_public_hostname("localhost")

    @pytest.mark.asyncio
    async def test_dns_failure_rejected(self, monkeypatch):
        async def fail(hostname):
            raise OSError("Name or service not known")

        monkeypatch.setattr("flowprobe.utils.network.resolve_hostname", fail)
        with pytest.raises(SSRFError, match="DNS resolution failed"):
            await ensure_public_hostname("nope.invalid")

    @pytest.mark.asyncio
    async def test_any_private_resolution_rejected(self, monkeypatch):
        async def resolve(hostname):
            return ["93.184.216.34", "192.168.1.10"]

        monkeypatch.setattr("flowprobe.utils.network.resolve_hostname", resolve)
        with pytest.raises(SSRFError):
            await ensure_public_hostname("mixed.example.com")

    @pytest.mark.asyncio
    async def test_cache_avoids_second_lookup(self, monkeypatch):
        calls = []

        async def resolve(hostname):
            calls.append(hostname)
            return ["93.184.216.34"]

        monkeypatch.setattr("flowprobe.utils.network.resolve_hostname", resolve)
        cache: dict = {}
        await ensure_public_hostname("example.com", cache)
        await ensure_public_hostname("EXAMPLE.com", cache)

        assert calls == ["example.com"]
        assert cache == {"example.com": None}


class TestValidateUrl:

    def test_accepts_public_https(self):
        assert validate_url(" https://example.com/a ") == "https://example.com/a"

    @pytest.mark.parametrize("url", ["ftp://example.com", "javascript:alert(1)", "file:///etc/passwd"])
    def test_rejects_unsafe_schemes(self, url):
        with pytest.raises(ValidationError, match="Unsafe URL scheme"):
            validate_url(url)

    def test_rejects_missing_scheme(self):
        with pytest.raises(ValidationError):
            validate_url("example.com")

    @pytest.mark.parametrize("url", ["http://127.0.0.1", "http://10.0.0.1:8080/x", "http://[::1]/"])
    def test_rejects_private_literals(self, url):
        with pytest.raises(SSRFError, match="SSRF protection"):
            validate_url(url)


class TestNavigation:

    def test_relative_path_resolved_and_accepted(self):
        target = resolve_navigation_target("/pricing", "https://example.com")
        assert target == "https://example.com/pricing"
        assert validate_navigation_url(target, "https://example.com") == "https://example.com/pricing"

    def test_subdomain_allowed(self):
        assert validate_navigation_url("https://app.example.com/x", "https://example.com")

    def test_other_host_rejected(self):
        with pytest.raises(ValidationError, match="blocked"):
            validate_navigation_url("https://evil.com/", "https://example.com")

    def test_lookalike_host_rejected(self):
        with pytest.raises(ValidationError):
            validate_navigation_url("https://notexample.com/", "https://example.com")

    def test_absolute_target_untouched(self):
        assert resolve_navigation_target("https://x.com/a", "https://example.com") == "https://x.com/a"


class TestSelectorsAndValues:

    def test_selector_length_limit(self):
        assert validate_selector("a" * 500)
        with pytest.raises(ValidationError, match="too long"):
            validate_selector("a" * 501)

    def test_sanitize_value(self):
        assert sanitize_value("hi<script>alert(1)</script>") == "hi"
        assert "javascript:" not in sanitize_value("javascript:alert(1)")
        assert "onerror=" not in sanitize_value('x" onerror="y')
        assert sanitize_value("test@example.com") == "test@example.com"


class TestMaxPages:

    @pytest.mark.parametrize("value,expected", [
        (None, 50), (math.nan, 50), (-3, 50), (0, 500), (1, 1), (20, 20), (10_000, 500), (2.7, 2),
    ])
    def test_clamping(self, value, expected):
        assert validate_max_pages(value) == expected


class TestScanConfig:

    def test_defaults(self):
        config = ScanConfig(url="https://example.com")
        assert config.max_pages == 50
        assert config.max_concurrency == 3
        assert config.max_page_retries == 1
        assert config.credentials is None

    def test_scheme_added(self):
        assert ScanConfig(url="example.com").url == "https://example.com"

    def test_max_pages_clamped(self):
        assert ScanConfig(url="https://example.com", max_pages=0).max_pages == 500
        assert ScanConfig(url="https://example.com", max_pages=9999).max_pages == 500

    def test_private_target_rejected(self):
        with pytest.raises(ConfigError):
            ScanConfig(url="http://192.168.1.1")

    def test_concurrency_bounds(self):
        with pytest.raises(ConfigError):
            ScanConfig(url="https://example.com", max_concurrency=0)
