"""
Tests for hookgate/utils/source_ip.py - CIDR allow-listing.
"""
import pytest

from hookgate.utils.source_ip import SourceIPFilter, ip_allowed, parse_allow_list


class TestSourceIPFilter:
    def test_no_allow_list_allows_everything(self):
        assert ip_allowed("203.0.113.9", None) is True
        assert ip_allowed(None, None) is True
        assert SourceIPFilter().allowed("8.8.8.8") is True

    def test_empty_allow_list_rejects_everything(self):
        assert SourceIPFilter([]).allowed("8.8.8.8") is False
        assert ip_allowed("10.0.0.1", []) is False
        assert ip_allowed(None, []) is False

    def test_cidr_match(self):
        allow = ["10.0.0.0/8", "192.168.1.10"]
        assert ip_allowed("10.1.2.3", allow) is True
        assert ip_allowed("192.168.1.10", allow) is True
        assert ip_allowed("192.168.1.11", allow) is False

    def test_prefix_string_is_not_a_match(self):
        # 10.0.0.10 must not match 10.0.0.1/32
        assert ip_allowed("10.0.0.10", ["10.0.0.1"]) is False

    def test_ipv6(self):
        assert ip_allowed("2001:db8::1", ["2001:db8::/32"]) is True
        assert ip_allowed("2001:db9::1", ["2001:db8::/32"]) is False

    def test_ipv4_mapped_ipv6(self):
        assert ip_allowed("::ffff:10.0.0.5", ["10.0.0.0/24"]) is True

    def test_missing_or_garbage_source_fails_closed(self):
        allow = ["10.0.0.0/8"]
        assert ip_allowed(None, allow) is False
        assert ip_allowed("", allow) is False
        assert ip_allowed("not-an-ip", allow) is False

    def test_bad_entry_raises(self):
        with pytest.raises(ValueError):
            parse_allow_list(["10.0.0.0/33"])
