"""
Tests for header normalization, weighted header lists and User-Agent labels
"""

import pytest

from http_signals import (WeightedToken, normalize_headers, parse_accept_encoding, parse_accept_language,
                          parse_user_agent, parse_weighted_header)


SAFARI_MAC = ('Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 '
              '(KHTML, like Gecko) Version/17.1 Safari/605.1.15')
CHROME_WIN = ('Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
              '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36')
EDGE_WIN = CHROME_WIN + ' Edg/120.0.2210.91'
OPERA_WIN = CHROME_WIN + ' OPR/105.0.0.0'
FIREFOX_LINUX = 'Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0'
SAFARI_IPHONE = ('Mozilla/5.0 (iPhone; CPU iPhone OS 17_1_2 like Mac OS X) AppleWebKit/605.1.15 '
                 '(KHTML, like Gecko) Version/17.1.2 Mobile/15E148 Safari/604.1')
CHROME_ANDROID = ('Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 '
                  '(KHTML, like Gecko) Chrome/120.0.6099.43 Mobile Safari/537.36')


class TestNormalizeHeaders:
    """Header map construction."""

    def test_lowercases_and_sorts(self):
        headers = normalize_headers([("User-Agent", "x"), ("Accept", "*/*"), ("X-Forwarded-For", "1.2.3.4")])
        assert list(headers) == ["accept", "user-agent", "x-forwarded-for"]
        assert headers["user-agent"] == "x"

    def test_repeated_name_keeps_last_value(self):
        headers = normalize_headers([("Accept", "a"), ("ACCEPT", "b")])
        assert dict(headers) == {"accept": "b"}

    def test_rebuilds_from_environ_when_accessor_missing(self):
        environ = {
            "HTTP_ACCEPT_LANGUAGE": "fr-FR",
            "HTTP_X_FORWARDED_FOR": "1.2.3.4",
            "CONTENT_TYPE": "text/plain",
            "CONTENT_LENGTH": "12",
            "REMOTE_ADDR": "127.0.0.1",
        }
        headers = normalize_headers(None, environ)
        assert dict(headers) == {
            "accept-language": "fr-FR",
            "content-length": "12",
            "content-type": "text/plain",
            "x-forwarded-for": "1.2.3.4",
        }

    def test_synthesizes_content_fields_only_when_missing(self):
        environ = {"CONTENT_TYPE": "application/json", "CONTENT_LENGTH": ""}
        headers = normalize_headers([("Content-Type", "text/html")], environ)
        assert headers["content-type"] == "text/html"
        assert "content-length" not in headers

    def test_map_is_read_only(self):
        headers = normalize_headers([("Accept", "*/*")])
        with pytest.raises(TypeError):
            headers["accept"] = "changed"

    def test_empty_input(self):
        assert dict(normalize_headers()) == {}


class TestWeightedHeader:
    """Accept-* parsing."""

    def test_orders_by_q(self):
        items = parse_weighted_header("en-US,en;q=0.9,fr;q=0.8")
        assert [i.token for i in items] == ["en-US", "en", "fr"]
        assert items[0].weight == 1.0

    def test_defaults_q(self):
        items = parse_weighted_header("gzip, br;q=0.8")
        assert items[0] == WeightedToken("gzip", 1.0)
        assert items[1] == WeightedToken("br", 0.8)

    def test_ties_keep_sent_order(self):
        items = parse_weighted_header("gzip, deflate, br, zstd;q=0.5, identity;q=0.5")
        assert [i.token for i in items] == ["gzip", "deflate", "br", "zstd", "identity"]

    def test_low_weight_first_is_moved_back(self):
        items = parse_weighted_header("de;q=0.1, en")
        assert [i.token for i in items] == ["en", "de"]

    @pytest.mark.parametrize("value", ["fr;q=abc", "fr;q=0.9.1", "fr;q=7", "fr;level=1"])
    def test_malformed_q_defaults_to_one(self, value):
        assert parse_weighted_header(value) == [WeightedToken("fr", 1.0)]

    def test_q_is_case_insensitive(self):
        assert parse_weighted_header("fr;Q=0.3")[0].weight == 0.3

    def test_skips_empty_segments_and_tokens(self):
        items = parse_weighted_header(" , en ,, ;q=0.5, ")
        assert [i.token for i in items] == ["en"]

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_header(self, value):
        assert parse_weighted_header(value) == []

    def test_weights_never_increase(self):
        items = parse_weighted_header("a;q=0.2, b, c;q=0.7, d;q=0, e;q=0.7")
        weights = [i.weight for i in items]
        assert weights == sorted(weights, reverse=True)


class TestAcceptLists:
    """De-duplicated tag lists."""

    def test_language_dedupes(self):
        assert parse_accept_language("fr-FR, fr;q=0.9, fr-FR;q=0.8") == ["fr-FR", "fr"]

    def test_language_dedupe_keeps_first_casing(self):
        assert parse_accept_language("FR, fr;q=0.9") == ["FR"]

    def test_encoding_handles_empty(self):
        assert parse_accept_encoding(None) == []
        assert parse_accept_encoding("") == []

    def test_encoding_dedupes(self):
        assert parse_accept_encoding("gzip, GZIP;q=0.5, br, zstd") == ["gzip", "br", "zstd"]


class TestUserAgent:
    """Browser/OS labelling."""

    def test_safari_on_mac(self):
        info = parse_user_agent(SAFARI_MAC)
        assert info.browser == "Safari 17.1"
        assert info.os == "macOS 10.15.7"

    @pytest.mark.parametrize("ua,browser,os_label", [
        (CHROME_WIN, "Chrome 120.0.0.0", "Windows 10/11"),
        (EDGE_WIN, "Edge 120.0.2210.91", "Windows 10/11"),
        (OPERA_WIN, "Opera 105.0.0.0", "Windows 10/11"),
        (FIREFOX_LINUX, "Firefox 121.0", "Linux"),
        (SAFARI_IPHONE, "Safari 17.1.2", "iOS 17.1.2"),
        (CHROME_ANDROID, "Chrome 120.0.6099.43", "Android 14"),
    ])
    def test_known_agents(self, ua, browser, os_label):
        info = parse_user_agent(ua)
        assert info.browser == browser
        assert info.os == os_label

    @pytest.mark.parametrize("nt,label", [("6.3", "Windows 8.1"), ("6.2", "Windows 8"), ("6.1", "Windows 7")])
    def test_older_windows(self, nt, label):
        assert parse_user_agent(f"Mozilla/5.0 (Windows NT {nt}; Win64; x64)").os == label

    def test_ipad(self):
        ua = "Mozilla/5.0 (iPad; CPU OS 16_6 like Mac OS X) AppleWebKit/605.1.15"
        assert parse_user_agent(ua).os == "iPadOS 16.6"

    def test_unmatched_is_absent(self):
        info = parse_user_agent("curl/8.4.0")
        assert info.browser is None
        assert info.os is None

    @pytest.mark.parametrize("ua", [None, ""])
    def test_absent_agent(self, ua):
        info = parse_user_agent(ua)
        assert (info.browser, info.os) == (None, None)
