"""Tests for URL normalization, exclusion filtering and mirror path mapping."""

from __future__ import annotations

from pathlib import Path

import pytest

from sitemirror.errors import InvalidURL
from sitemirror.urls import (
    is_pdf_url,
    is_same_host,
    normalize_url,
    resolve_link,
    should_exclude,
    url_to_path,
)


class TestNormalizeUrl:
    def test_strips_trailing_slash(self) -> None:
        assert normalize_url("https://example.com/blog/") == "https://example.com/blog"

    def test_root_path_becomes_bare_origin(self) -> None:
        assert normalize_url("https://example.com/") == "https://example.com"

    def test_drops_fragment_keeps_query(self) -> None:
        assert normalize_url("https://example.com/a/?x=1&y=2#top") == "https://example.com/a?x=1&y=2"

    def test_lowercases_scheme_and_host(self) -> None:
        assert normalize_url("HTTPS://Example.COM/Path") == "https://example.com/Path"

    def test_removes_default_port_keeps_custom_port(self) -> None:
        assert normalize_url("http://example.com:80/a") == "http://example.com/a"
        assert normalize_url("https://example.com:8443/a") == "https://example.com:8443/a"

    def test_drops_configured_query_params(self) -> None:
        url = "https://example.com/a?utm_source=x&id=3&utm_medium=y"
        assert normalize_url(url, ("utm_source", "utm_medium")) == "https://example.com/a?id=3"

    @pytest.mark.parametrize("url", [
        "https://example.com/blog/",
        "https://example.com//",
        "https://Example.com:443/a/b/?q=1#frag",
        "http://example.com:8080",
        "https://example.com/a?b&c=",
        "http://[::1]:8000/x/",
    ])
    def test_idempotent(self, url: str) -> None:
        once = normalize_url(url)
        assert normalize_url(once) == once

    def test_idempotent_with_dropped_params(self) -> None:
        drop = ("utm_source",)
        once = normalize_url("https://example.com/a?utm_source=x&q=a b", drop)
        assert normalize_url(once, drop) == once

    @pytest.mark.parametrize("url", [
        "",
        "not a url",
        "/relative/path",
        "mailto:someone@example.com",
        "ftp://example.com/file",
        "http://",
        "http://example.com:notaport/",
    ])
    def test_invalid_urls_raise(self, url: str) -> None:
        with pytest.raises(InvalidURL):
            normalize_url(url)


class TestResolveLink:
    def test_resolves_against_final_url(self) -> None:
        assert resolve_link("post1", "https://example.com/blog/") == "https://example.com/blog/post1"
        assert resolve_link("post1", "https://example.com/blog") == "https://example.com/post1"

    def test_drops_fragment(self) -> None:
        assert resolve_link("/a#b", "https://example.com/") == "https://example.com/a"

    def test_fragment_only_link_resolves_to_base(self) -> None:
        assert resolve_link("#top", "https://example.com/page") == "https://example.com/page"

    def test_empty_href(self) -> None:
        assert resolve_link("", "https://example.com/") is None


class TestSameHost:
    def test_same_host_ignores_case(self) -> None:
        assert is_same_host("https://EXAMPLE.com/x", "example.com")

    def test_other_host(self) -> None:
        assert not is_same_host("https://other.org/x", "example.com")
        assert not is_same_host("https://sub.example.com/x", "example.com")


class TestShouldExclude:
    def test_matches_substring_of_path(self) -> None:
        assert should_exclude("https://example.com/blog/drafts/1", ["/drafts"])

    def test_does_not_match_query_or_host(self) -> None:
        assert not should_exclude("https://example.com/a?path=/drafts", ["/drafts"])
        assert not should_exclude("https://drafts.example.com/a", ["drafts"])

    def test_case_sensitive(self) -> None:
        assert not should_exclude("https://example.com/Drafts", ["/drafts"])

    def test_empty_pattern_list_matches_nothing(self) -> None:
        assert not should_exclude("https://example.com/anything", [])

    def test_blank_pattern_ignored(self) -> None:
        assert not should_exclude("https://example.com/anything", [""])


class TestIsPdfUrl:
    def test_case_insensitive(self) -> None:
        assert is_pdf_url("https://example.com/Doc.PDF")

    def test_query_does_not_count(self) -> None:
        assert not is_pdf_url("https://example.com/view?file=a.pdf")


class TestUrlToPath:
    root = Path("out")

    def test_bare_host(self) -> None:
        assert url_to_path("https://example.com", self.root) == Path("out/example.com/index.html")

    def test_directory_like_path(self) -> None:
        assert url_to_path("https://example.com/blog", self.root) == Path("out/example.com/blog/index.html")

    def test_trailing_slash(self) -> None:
        assert url_to_path("https://example.com/blog/", self.root) == Path("out/example.com/blog/index.html")

    def test_known_extensions_kept(self) -> None:
        assert url_to_path("https://example.com/doc.pdf", self.root) == Path("out/example.com/doc.pdf")
        assert url_to_path("https://example.com/a/feed.XML", self.root) == Path("out/example.com/a/feed.XML")
        assert url_to_path("https://example.com/page.html", self.root) == Path("out/example.com/page.html")

    def test_unknown_extension_treated_as_directory(self) -> None:
        assert url_to_path("https://example.com/v1.2", self.root) == Path("out/example.com/v1.2/index.html")

    def test_parent_segments_cannot_escape_root(self) -> None:
        path = url_to_path("https://example.com/a/../../etc/passwd", self.root)
        assert path == Path("out/example.com/a/etc/passwd/index.html")

    def test_query_ignored(self) -> None:
        assert url_to_path("https://example.com/a?x=1", self.root) == Path("out/example.com/a/index.html")
