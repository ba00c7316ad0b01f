"""Tests for link discovery and URL helpers."""

from __future__ import annotations

import re

from orbit_crawler.scraper.links import (
    CANDIDATE_PATHS,
    DEFAULT_LINK_PATTERNS,
    MENU_LINK_PATTERNS,
    compile_patterns,
    discover_links,
    ensure_scheme,
    extract_hrefs,
    generate_candidate_urls,
    is_same_site,
    normalize_url,
)

_NAV_HTML = """\
<nav>
  <a href="/menu">Menu</a>
  <a href="/about">About</a>
  <a href="https://other.com/menu">Partner menu</a>
  <a href="/drinks-menu#top">Drinks</a>
  <a class="btn" href='https://www.cafe.test/menu'>Menu again</a>
  <a href="#section">Jump</a>
  <a href="javascript:void(0)">JS</a>
  <a href="mailto:hi@cafe.test">Mail</a>
  <a href="tel:+123">Call</a>
</nav>
"""


class TestDiscoverLinks:
    def test_menu_pattern_scenario(self) -> None:
        links = discover_links(_NAV_HTML, "https://cafe.test/", patterns=[re.compile("menu", re.I)])
        assert links == [
            "https://cafe.test/menu",
            "https://cafe.test/drinks-menu",
            "https://www.cafe.test/menu",
        ]

    def test_string_patterns_are_case_insensitive(self) -> None:
        html = '<a href="/MENU">Menu</a>'
        assert discover_links(html, "https://cafe.test", patterns=["menu"]) == ["https://cafe.test/MENU"]

    def test_no_patterns_keeps_every_same_site_link(self) -> None:
        links = discover_links(_NAV_HTML, "https://cafe.test/", patterns=None)
        assert "https://cafe.test/about" in links
        assert all("other.com" not in link for link in links)

    def test_skips_non_navigable_schemes(self) -> None:
        links = discover_links(_NAV_HTML, "https://cafe.test/")
        assert not any(link.startswith(("javascript:", "mailto:", "tel:")) for link in links)
        assert not any(link.endswith("#section") for link in links)

    def test_cross_domain_allowed_when_disabled(self) -> None:
        links = discover_links(
            _NAV_HTML, "https://cafe.test/", patterns=["menu"], same_domain_only=False
        )
        assert "https://other.com/menu" in links

    def test_relative_links_resolve_against_page_url(self) -> None:
        html = '<a href="team">Team</a><a href="../services">Services</a>'
        links = discover_links(html, "https://biz.test/about/", patterns=None)
        assert links == ["https://biz.test/about/team", "https://biz.test/services"]

    def test_duplicates_removed_in_document_order(self) -> None:
        html = '<a href="/about">1</a><a href="/about#x">2</a><a href="/contact">3</a>'
        assert discover_links(html, "https://biz.test", patterns=None) == [
            "https://biz.test/about",
            "https://biz.test/contact",
        ]

    def test_capped_at_max_links(self) -> None:
        html = "".join(f'<a href="/about-{i}">x</a>' for i in range(25))
        assert len(discover_links(html, "https://biz.test", max_links=10)) == 10

    def test_pattern_matches_path_not_host(self) -> None:
        html = '<a href="https://menu.test/contact">x</a>'
        assert discover_links(html, "https://menu.test", patterns=["menu"]) == []

    def test_default_patterns(self) -> None:
        html = '<a href="/case-studies/acme">Case</a><a href="/cart">Cart</a>'
        links = discover_links(html, "https://biz.test", patterns=DEFAULT_LINK_PATTERNS)
        assert links == ["https://biz.test/case-studies/acme"]

    def test_menu_patterns_cover_catalogue(self) -> None:
        assert any(p.search("/catalogue/winter") for p in MENU_LINK_PATTERNS)


class TestUrlHelpers:
    def test_normalize_url_drops_query_fragment_and_trailing_slash(self) -> None:
        assert normalize_url("HTTPS://Example.com/About/?utm=1#team") == "https://example.com/About"

    def test_normalize_url_root(self) -> None:
        assert normalize_url("https://example.com/") == normalize_url("https://example.com")

    def test_ensure_scheme(self) -> None:
        assert ensure_scheme("example.com") == "https://example.com"
        assert ensure_scheme("  http://example.com ") == "http://example.com"

    def test_is_same_site_ignores_www(self) -> None:
        assert is_same_site("https://www.a.test/x", "https://a.test")
        assert not is_same_site("https://b.test/x", "https://a.test")
        assert not is_same_site("not a url", "https://a.test")

    def test_extract_hrefs_keeps_duplicates(self) -> None:
        assert extract_hrefs('<a href="/a">1</a><A HREF="/a">2</A>') == ["/a", "/a"]

    def test_compile_patterns_passes_compiled_through(self) -> None:
        compiled = re.compile("x")
        result = compile_patterns(["menu", compiled])
        assert result[1] is compiled
        assert result[0].search("MENU")

    def test_generate_candidate_urls(self) -> None:
        urls = generate_candidate_urls("example.com/some/page")
        assert urls[0] == "https://example.com/"
        assert "https://example.com/about-us" in urls
        assert "https://example.com/our-team" in urls
        assert len(urls) == len(CANDIDATE_PATHS)
