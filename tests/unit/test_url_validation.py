"""Unit tests for URL validation, normalization and deduplication.

Pure functions only, so none of these tests needs fixtures or a network.
"""

from __future__ import annotations

import pytest

from rsa_writer.core.url_validation import (
    MAX_URL_LENGTH,
    dedupe_urls,
    is_allowed_domain,
    parse_url_lines,
    process_url_input,
    validate_url,
    validate_urls,
)


# ---------------------------------------------------------------------------
# validate_url
# ---------------------------------------------------------------------------


class TestValidateUrl:
    def test_bare_domain_gets_https_scheme_and_root_path(self) -> None:
        verdict = validate_url("foo.com")
        assert verdict.is_valid is True
        assert verdict.normalized == "https://foo.com/"
        assert verdict.error is None

    def test_http_scheme_is_kept(self) -> None:
        assert validate_url("http://bar.org").normalized == "http://bar.org/"

    def test_surrounding_whitespace_is_trimmed(self) -> None:
        assert validate_url("   shop.co.uk/products  ").normalized == "https://shop.co.uk/products"

    def test_host_and_scheme_are_lowercased(self) -> None:
        assert validate_url("HTTPS://Shop.COM/Path").normalized == "https://shop.com/Path"

    def test_default_port_is_dropped(self) -> None:
        assert validate_url("https://shop.com:443/a").normalized == "https://shop.com/a"

    def test_non_default_port_is_kept(self) -> None:
        assert validate_url("https://shop.com:8443/a").normalized == "https://shop.com:8443/a"

    def test_query_and_fragment_are_preserved(self) -> None:
        verdict = validate_url("shop.com/p?id=1&v=2#reviews")
        assert verdict.normalized == "https://shop.com/p?id=1&v=2#reviews"

    def test_other_scheme_is_rejected(self) -> None:
        verdict = validate_url("ftp://files.shop.com")
        assert verdict.is_valid is False
        assert verdict.error == "Only HTTP/HTTPS protocols allowed"

    def test_text_with_spaces_is_rejected(self) -> None:
        verdict = validate_url("not a url")
        assert verdict.is_valid is False
        assert verdict.normalized is None

    def test_empty_line_is_rejected(self) -> None:
        assert validate_url("   ").is_valid is False

    @pytest.mark.parametrize(
        "line",
        [
            "localhost",
            "http://localhost:3000",
            "example.com",
            "test.com",
            "invalid-url",
            "shop.example.org",
            "my-invalid-store.com",
        ],
    )
    def test_placeholder_hostnames_are_rejected(self, line: str) -> None:
        verdict = validate_url(line)
        assert verdict.is_valid is False
        assert "Invalid hostname" in (verdict.error or "")

    def test_hostname_without_dot_is_rejected(self) -> None:
        assert validate_url("intranet").is_valid is False

    def test_single_character_tld_is_rejected(self) -> None:
        verdict = validate_url("shop.c")
        assert verdict.is_valid is False
        assert verdict.error == "Invalid TLD (must be 2+ characters)"

    def test_invalid_port_is_rejected(self) -> None:
        assert validate_url("https://shop.com:99999/").is_valid is False

    def test_overlong_url_is_rejected(self) -> None:
        line = "https://shop.com/" + "a" * MAX_URL_LENGTH
        verdict = validate_url(line)
        assert verdict.is_valid is False
        assert str(MAX_URL_LENGTH) in (verdict.error or "")

    def test_url_at_length_limit_is_accepted(self) -> None:
        prefix = "https://shop.com/"
        line = prefix + "a" * (MAX_URL_LENGTH - len(prefix))
        assert validate_url(line).is_valid is True

    def test_unicode_hostname_is_idna_encoded(self) -> None:
        verdict = validate_url("bücher.de")
        assert verdict.is_valid is True
        assert verdict.normalized == "https://xn--bcher-kva.de/"

    def test_original_line_is_reported(self) -> None:
        assert validate_url("foo.com").original == "foo.com"


# ---------------------------------------------------------------------------
# Allow-list
# ---------------------------------------------------------------------------


class TestIsAllowedDomain:
    def test_empty_allow_list_allows_everything(self) -> None:
        assert is_allowed_domain("https://anything.com/", []) is True
        assert is_allowed_domain("https://anything.com/", None) is True

    def test_exact_match(self) -> None:
        assert is_allowed_domain("https://shop.com/p", ["shop.com"]) is True
        assert is_allowed_domain("https://www.shop.com/p", ["shop.com"]) is False

    def test_wildcard_matches_base_and_subdomains(self) -> None:
        allowed = ["*.myshopify.com"]
        assert is_allowed_domain("https://store.myshopify.com/", allowed) is True
        assert is_allowed_domain("https://a.b.myshopify.com/", allowed) is True
        assert is_allowed_domain("https://myshopify.com/", allowed) is True
        assert is_allowed_domain("https://notmyshopify.com/", allowed) is False

    def test_invalid_url_is_never_allowed(self) -> None:
        assert is_allowed_domain("not a url", ["shop.com"]) is False


# ---------------------------------------------------------------------------
# Whole submissions
# ---------------------------------------------------------------------------


class TestParseUrlLines:
    def test_blank_lines_are_dropped_and_lines_trimmed(self) -> None:
        assert parse_url_lines("  a.com \n\n\r\nb.com\r\n   \n") == ["a.com", "b.com"]

    def test_none_and_empty_yield_nothing(self) -> None:
        assert parse_url_lines(None) == []
        assert parse_url_lines("") == []


class TestProcessUrlInput:
    def test_concrete_scenario(self) -> None:
        """Duplicates collapse, garbage is rejected, two URLs reach admission."""
        batch = process_url_input("foo.com\nfoo.com\nnot a url\nhttp://bar.org")

        assert batch.accepted == ("https://foo.com/", "http://bar.org/")
        assert batch.rejected_lines == ["not a url"]
        assert len(batch.accepted) == 2
        assert len(batch.verdicts) == 4

    def test_dedupe_uses_normalized_form(self) -> None:
        batch = process_url_input("foo.com\nhttps://FOO.com/\nhttps://foo.com:443")
        assert batch.accepted == ("https://foo.com/",)

    def test_first_occurrence_order_is_preserved(self) -> None:
        batch = process_url_input("c.com\na.com\nb.com\na.com\nc.com")
        assert batch.accepted == ("https://c.com/", "https://a.com/", "https://b.com/")

    def test_is_deterministic(self) -> None:
        text = "foo.com\nbar.org/x\nlocalhost\nfoo.com\nshop.c"
        assert process_url_input(text) == process_url_input(text)

    def test_allow_list_rejects_other_domains(self) -> None:
        batch = process_url_input("shop.com\nother.com", ["shop.com"])
        assert batch.accepted == ("https://shop.com/",)
        assert batch.rejected_lines == ["other.com"]
        assert batch.rejected[0].error == "Domain not allowed"

    def test_empty_input(self) -> None:
        batch = process_url_input("\n \n")
        assert batch.accepted == ()
        assert batch.verdicts == ()


class TestDedupeUrls:
    def test_invalid_verdicts_are_ignored(self) -> None:
        verdicts = validate_urls(["a.com", "nope", "a.com", "b.com"])
        assert dedupe_urls(verdicts) == ["https://a.com/", "https://b.com/"]
