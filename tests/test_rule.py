"""Tests for canonical_redirect/rule.py - the canonical URL redirect decision."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

# The application code lives in ./app; add it to sys.path for tests.
REPO_ROOT = Path(__file__).resolve().parents[1]
APP_ROOT = REPO_ROOT / "app"
if str(APP_ROOT) not in sys.path:
    sys.path.insert(0, str(APP_ROOT))

from canonical_redirect.errors import InvalidArgumentError, MalformedInputError  # noqa: E402
from canonical_redirect.hosts import HostString  # noqa: E402
from canonical_redirect.models import NO_ACTION, Redirect, RequestDescriptor  # noqa: E402
from canonical_redirect.options import (  # noqa: E402
    DEFAULT_EXTENSIONS_TO_INCLUDE,
    CanonicalUrlOptions,
    TrailingSlashAction,
)
from canonical_redirect.rule import (  # noqa: E402
    RedirectToCanonicalUrlRule,
    apply_trailing_slash,
    evaluate,
)
from canonical_redirect.url_building import request_from_url  # noqa: E402

EXAMPLE = HostString("example.com")


def _evaluate(url: str, options: CanonicalUrlOptions, **kwargs):
    return evaluate(request_from_url(url, **kwargs), options)


class TestScenarios:
    def test_adds_trailing_slash(self):
        options = CanonicalUrlOptions(trailing_slash=TrailingSlashAction.ADD)
        assert _evaluate("http://example.com/foobar", options) == Redirect(
            301, "http://example.com/foobar/"
        )

    def test_redirects_to_primary_host(self):
        options = CanonicalUrlOptions(primary_host=EXAMPLE)
        assert _evaluate("http://something.com/foo", options) == Redirect(
            301, "http://example.com/foo"
        )

    def test_lowercases_path_by_default(self):
        assert _evaluate("http://example.com/fooBar", CanonicalUrlOptions()) == Redirect(
            301, "http://example.com/foobar"
        )

    def test_removes_trailing_slash(self):
        options = CanonicalUrlOptions(trailing_slash=TrailingSlashAction.REMOVE)
        assert _evaluate("http://example.com/foobar/", options) == Redirect(
            301, "http://example.com/foobar"
        )

    def test_included_extension_is_rewritten(self):
        options = CanonicalUrlOptions(
            primary_host=EXAMPLE,
            extensions_to_include=DEFAULT_EXTENSIONS_TO_INCLUDE | {".jpg"},
        )
        assert _evaluate("http://something.com/foo.JPG", options) == Redirect(
            301, "http://example.com/foo.jpg"
        )

    def test_alternate_host_is_left_alone(self):
        options = CanonicalUrlOptions(
            primary_host=EXAMPLE,
            alternate_hosts=frozenset({HostString("test.example.com")}),
        )
        assert _evaluate("http://test.example.com/foo", options) is NO_ACTION


class TestExtensionGate:
    @pytest.mark.parametrize(
        "options",
        [
            CanonicalUrlOptions(),
            CanonicalUrlOptions(primary_host=EXAMPLE),
            CanonicalUrlOptions(trailing_slash=TrailingSlashAction.ADD),
            CanonicalUrlOptions(trailing_slash=TrailingSlashAction.REMOVE),
            CanonicalUrlOptions(should_apply_to_query=True, status_code=302),
        ],
    )
    @pytest.mark.parametrize(
        "url",
        [
            "http://Something.com/FOo.jpg",
            "http://something.com/Static/App.JS",
            "http://something.com/foobar.txt?X=Y",
        ],
    )
    def test_excluded_extension_is_never_touched(self, options, url):
        assert _evaluate(url, options) is NO_ACTION

    def test_included_extension_matches_case_insensitively(self):
        options = CanonicalUrlOptions(extensions_to_include=frozenset({".HTML"}))
        assert _evaluate("http://example.com/Index.html", options) == Redirect(
            301, "http://example.com/index.html"
        )

    def test_empty_include_list_excludes_every_file(self):
        options = CanonicalUrlOptions(extensions_to_include=frozenset())
        assert _evaluate("http://example.com/Index.html", options) is NO_ACTION
        assert _evaluate("http://example.com/Index", options) == Redirect(
            301, "http://example.com/index"
        )


class TestTrailingSlash:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/foobar", "/foobar/"),
            ("/foobar/", "/foobar/"),
            ("/foo.html", "/foo.html"),
            # "." anywhere means "file"; kept as a known limitation.
            ("/foo.bar/baz", "/foo.bar/baz"),
            ("", ""),
        ],
    )
    def test_add(self, path, expected):
        assert apply_trailing_slash(path, TrailingSlashAction.ADD) == expected

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/foobar/", "/foobar"),
            ("/foobar///", "/foobar"),
            ("/foobar", "/foobar"),
            ("/", ""),
        ],
    )
    def test_remove(self, path, expected):
        assert apply_trailing_slash(path, TrailingSlashAction.REMOVE) == expected

    def test_ignore_keeps_path(self):
        assert apply_trailing_slash("/foobar/", TrailingSlashAction.IGNORE) == "/foobar/"

    def test_add_skips_file_like_path(self):
        options = CanonicalUrlOptions(trailing_slash=TrailingSlashAction.ADD)
        assert _evaluate("http://example.com/foo.html", options) is NO_ACTION

    def test_add_keeps_existing_slash(self):
        options = CanonicalUrlOptions(trailing_slash=TrailingSlashAction.ADD)
        assert _evaluate("http://example.com/foobar/", options) is NO_ACTION

    def test_remove_without_slash_is_no_action(self):
        options = CanonicalUrlOptions(trailing_slash=TrailingSlashAction.REMOVE)
        assert _evaluate("http://example.com/foobar", options) is NO_ACTION

    def test_remove_on_root_keeps_root(self):
        options = CanonicalUrlOptions(trailing_slash=TrailingSlashAction.REMOVE)
        assert _evaluate("http://example.com/", options) is NO_ACTION


class TestHost:
    @pytest.mark.parametrize(
        "url",
        [
            "http://localhost/foo",
            "http://localhost:5000/foo",
            "http://LocalHost:8080/foo",
        ],
    )
    def test_localhost_is_exempt(self, url):
        options = CanonicalUrlOptions(primary_host=EXAMPLE, is_forcing_lowercase=False)
        assert _evaluate(url, options) is NO_ACTION

    def test_localhost_is_still_lowercased(self):
        options = CanonicalUrlOptions(primary_host=EXAMPLE)
        assert _evaluate("http://LOCALHOST:5000/foo", options) == Redirect(
            301, "http://localhost:5000/foo"
        )

    def test_alternate_hosts_match_case_insensitively(self):
        options = CanonicalUrlOptions(
            primary_host=EXAMPLE,
            alternate_hosts=frozenset({HostString("Staging.Example.com")}),
            is_forcing_lowercase=False,
        )
        assert _evaluate("http://staging.example.com/foo", options) is NO_ACTION

    def test_primary_host_port_is_used(self):
        options = CanonicalUrlOptions(primary_host=HostString("example.com:8443"))
        assert _evaluate("https://something.com/foo", options) == Redirect(
            301, "https://example.com:8443/foo"
        )

    def test_no_primary_host_keeps_request_host(self):
        assert _evaluate("http://something.com/foo", CanonicalUrlOptions()) is NO_ACTION

    def test_matching_primary_host_is_no_action(self):
        options = CanonicalUrlOptions(primary_host=HostString("Example.com"))
        assert _evaluate("http://example.com/foo", options) is NO_ACTION


class TestCaseFolding:
    def test_query_case_is_preserved_by_default(self):
        assert _evaluate(
            "http://example.com/Foo?Token=AbC", CanonicalUrlOptions()
        ) == Redirect(301, "http://example.com/foo?Token=AbC")

    def test_query_case_alone_never_triggers_redirect(self):
        assert (
            _evaluate("http://example.com/foo?Token=AbC", CanonicalUrlOptions())
            is NO_ACTION
        )

    def test_apply_to_query_lowercases_everything(self):
        options = CanonicalUrlOptions(should_apply_to_query=True)
        assert _evaluate("http://example.com/Foo?Token=AbC", options) == Redirect(
            301, "http://example.com/foo?token=abc"
        )

    def test_lowercasing_can_be_disabled(self):
        options = CanonicalUrlOptions(is_forcing_lowercase=False)
        assert _evaluate("http://example.com/FooBar", options) is NO_ACTION

    def test_path_base_is_lowercased(self):
        result = _evaluate(
            "http://example.com/App/Foo", CanonicalUrlOptions(), path_base="/App"
        )
        assert result == Redirect(301, "http://example.com/app/foo")

    def test_non_ascii_path_is_lowercased_and_escaped(self):
        assert _evaluate("http://example.com/%C3%84", CanonicalUrlOptions()) == Redirect(
            301, "http://example.com/%C3%A4"
        )


class TestDecision:
    def test_escaped_slash_is_not_a_difference(self):
        assert _evaluate("http://example.com/foo%2Fbar", CanonicalUrlOptions()) is NO_ACTION

    def test_escaped_space_is_not_a_difference(self):
        assert _evaluate("http://example.com/a%20b", CanonicalUrlOptions()) is NO_ACTION

    def test_escaped_percent_does_not_loop(self):
        assert _evaluate("http://example.com/foo%2541", CanonicalUrlOptions()) is NO_ACTION

    def test_configured_status_code_is_used(self):
        options = CanonicalUrlOptions(status_code=302)
        assert _evaluate("http://example.com/fooBar", options) == Redirect(
            302, "http://example.com/foobar"
        )


IDEMPOTENCE_OPTIONS = [
    CanonicalUrlOptions(),
    CanonicalUrlOptions(trailing_slash=TrailingSlashAction.ADD),
    CanonicalUrlOptions(trailing_slash=TrailingSlashAction.REMOVE, primary_host=EXAMPLE),
    CanonicalUrlOptions(should_apply_to_query=True, primary_host=HostString("Example.COM:8080")),
    CanonicalUrlOptions(is_forcing_lowercase=False, trailing_slash=TrailingSlashAction.ADD),
]

IDEMPOTENCE_URLS = [
    "http://Something.com/Foo//?Q=AbC",
    "http://example.com/FooBar",
    "https://www.example.com/A%20B/C.html",
    "http://example.com/%C3%84/x",
    "http://example.com/foo%2Fbar/Baz",
    "http://example.com/",
]


@pytest.mark.parametrize("options", IDEMPOTENCE_OPTIONS)
@pytest.mark.parametrize("url", IDEMPOTENCE_URLS)
def test_redirect_target_is_canonical(options, url):
    verdict = _evaluate(url, options)
    if isinstance(verdict, Redirect):
        assert _evaluate(verdict.location, options) is NO_ACTION


class TestFailures:
    def test_missing_request_raises(self):
        with pytest.raises(InvalidArgumentError) as exc_info:
            evaluate(None, CanonicalUrlOptions())
        assert exc_info.value.code == "request_required"

    def test_missing_options_raises(self):
        with pytest.raises(InvalidArgumentError) as exc_info:
            evaluate(request_from_url("http://example.com/foo"), None)
        assert exc_info.value.code == "options_required"

    def test_empty_scheme_raises(self):
        request = RequestDescriptor(
            scheme="",
            host=EXAMPLE,
            path_base="",
            path="/foo",
            query="",
            display_url="//example.com/foo",
        )
        with pytest.raises(InvalidArgumentError):
            evaluate(request, CanonicalUrlOptions())

    def test_malformed_request_host_raises(self):
        with pytest.raises(MalformedInputError) as exc_info:
            _evaluate("http://example.com:abc/foo", CanonicalUrlOptions())
        assert exc_info.value.code == "invalid_port"

    def test_malformed_primary_host_surfaces_on_use(self):
        options = CanonicalUrlOptions(primary_host=HostString("bad host"))
        with pytest.raises(MalformedInputError):
            _evaluate("http://example.com/foo", options)


class TestRedirectLogging:
    def test_logs_redirect_once(self, caplog):
        rule = RedirectToCanonicalUrlRule(
            CanonicalUrlOptions(), logger=logging.getLogger("test.rule")
        )
        with caplog.at_level(logging.INFO, logger="test.rule"):
            verdict = rule.apply(request_from_url("http://example.com/fooBar"))

        assert verdict == Redirect(301, "http://example.com/foobar")
        records = [r for r in caplog.records if r.name == "test.rule"]
        assert len(records) == 1
        assert records[0].getMessage() == "Redirected to canonical URL"
        assert records[0].extra_fields == {
            "original_url": "http://example.com/fooBar",
            "location": "http://example.com/foobar",
            "status_code": 301,
        }

    def test_no_log_without_redirect(self, caplog):
        rule = RedirectToCanonicalUrlRule(
            CanonicalUrlOptions(), logger=logging.getLogger("test.rule")
        )
        with caplog.at_level(logging.INFO, logger="test.rule"):
            assert rule.apply(request_from_url("http://example.com/foo")) is NO_ACTION
        assert [r for r in caplog.records if r.name == "test.rule"] == []

    def test_broken_logger_does_not_fail_decision(self):
        class ExplodingLogger(logging.Logger):
            def log(self, level, msg, *args, **kwargs):
                raise RuntimeError("log sink down")

        rule = RedirectToCanonicalUrlRule(
            CanonicalUrlOptions(), logger=ExplodingLogger("exploding")
        )
        verdict = rule.apply(request_from_url("http://example.com/fooBar"))
        assert verdict == Redirect(301, "http://example.com/foobar")

    def test_logger_is_optional(self):
        rule = RedirectToCanonicalUrlRule(CanonicalUrlOptions(), logger=None)
        assert rule.apply(request_from_url("http://example.com/fooBar")) == Redirect(
            301, "http://example.com/foobar"
        )

    def test_rule_defaults_to_default_options(self):
        rule = RedirectToCanonicalUrlRule()
        assert rule.options == CanonicalUrlOptions()
