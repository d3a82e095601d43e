"""
Canonical URL redirect decision.

``RedirectToCanonicalUrlRule.apply`` is a pure function of one request and
the configured options: it returns ``NO_ACTION`` or a ``Redirect`` and never
touches shared state, so one rule instance can serve concurrent requests.
"""

from __future__ import annotations

import logging
from typing import Optional

from canonical_redirect.errors import InvalidArgumentError
from canonical_redirect.hosts import HostString
from canonical_redirect.logging_config import get_logger, log_redirect
from canonical_redirect.models import NO_ACTION, Redirect, RequestDescriptor, Verdict
from canonical_redirect.options import CanonicalUrlOptions, TrailingSlashAction
from canonical_redirect.url_building import build_absolute, get_extension, urls_equivalent

logger = get_logger(__name__)


def apply_trailing_slash(path: str, action: TrailingSlashAction) -> str:
    if action == TrailingSlashAction.IGNORE or not path:
        return path
    if action == TrailingSlashAction.REMOVE:
        return path.rstrip("/")
    # ADD: a "." anywhere in the path is taken to mean a file, not a directory.
    if "." not in path and not path.endswith("/"):
        return path + "/"
    return path


def resolve_host(host: HostString, options: CanonicalUrlOptions) -> HostString:
    primary = options.primary_host
    if not primary.has_value or host == primary:
        return host
    if host.is_localhost or host in options.alternate_hosts:
        return host
    return primary


def build_canonical_url(request: RequestDescriptor, options: CanonicalUrlOptions) -> str:
    path = apply_trailing_slash(request.path, options.trailing_slash)
    host = resolve_host(request.host, options)
    scheme = request.scheme
    path_base = request.path_base

    if not options.is_forcing_lowercase:
        return build_absolute(scheme, host, path_base, path, request.query)

    url = build_absolute(
        scheme.lower(), host.lower(), path_base.lower(), path.lower(), request.query
    )
    if options.should_apply_to_query:
        url = url.lower()
    return url


class RedirectToCanonicalUrlRule:
    def __init__(
        self,
        options: Optional[CanonicalUrlOptions] = None,
        *,
        logger: Optional[logging.Logger] = logger,
    ) -> None:
        self.options = options if options is not None else CanonicalUrlOptions()
        self._logger = logger

    def apply(self, request: Optional[RequestDescriptor]) -> Verdict:
        return evaluate(request, self.options, logger=self._logger)


def evaluate(
    request: Optional[RequestDescriptor],
    options: Optional[CanonicalUrlOptions],
    *,
    logger: Optional[logging.Logger] = None,
) -> Verdict:
    if request is None:
        raise InvalidArgumentError(code="request_required", message="request is required")
    if options is None:
        raise InvalidArgumentError(code="options_required", message="options are required")

    extension = get_extension(request.path)
    if extension and not options.includes_extension(extension):
        return NO_ACTION

    location = build_canonical_url(request, options)
    if urls_equivalent(request.display_url, location):
        return NO_ACTION

    if logger is not None:
        try:
            log_redirect(logger, request.display_url, location, options.status_code)
        except Exception:
            # Never fail the redirect decision on a broken log sink.
            pass
    return Redirect(status_code=options.status_code, location=location)
