from __future__ import annotations

from urllib.parse import quote, unquote, urlsplit

from canonical_redirect.errors import InvalidArgumentError, MalformedInputError
from canonical_redirect.hosts import HostString
from canonical_redirect.models import RequestDescriptor

# RFC 3986 pchar minus "%" (paths arrive decoded) plus "/".
_PATH_SAFE = "/:@!$&'()*+,;=-._~"


def get_extension(path: str) -> str:
    """Extension of the last path segment including the dot, or ""."""
    segment = (path or "").rsplit("/", 1)[-1]
    idx = segment.rfind(".")
    if idx == -1 or idx == len(segment) - 1:
        return ""
    return segment[idx:]


def escape_path(path: str) -> str:
    return quote(path or "", safe=_PATH_SAFE)


def build_absolute(
    scheme: str, host: HostString, path_base: str, path: str, query: str
) -> str:
    if not scheme:
        raise InvalidArgumentError(code="scheme_required", message="scheme is required")

    combined = (path_base or "") + (path or "")
    if not combined:
        combined = "/"
    return f"{scheme}://{host.to_uri_component()}{escape_path(combined)}{query or ''}"


def urls_equivalent(left: str, right: str) -> bool:
    # Compare decoded forms so "%2F" vs "/" style differences never trigger a redirect.
    return unquote(left or "") == unquote(right or "")


def request_from_url(url: str, *, path_base: str = "") -> RequestDescriptor:
    """
    Build a request descriptor the way a server would see ``url``.

    The path is decoded; the query stays raw. ``path_base`` must be a prefix of
    the decoded path when given.
    """
    parsed = urlsplit(url or "")
    if not parsed.scheme:
        raise InvalidArgumentError(code="scheme_required", message="url scheme is required")
    if not parsed.netloc:
        raise MalformedInputError(code="host_required", message="url host is required")

    raw_path = parsed.path or "/"
    path = unquote(raw_path)
    if path_base and path.startswith(path_base):
        path = path[len(path_base) :]
    else:
        path_base = ""
    query = f"?{parsed.query}" if parsed.query else ""

    display_url = f"{parsed.scheme}://{parsed.netloc}{raw_path}{query}"
    return RequestDescriptor(
        scheme=parsed.scheme,
        host=HostString(parsed.netloc),
        path_base=path_base,
        path=path,
        query=query,
        display_url=display_url,
    )
