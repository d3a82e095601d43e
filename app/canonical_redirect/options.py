from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from enum import Enum

from canonical_redirect.errors import MalformedInputError
from canonical_redirect.hosts import HostString

DEFAULT_EXTENSIONS_TO_INCLUDE = frozenset({".html", ".htm", ".aspx", ".asp"})
DEFAULT_STATUS_CODE = 301


class TrailingSlashAction(str, Enum):
    """What to do with the trailing slash of a request path."""

    IGNORE = "ignore"
    REMOVE = "remove"
    ADD = "add"


def is_truthy(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _split_csv(raw: str) -> list[str]:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


def _require_valid_host(host: HostString, env_name: str) -> None:
    try:
        host.to_uri_component()
    except MalformedInputError as e:
        raise RuntimeError(f"{env_name} has an invalid host: {e}") from None


def _normalize_extension(ext: str) -> str:
    ext = ext.strip().lower()
    if ext and not ext.startswith("."):
        ext = "." + ext
    return ext


@dataclass(frozen=True)
class CanonicalUrlOptions:
    primary_host: HostString = field(default_factory=HostString)
    alternate_hosts: frozenset[HostString] = frozenset()
    extensions_to_include: frozenset[str] = DEFAULT_EXTENSIONS_TO_INCLUDE
    trailing_slash: TrailingSlashAction = TrailingSlashAction.IGNORE
    is_forcing_lowercase: bool = True
    should_apply_to_query: bool = False
    status_code: int = DEFAULT_STATUS_CODE

    def includes_extension(self, extension: str) -> bool:
        wanted = extension.lower()
        return any(ext.lower() == wanted for ext in self.extensions_to_include)

    def with_updates(self, **changes) -> CanonicalUrlOptions:
        return replace(self, **changes)

    @staticmethod
    def from_env() -> CanonicalUrlOptions:
        primary_host = HostString(os.getenv("CANONICAL_PRIMARY_HOST", "").strip())
        if primary_host.has_value:
            _require_valid_host(primary_host, "CANONICAL_PRIMARY_HOST")
        alternate_hosts = frozenset(
            HostString(h) for h in _split_csv(os.getenv("CANONICAL_ALTERNATE_HOSTS", ""))
        )
        for host in alternate_hosts:
            _require_valid_host(host, "CANONICAL_ALTERNATE_HOSTS")

        raw_extensions = os.getenv("CANONICAL_EXTENSIONS")
        if raw_extensions is None:
            extensions = DEFAULT_EXTENSIONS_TO_INCLUDE
        else:
            extensions = frozenset(
                _normalize_extension(e) for e in _split_csv(raw_extensions)
            )

        raw_action = os.getenv("CANONICAL_TRAILING_SLASH", "ignore").strip().lower()
        try:
            trailing_slash = TrailingSlashAction(raw_action or "ignore")
        except ValueError:
            raise RuntimeError(
                "CANONICAL_TRAILING_SLASH must be 'ignore', 'remove' or 'add'"
            ) from None

        is_forcing_lowercase = is_truthy(os.getenv("CANONICAL_FORCE_LOWERCASE", "true"))
        should_apply_to_query = is_truthy(os.getenv("CANONICAL_LOWERCASE_QUERY", "false"))

        raw_status = os.getenv("CANONICAL_STATUS_CODE", str(DEFAULT_STATUS_CODE)).strip()
        try:
            status_code = int(raw_status)
        except ValueError:
            raise RuntimeError("CANONICAL_STATUS_CODE must be an integer") from None
        if not 300 <= status_code <= 399:
            raise RuntimeError("CANONICAL_STATUS_CODE must be a 3xx redirect status")

        return CanonicalUrlOptions(
            primary_host=primary_host,
            alternate_hosts=alternate_hosts,
            extensions_to_include=extensions,
            trailing_slash=trailing_slash,
            is_forcing_lowercase=is_forcing_lowercase,
            should_apply_to_query=should_apply_to_query,
            status_code=status_code,
        )
