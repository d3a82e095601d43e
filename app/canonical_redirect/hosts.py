from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Optional

from canonical_redirect.errors import MalformedInputError

_FORBIDDEN_HOST_CHARS = set(" \t\r\n/\\?#@%")


def _split_host_port(value: str) -> tuple[str, Optional[str]]:
    # "[::1]:8080" / "[::1]" / "example.com:8080" / "example.com"
    if value.startswith("["):
        end = value.find("]")
        if end == -1:
            raise MalformedInputError(
                code="invalid_host", message=f"unterminated ipv6 literal in host {value!r}"
            )
        name = value[: end + 1]
        rest = value[end + 1 :]
        if not rest:
            return name, None
        if not rest.startswith(":"):
            raise MalformedInputError(
                code="invalid_host", message=f"unexpected characters after ipv6 literal in host {value!r}"
            )
        return name, rest[1:]

    if value.count(":") > 1:
        # Bare IPv6 without brackets.
        return value, None
    if ":" in value:
        name, port = value.split(":", 1)
        return name, port
    return value, None


def _to_punycode_host(name: str) -> str:
    if name.isascii():
        return name
    try:
        return name.encode("idna").decode("ascii")
    except UnicodeError as e:
        raise MalformedInputError(
            code="invalid_host", message=f"host {name!r} is not a valid idna name"
        ) from e


@dataclass(frozen=True, eq=False)
class HostString:
    """
    Host header value: a name plus an optional port.

    Construction never validates; parsing happens when ``host``, ``port`` or
    ``to_uri_component()`` is used. Equality is case-insensitive.
    """

    value: str = ""

    @property
    def has_value(self) -> bool:
        return bool(self.value)

    @property
    def host(self) -> str:
        return self._parse()[0]

    @property
    def port(self) -> Optional[int]:
        return self._parse()[1]

    @property
    def is_localhost(self) -> bool:
        if not self.has_value:
            return False
        name, _ = _split_host_port(self.value)
        return name.lower() == "localhost"

    def _parse(self) -> tuple[str, Optional[int]]:
        if not self.value:
            raise MalformedInputError(code="host_required", message="host is required")

        name, raw_port = _split_host_port(self.value)
        if not name or any(ch in _FORBIDDEN_HOST_CHARS for ch in name):
            raise MalformedInputError(
                code="invalid_host", message=f"invalid host {self.value!r}"
            )
        if name.startswith("[") or name.count(":") > 1:
            literal = name.strip("[]")
            try:
                ipaddress.IPv6Address(literal)
            except ValueError as e:
                raise MalformedInputError(
                    code="invalid_host", message=f"invalid ipv6 literal in host {self.value!r}"
                ) from e
            name = f"[{literal}]"

        port: Optional[int] = None
        if raw_port is not None:
            if not raw_port.isdigit() or not 0 <= int(raw_port) <= 65535:
                raise MalformedInputError(
                    code="invalid_port", message=f"invalid port in host {self.value!r}"
                )
            port = int(raw_port)
        return name, port

    def to_uri_component(self) -> str:
        name, port = self._parse()
        if not name.startswith("["):
            name = _to_punycode_host(name)
        if port is None:
            return name
        return f"{name}:{port}"

    def lower(self) -> HostString:
        return HostString(self.value.lower())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HostString):
            return NotImplemented
        return self.value.lower() == other.value.lower()

    def __hash__(self) -> int:
        return hash(self.value.lower())

    def __str__(self) -> str:
        return self.value
