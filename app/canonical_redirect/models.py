from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from canonical_redirect.hosts import HostString


@dataclass(frozen=True)
class RequestDescriptor:
    scheme: str
    host: HostString
    path_base: str
    path: str
    query: str
    display_url: str


@dataclass(frozen=True)
class NoAction:
    def as_dict(self) -> dict:
        return {"action": "none", "status_code": None, "location": None}


@dataclass(frozen=True)
class Redirect:
    status_code: int
    location: str

    def as_dict(self) -> dict:
        return {
            "action": "redirect",
            "status_code": self.status_code,
            "location": self.location,
        }


NO_ACTION = NoAction()

Verdict = Union[NoAction, Redirect]
