from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from .settings import Settings

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def host_from_origin(origin: Optional[str]) -> str:
    # Tolerant by construction: worst case is a host that matches nothing.
    if not origin:
        return ""
    s = str(origin).strip().lower()
    s = _SCHEME_RE.sub("", s, count=1)
    for sep in ("/", "?", "#", ":"):
        s = s.split(sep)[0] or s
    return s


def host_matches(hostname: str, domain: str) -> bool:
    """Exact host or true subdomain of `domain` (never a bare suffix)."""
    if not hostname or not domain:
        return False
    return hostname == domain or hostname.endswith("." + domain)


@dataclass(frozen=True)
class OriginPolicy:
    """Cross-origin allow-list, built once at startup and never mutated."""

    root_domain: str
    extra_hosts: Tuple[str, ...] = ()

    @classmethod
    def build(cls, root_domain: str, extra_origins: Iterable[str] = ()) -> "OriginPolicy":
        extras = []
        for o in extra_origins:
            h = host_from_origin(o)
            if h and h not in extras:
                extras.append(h)
        return cls(root_domain=host_from_origin(root_domain), extra_hosts=tuple(extras))

    @classmethod
    def from_settings(cls, settings: Settings) -> "OriginPolicy":
        return cls.build(settings.allowed_root_domain, settings.extra_origins_list())

    def admits(self, origin: Optional[str]) -> bool:
        # Same-origin loads, non-browser clients and some beacons send no Origin.
        if not origin:
            return True
        hostname = host_from_origin(origin)
        if host_matches(hostname, self.root_domain):
            return True
        return any(host_matches(hostname, h) for h in self.extra_hosts)
