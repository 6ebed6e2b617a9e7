"""Origin allow-list for redirect targets.

A redirect target is trusted only if its origin (scheme, host, port) equals
one of the configured origins exactly, after normalization. There is no
prefix, suffix or wildcard matching, and path/query never take part.
"""

from urllib.parse import urlsplit

DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_origin(candidate: str) -> str | None:
    """Return the normalized origin of an absolute http(s) URL.

    Lowercases scheme and host, drops userinfo, and keeps the port only when
    it is not the scheme default.

    Returns:
        "scheme://host[:port]", or None if the string is not an absolute
        http(s) URL.
    """
    if not isinstance(candidate, str) or not candidate:
        return None
    # Control characters and whitespace are never part of a valid absolute URL
    if any(ch.isspace() or ord(ch) < 0x20 or ch == "\\" for ch in candidate):
        return None

    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError:
        return None

    scheme = parts.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        return None

    host = parts.hostname
    if not host:
        return None

    if ":" in host:
        # IPv6 literal
        host = f"[{host}]"

    if port is None or port == DEFAULT_PORTS[scheme]:
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


class OriginAllowList:
    """Fixed set of trusted origins, immutable after construction."""

    def __init__(self, origins: list[str]) -> None:
        normalized: set[str] = set()
        for origin in origins:
            value = normalize_origin(origin)
            if value is None:
                raise ValueError(f"Not a valid absolute origin: {origin!r}")
            normalized.add(value)
        self._origins = frozenset(normalized)

    @property
    def origins(self) -> frozenset[str]:
        return self._origins

    def is_allowed(self, candidate: str | None) -> bool:
        """True iff ``candidate`` parses as an absolute URL on a trusted origin.

        Fails closed: anything that does not parse is not allowed.
        """
        if candidate is None:
            return False
        origin = normalize_origin(candidate)
        return origin is not None and origin in self._origins
