"""Session cookie jar for one authenticated Otter identity.

WHY: Otter authenticates follow-up calls with the cookies set by the login
response (session id, csrftoken). The jar must be replaced wholesale on
each login and must never mix cookies from two logins, so it is kept as a
plain value owned by one AuthState rather than left to the HTTP library.

HOW: from_set_cookie() reads the name=value pair in front of the first
``;`` of each Set-Cookie entry, dropping attributes (Path, Expires, ...).
header_value() joins the pairs back into a single Cookie header.

RULES:
- Last write wins on duplicate names
- Entries without a name or without a value are ignored
- Values may contain ``=`` (everything after the first ``=`` is the value)
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping

import httpx


class CookieJar(Mapping[str, str]):
    """Immutable mapping of cookie name to value."""

    def __init__(self, cookies: Mapping[str, str] | None = None) -> None:
        self._cookies: dict[str, str] = dict(cookies or {})

    @classmethod
    def from_set_cookie(cls, headers: Iterable[str]) -> CookieJar:
        cookies: dict[str, str] = {}
        for header in headers:
            pair = header.split(";", 1)[0]
            name, sep, value = pair.partition("=")
            name, value = name.strip(), value.strip()
            if sep and name and value:
                cookies[name] = value
        return cls(cookies)

    @classmethod
    def from_response(cls, response: httpx.Response) -> CookieJar:
        return cls.from_set_cookie(response.headers.get_list("set-cookie"))

    def header_value(self) -> str | None:
        """Serialize as a Cookie header value, or None when empty."""
        if not self._cookies:
            return None
        return "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    @property
    def csrf_token(self) -> str | None:
        return self._cookies.get("csrftoken")

    def __getitem__(self, name: str) -> str:
        return self._cookies[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._cookies)

    def __len__(self) -> int:
        return len(self._cookies)

    def __repr__(self) -> str:
        # Values are session secrets; names only.
        return f"CookieJar({sorted(self._cookies)})"
