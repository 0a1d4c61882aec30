import logging
from collections.abc import Iterable, Iterator

import httpx

from .types import API_KEY, AuthorizationType

logger = logging.getLogger("servicekit")


class Authenticator(httpx.Auth):
    """Ordered set of authorization entries applied as headers on every request.

    Entries are keyed by ``header_type``: adding a kind that is already present
    updates its token in place, anything else is appended.

    - servicekit: HTTPClient reads header_pairs() when building each request.
    - httpx: usable directly as ``httpx.Client(auth=...)`` through auth_flow.
    - requests: usable directly as ``requests.get(url, auth=...)`` through __call__.

    API-key entries are stored but never attached automatically; callers send
    them on their own.
    """

    def __init__(self, entries: Iterable[AuthorizationType] | None = None):
        self._entries: list[AuthorizationType] = []
        for entry in entries or ():
            self.add(entry)

    def add(self, kind: AuthorizationType, token: str | None = None) -> None:
        entry = kind if token is None else kind.with_token(token)
        for existing in self._entries:
            if existing.header_type == entry.header_type:
                existing.token = entry.token
                logger.debug(f"authentication {entry.header_type} updated")
                return
        # keep our own copy so the module-level kinds are never mutated
        self._entries.append(entry.with_token(entry.token))
        logger.debug(f"authentication {entry.header_type} added")

    @property
    def entries(self) -> list[AuthorizationType]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def header_pairs(self) -> list[tuple[str, str]]:
        """One (name, value) pair per entry, in insertion order.

        Entries sharing a header name (Basic and Bearer both use
        Authorization) each produce their own pair.
        """
        pairs: list[tuple[str, str]] = []
        for entry in self._entries:
            if entry.header_type == API_KEY.header_type:
                continue
            pairs.append((entry.header_name, f"{entry.header_type_value}{entry.token}"))
        return pairs

    def headers(self) -> dict[str, str]:
        """header_pairs() as a mapping; repeated names are joined with ", "."""
        out: dict[str, str] = {}
        for name, value in self.header_pairs():
            out[name] = f"{out[name]}, {value}" if name in out else value
        return out

    def apply(self, headers: list[tuple[str, str]]) -> list[tuple[str, str]]:
        headers.extend(self.header_pairs())
        return headers

    # ------------------------ requests auth protocol ------------------------
    def __call__(self, r):
        for name, value in self.headers().items():
            r.headers[name] = value
        return r

    # ------------------------ httpx ------------------------
    def auth_flow(self, request: httpx.Request) -> Iterator[httpx.Request]:
        for name, value in self.headers().items():
            request.headers[name] = value
        yield request
