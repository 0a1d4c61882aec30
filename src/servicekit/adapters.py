import contextlib
from typing import Protocol

import httpx
import requests

from .errors import BodyReadError, TransportError
from .types import RawResponse, Request


class Transport(Protocol):
    """Sends one request. Raises TransportError when nothing came back and
    BodyReadError when the body of a received response could not be read."""

    def send(self, request: Request) -> RawResponse: ...

    def close(self) -> None: ...


# ---------- httpx (sync, default) ----------
class HttpxTransport:
    def __init__(self, client: httpx.Client | None = None, timeout: float = 80.0):
        self._own_client = client is None
        self.client = (
            client
            if client is not None
            else httpx.Client(timeout=timeout, follow_redirects=True)
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def send(self, request: Request) -> RawResponse:
        req = self.client.build_request(
            request.method,
            request.url,
            content=request.body or None,
            headers=request.headers,  # httpx sends repeated pairs as separate lines
        )
        try:
            resp = self.client.send(req, stream=True)
        except httpx.TransportError as e:
            raise TransportError(str(e) or type(e).__name__) from e
        try:
            body = resp.read()
        except httpx.HTTPError as e:
            raise BodyReadError(resp.status_code, e) from e
        finally:
            resp.close()
        return RawResponse(resp.status_code, body)

    def close(self) -> None:
        if self._own_client:
            with contextlib.suppress(Exception):
                self.client.close()


# ---------- requests (sync) ----------
class RequestsTransport:
    def __init__(self, session: requests.Session | None = None, timeout: float = 80.0):
        self._own_session = session is None
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def send(self, request: Request) -> RawResponse:
        try:
            resp = self.session.request(
                request.method,
                request.url,
                data=request.body or None,
                # requests takes one value per name
                headers=request.folded_headers(),
                timeout=self.timeout,
                stream=True,
            )
        except requests.RequestException as e:
            raise TransportError(str(e) or type(e).__name__) from e
        try:
            body = resp.content
        except requests.RequestException as e:
            raise BodyReadError(resp.status_code, e) from e
        finally:
            with contextlib.suppress(Exception):
                resp.close()
        return RawResponse(resp.status_code, body)

    def close(self) -> None:
        if self._own_session:
            with contextlib.suppress(Exception):
                self.session.close()
