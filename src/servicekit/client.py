import contextlib
import dataclasses
import json
import logging
import shlex
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

import httpx

from .adapters import HttpxTransport, Transport
from .auth import Authenticator
from .backoff import sleep_time
from .breaker import DEFAULT_REGISTRY, Breaker
from .cache import CacheStore, cache_key
from .env import load_client_config_from_env
from .errors import (
    BodyReadError,
    BreakerOpenError,
    BreakerTimeoutError,
    ResponseError,
    TransportError,
)
from .types import AuthorizationType, BreakerSettings, ClientConfig, Method, Request

logger = logging.getLogger("servicekit")

CONTENT_TYPE_JSON = "application/json"

# ---------- Common helpers ----------


def format_curl(request: Request, redact: frozenset[str] = frozenset()) -> str:
    """Render ``request`` as an equivalent curl command line (for logs)."""
    parts = ["curl", "-X", shlex.quote(request.method)]
    if request.body:
        parts += ["-d", shlex.quote(request.body.decode("utf-8", errors="replace"))]
    for name, value in sorted(request.headers):
        if name in redact:
            value = "***"
        parts += ["-H", shlex.quote(f"{name}: {value}")]
    parts.append(shlex.quote(request.url))
    return " ".join(parts)


def _json_default(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _method_name(method: Method | str) -> str:
    if isinstance(method, Method):
        return method.value
    return Method(str(method).upper()).value


def _failure_from_body(status_code: int, body: str, url: str) -> ResponseError:
    code, message, info = str(status_code), "", ""
    decode_error: Exception | None = None
    try:
        payload = json.loads(body)
        if not isinstance(payload, dict):
            raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    except ValueError as e:
        decode_error = e
        message = body
    else:
        code = str(payload.get("code") or code)
        message = str(payload.get("message") or "")
        info = str(payload.get("info") or "")
    if info:
        message = info
    if decode_error is not None:
        error: BaseException = decode_error
    else:
        error = RuntimeError(f"Error while calling {url}: {message}")
    return ResponseError(
        code=code, message=message, status_code=status_code, error=error, info=info
    )


class HTTPClient:
    """JSON-over-HTTP client for service-to-service calls.

    Every call retries transport failures with capped exponential backoff and
    turns a non-success status into a ResponseError. Variants add a response
    cache (call_client_with_caching) or a per-client circuit breaker
    (call_client_with_circuit_breaker).
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        transport: Transport | None = None,
        cache: CacheStore | None = None,
        breaker: Breaker | None = None,
        sleeper: Callable[[float], None] = time.sleep,
        log_level: int | None = None,
        **kwargs,
    ):
        """Initialize an HTTPClient.

        Args:
            config (ClientConfig | None): client configuration; built from kwargs if None
            transport (Transport | None): sends requests; HttpxTransport if None
            cache (CacheStore | None): store used by call_client_with_caching
            breaker (Breaker | None): registry used by call_client_with_circuit_breaker
            sleeper (Callable[[float], None]): blocks between retries
            log_level (int | None): level for the "servicekit" logger
            kwargs: ClientConfig fields (api_url, max_network_retries,
                use_normal_sleep, client_name, authorization_types, retry_config,
                timeout) used when config is None
        """
        self.config = config if config is not None else ClientConfig(**kwargs)
        self._own_transport = transport is None
        self.transport: Transport = (
            transport if transport is not None else HttpxTransport(timeout=self.config.timeout)
        )
        self.cache = cache
        self.breaker: Breaker = breaker if breaker is not None else DEFAULT_REGISTRY
        self._sleep = sleeper
        self.authenticator = Authenticator(self.config.authorization_types)
        self._logger = logger
        if log_level is not None:
            with contextlib.suppress(Exception):
                self._logger.setLevel(log_level)

    # ---------- config accessors ----------
    @property
    def api_url(self) -> str:
        return self.config.api_url

    @property
    def client_name(self) -> str:
        return self.config.client_name

    @property
    def max_network_retries(self) -> int:
        return self.config.max_network_retries

    @property
    def authorization_types(self) -> list[AuthorizationType]:
        return self.authenticator.entries

    def add_authentication(self, kind: AuthorizationType, token: str | None = None) -> None:
        self.authenticator.add(kind, token)
        self.config.authorization_types = self.authenticator.entries

    # ---------- convenience: build config from env ----------
    @classmethod
    def from_env(cls, prefix: str | None = None, env_path: str | None = None, **kwargs):
        """Create an HTTPClient whose ClientConfig comes from environment variables.

        Args:
            prefix (str | None): variable prefix. Defaults to "SERVICEKIT_HTTP_".
            env_path (str | None): optional .env file; the real environment wins.

            kwargs keywords:
            transport, cache, breaker, sleeper, log_level: passed to the client
            anything else: ClientConfig overrides
        """
        client_keys = {
            k: kwargs.pop(k)
            for k in list(kwargs.keys())
            if k in {"transport", "cache", "breaker", "sleeper", "log_level"}
        }
        loader_kwargs = {"prefix": prefix} if prefix is not None else {}
        config = load_client_config_from_env(env_path=env_path, **loader_kwargs, **kwargs)
        return cls(config, **client_keys)

    def close(self) -> None:
        if self._own_transport:
            self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # ---------- executor ----------
    def _should_retry(self, error: BaseException | None, retry: int) -> bool:
        if retry >= self.config.max_network_retries:
            return False
        return error is not None

    def _sleep_time(self, retry: int) -> float:
        return sleep_time(retry, self.config.retry_config, self.config.use_normal_sleep)

    def do(self, request: Request) -> str:
        """Send ``request`` and return the response body.

        Only transport errors are retried; any received status ends the loop.

        Raises:
            ResponseError: transport failure after retries, unreadable body, or a
                status outside 200-399
        """
        retry = 0
        while True:
            try:
                resp = self.transport.send(request)
                break
            except TransportError as e:
                if not self._should_retry(e, retry):
                    self._logger.warning(
                        f"call {request.method} {request.url} failed after {retry} retries: {e}"
                    )
                    raise ResponseError(
                        code="Internal Server Error",
                        message="Error while retry",
                        status_code=500,
                        error=e,
                        info=f"Error when retrying to call [{self.api_url}]",
                    ) from e
                delay = self._sleep_time(retry)
                retry += 1
                self._logger.warning(
                    f"call {request.method} {request.url} attempt {retry} failed: {e}; "
                    f"retrying in {delay:.2f}s"
                )
                self._sleep(delay)
            except BodyReadError as e:
                raise ResponseError(
                    code=str(e.status_code),
                    status_code=e.status_code,
                    error=e.cause,
                    info=f"Error when retrying to call [{self.api_url}]",
                ) from e

        body = resp.text
        if resp.status_code < 200 or resp.status_code >= 400:  # noqa: PLR2004
            raise _failure_from_body(resp.status_code, body, request.url)
        return body

    # ---------- request building ----------
    def _resolve(self, path: str) -> str:
        return self._absolute(f"{self.api_url}/{path.lstrip('/')}")

    def _absolute(self, url: str) -> str:
        try:
            return str(httpx.URL(url))
        except (httpx.InvalidURL, TypeError, ValueError) as e:
            raise ResponseError(error=e) from e

    def _encode(self, request: Any) -> bytes:
        if request is None or request == "":
            return b""
        try:
            return json.dumps(request, default=_json_default).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise ResponseError(error=e) from e

    def _build_request(self, method: Method | str, url: str, body: bytes) -> Request:
        try:
            name = _method_name(method)
        except ValueError as e:
            raise ResponseError(error=e) from e
        headers = self.authenticator.apply([])
        headers.append(("Content-Type", CONTENT_TYPE_JSON))
        return Request(method=name, url=url, body=body, headers=headers)

    def _log_call(self, request: Request, response: str) -> None:
        with contextlib.suppress(Exception):
            redact = frozenset(e.header_name for e in self.authenticator.entries)
            self._logger.info(
                f"[Calling {self.client_name}] curl: {format_curl(request, redact)} "
                f"response: {response}"
            )

    def _decode(self, text: str, result_type: Callable[..., Any] | None) -> Any:
        if text == "":
            return None
        try:
            value = json.loads(text)
            if result_type is None:
                return value
            if dataclasses.is_dataclass(result_type) and isinstance(value, dict):
                return result_type(**value)
            return result_type(value)
        except (TypeError, ValueError) as e:
            raise ResponseError(error=e) from e

    def _execute(self, request: Request, result_type: Callable[..., Any] | None) -> Any:
        response = ""
        try:
            response = self.do(request)
        finally:
            self._log_call(request, response)
        return self._decode(response, result_type)

    # ---------- public calls ----------
    def call_client(
        self,
        path: str,
        method: Method | str,
        request: Any = None,
        result_type: Callable[..., Any] | None = None,
    ) -> Any:
        """Call ``<api_url>/<path>`` with ``request`` as the JSON body.

        Returns the decoded JSON response (passed through ``result_type`` when
        given), or None for an empty body.
        """
        body = self._encode(request)
        req = self._build_request(method, self._resolve(path), body)
        return self._execute(req, result_type)

    def call_client_with_base_url_given(
        self,
        url: str,
        method: Method | str,
        request: Any = None,
        result_type: Callable[..., Any] | None = None,
    ) -> Any:
        body = self._encode(request)
        req = self._build_request(method, self._absolute(url), body)
        return self._execute(req, result_type)

    def call_client_with_request_in_bytes(
        self,
        path: str,
        method: Method | str,
        request: bytes,
        result_type: Callable[..., Any] | None = None,
    ) -> Any:
        """Like call_client, but ``request`` is sent as-is without encoding."""
        req = self._build_request(method, self._resolve(path), bytes(request or b""))
        return self._execute(req, result_type)

    def call_client_with_caching(
        self,
        ttl: int,
        path: str,
        method: Method | str,
        request: Any = None,
        result_type: Callable[..., Any] | None = None,
        cache_key_path: str | None = None,
    ) -> Any:
        """call_client with the response body cached for ``ttl`` seconds.

        The cache key is ``apicaching:<url>`` where url is resolved from
        ``cache_key_path`` when given, else from ``path``. Cache read/write
        problems and undecodable cached values are logged and treated as misses.
        """
        body = self._encode(request)
        url = self._resolve(path)
        key = cache_key(self._resolve(cache_key_path) if cache_key_path is not None else url)
        if self.cache is None:
            self._logger.debug(f"no cache store configured; calling {url} directly")
            return self._execute(self._build_request(method, url, body), result_type)

        cached = None
        try:
            cached = self.cache.get(key)
        except Exception as e:
            self._logger.warning(f"cache read failed key={key}: {e}")
        if cached:
            try:
                value = self._decode(cached, result_type)
                self._logger.debug(f"cache hit key={key}")
                return value
            except ResponseError as e:
                self._logger.warning(f"cached value unreadable key={key}: {e.error}")

        req = self._build_request(method, url, body)
        response = ""
        try:
            response = self.do(req)
        finally:
            self._log_call(req, response)
        value = self._decode(response, result_type)
        if response != "":
            try:
                self.cache.set(key, response, ttl)
            except Exception as e:
                self._logger.warning(f"cache write failed key={key}: {e}")
        return value

    def call_client_with_circuit_breaker(
        self,
        path: str,
        method: Method | str,
        request: Any = None,
        result_type: Callable[..., Any] | None = None,
        settings: BreakerSettings | None = None,
    ) -> Any:
        """call_client run through the breaker registered under ``client_name``.

        Raises:
            ResponseError: as call_client; breaker rejections and timeouts come
                back with status 503/504 and the breaker error in ``error``
        """
        name = self.client_name or self.api_url
        self.breaker.configure(name, settings or BreakerSettings())

        def _call():
            return self.call_client(path, method, request, result_type)

        try:
            return self.breaker.execute(name, _call)
        except BreakerOpenError as e:
            raise ResponseError(
                code="Service Unavailable",
                message=str(e),
                status_code=503,
                error=e,
                info=f"circuit {name} rejected call to [{self.api_url}]",
            ) from e
        except BreakerTimeoutError as e:
            raise ResponseError(
                code="Gateway Timeout",
                message=str(e),
                status_code=504,
                error=e,
                info=f"circuit {name} timed out calling [{self.api_url}]",
            ) from e
