from .adapters import HttpxTransport, RequestsTransport, Transport
from .auth import Authenticator
from .backoff import sleep_time
from .breaker import Breaker, BreakerRegistry
from .cache import CacheStore, MemoryCacheStore, RedisCacheStore, cache_key
from .client import HTTPClient, format_curl
from .env import load_authentications_from_env, load_client_config_from_env
from .errors import (
    BodyReadError,
    BreakerOpenError,
    BreakerTimeoutError,
    ResponseError,
    TransportError,
)
from .query import QueryField, parse_query_params
from .types import (
    ACCESS_TOKEN,
    API_KEY,
    BASIC,
    BEARER,
    SECRET,
    AuthorizationType,
    BreakerSettings,
    ClientConfig,
    Method,
    RawResponse,
    Request,
    RetryConfig,
)

__all__ = [
    "HTTPClient",
    "ClientConfig",
    "RetryConfig",
    "BreakerSettings",
    "Method",
    "Request",
    "RawResponse",
    "AuthorizationType",
    "BASIC",
    "BEARER",
    "ACCESS_TOKEN",
    "SECRET",
    "API_KEY",
    "Authenticator",
    "Transport",
    "HttpxTransport",
    "RequestsTransport",
    "Breaker",
    "BreakerRegistry",
    "CacheStore",
    "RedisCacheStore",
    "MemoryCacheStore",
    "cache_key",
    "ResponseError",
    "TransportError",
    "BodyReadError",
    "BreakerOpenError",
    "BreakerTimeoutError",
    "QueryField",
    "parse_query_params",
    "sleep_time",
    "format_curl",
    "load_client_config_from_env",
    "load_authentications_from_env",
]
