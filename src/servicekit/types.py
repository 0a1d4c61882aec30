from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum


class Method(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


@dataclass
class AuthorizationType:
    header_name: str
    # identity of the entry; adding the same type twice updates the token
    header_type: str
    # prefix put in front of the token in the header value
    header_type_value: str = ""
    token: str = ""

    def with_token(self, token: str) -> "AuthorizationType":
        return replace(self, token=token)


BASIC = AuthorizationType("Authorization", "Basic", "Basic ")
BEARER = AuthorizationType("Authorization", "Bearer", "Bearer ")
ACCESS_TOKEN = AuthorizationType("X-Access-Token", "Auth0", "")
SECRET = AuthorizationType("Secret", "Secret", "")
API_KEY = AuthorizationType("APIKey", "APIKey", "")

AUTHORIZATION_KINDS: dict[str, AuthorizationType] = {
    "BASIC": BASIC,
    "BEARER": BEARER,
    "ACCESS_TOKEN": ACCESS_TOKEN,
    "SECRET": SECRET,
    "API_KEY": API_KEY,
}


@dataclass(frozen=True)
class RetryConfig:
    # Transport errors/backoff (seconds)
    min_delay: float = 0.5
    max_delay: float = 5.0


@dataclass
class ClientConfig:
    api_url: str = "https://127.0.0.1:8080"
    max_network_retries: int = 0
    # zero backoff between retries; meant for tests
    use_normal_sleep: bool = False
    client_name: str = ""
    authorization_types: list[AuthorizationType] = field(default_factory=list)
    retry_config: RetryConfig = field(default_factory=RetryConfig)
    timeout: float = 80.0

    def __post_init__(self):
        self.api_url = self.api_url.rstrip("/")
        if self.max_network_retries < 0:
            raise ValueError(
                f"max_network_retries must be >= 0, got {self.max_network_retries}"
            )
        if self.retry_config.min_delay <= 0:
            raise ValueError(f"min_delay must be > 0, got {self.retry_config.min_delay}")
        if self.retry_config.max_delay < self.retry_config.min_delay:
            raise ValueError(
                f"max_delay ({self.retry_config.max_delay}) must be >= "
                f"min_delay ({self.retry_config.min_delay})"
            )


@dataclass(frozen=True)
class BreakerSettings:
    timeout_ms: int = 5000
    max_concurrent_requests: int = 100
    error_percent_threshold: int = 20
    # minimum outcomes in the rolling window before the error rate can trip it
    request_volume_threshold: int = 20
    sleep_window_ms: int = 5000
    rolling_window_ms: int = 10000


@dataclass
class Request:
    method: str
    url: str
    body: bytes = b""
    # ordered (name, value) pairs; a name may repeat
    headers: list[tuple[str, str]] = field(default_factory=list)

    def __post_init__(self):
        if isinstance(self.headers, Mapping):
            self.headers = list(self.headers.items())
        else:
            self.headers = list(self.headers)

    def folded_headers(self) -> dict[str, str]:
        """Headers as a mapping, repeated names joined with ", "."""
        out: dict[str, str] = {}
        for name, value in self.headers:
            out[name] = f"{out[name]}, {value}" if name in out else value
        return out


@dataclass
class RawResponse:
    status_code: int
    body: bytes = b""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")
