import os

from .types import AUTHORIZATION_KINDS, AuthorizationType, ClientConfig, RetryConfig

DEFAULT_PREFIX = "SERVICEKIT_HTTP_"

_TRUTHY = {"1", "true", "yes", "on"}

# (variable suffix, ClientConfig field, parser)
_CONFIG_VARS = (
    ("API_URL", "api_url", str),
    ("MAX_NETWORK_RETRIES", "max_network_retries", int),
    ("USE_NORMAL_SLEEP", "use_normal_sleep", lambda v: v.strip().lower() in _TRUTHY),
    ("CLIENT_NAME", "client_name", str),
    ("TIMEOUT", "timeout", float),
)


def _parse_env_file(env_path: str) -> dict[str, str]:
    """Parse a simple .env file into a dict without modifying os.environ.

    Supports basic KEY=VALUE pairs, ignoring comments and blank lines.
    Surrounding single/double quotes are stripped if present.
    """
    values: dict[str, str] = {}
    try:
        with open(env_path) as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                if "=" not in line:
                    continue
                key, val = line.split("=", 1)
                key = key.strip()
                val = val.strip().strip('"').strip("'")
                if key:
                    values[key] = val
    except FileNotFoundError:
        # Silently ignore missing file to make the helper easy to use
        pass
    return values


def _env_map(env_path: str | None) -> dict[str, str]:
    # actual environment takes precedence over .env file
    file_env = _parse_env_file(env_path) if env_path else {}
    return {**file_env, **os.environ}


def load_authentications_from_env(
    prefix: str = DEFAULT_PREFIX,
    env_path: str | None = None,
) -> list[AuthorizationType]:
    """Build authorization entries from ``<prefix>AUTH_<KIND>`` variables.

    KIND is one of BASIC, BEARER, ACCESS_TOKEN, SECRET, API_KEY. Entries come
    back in that order; empty values are skipped.
    """
    env_map = _env_map(env_path)
    results: list[AuthorizationType] = []
    for name, kind in AUTHORIZATION_KINDS.items():
        token = env_map.get(f"{prefix}AUTH_{name}")
        if token:
            results.append(kind.with_token(token))
    return results


def load_client_config_from_env(
    prefix: str = DEFAULT_PREFIX,
    env_path: str | None = None,
    **overrides,
) -> ClientConfig:
    """Create a ClientConfig from environment variables.

    Recognised variables (after the prefix): API_URL, MAX_NETWORK_RETRIES,
    USE_NORMAL_SLEEP, CLIENT_NAME, TIMEOUT, RETRY_MIN_DELAY, RETRY_MAX_DELAY and
    AUTH_<KIND>. Keyword overrides win over both the environment and the file.

    Raises:
        ValueError: if a numeric variable does not parse
    """
    env_map = _env_map(env_path)

    kwargs: dict = {}
    for var, field_name, parse in _CONFIG_VARS:
        raw = env_map.get(f"{prefix}{var}")
        if raw:
            kwargs[field_name] = parse(raw)
    retry_kwargs: dict = {}
    for var, field_name in (("RETRY_MIN_DELAY", "min_delay"), ("RETRY_MAX_DELAY", "max_delay")):
        raw = env_map.get(f"{prefix}{var}")
        if raw:
            retry_kwargs[field_name] = float(raw)
    if retry_kwargs:
        kwargs["retry_config"] = RetryConfig(**retry_kwargs)
    kwargs["authorization_types"] = load_authentications_from_env(prefix, env_path)
    kwargs.update(overrides)
    return ClientConfig(**kwargs)
