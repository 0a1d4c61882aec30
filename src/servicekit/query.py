from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


@dataclass(frozen=True)
class QueryField:
    """How one attribute of a params object becomes query pairs.

    - repeated: the value is a sequence, one pair per element
    - omit_empty: skip empty strings (None is always skipped)
    """

    attr: str
    key: str | None = None
    repeated: bool = False
    omit_empty: bool = True

    @property
    def query_key(self) -> str:
        return self.key or self.attr


def _lookup(params: Any, attr: str) -> Any:
    if isinstance(params, Mapping):
        return params.get(attr)
    return getattr(params, attr, None)


def _format(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def encode_fields(params: Any, fields: Iterable[QueryField]) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for f in fields:
        value = _lookup(params, f.attr)
        if value is None:
            continue
        if f.repeated:
            pairs.extend((f.query_key, _format(v)) for v in value)
            continue
        if isinstance(value, str) and value == "" and f.omit_empty:
            continue
        pairs.append((f.query_key, _format(value)))
    return pairs


def parse_query_params(path: str, params: Any, fields: Iterable[QueryField]) -> str:
    """Return ``path`` with the declared fields of ``params`` added to its query.

    Existing query pairs are kept. Keys are sorted and each key's values keep
    their order.
    """
    parts = urlsplit(path)
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    pairs.extend(encode_fields(params, fields))
    # stable sort: values of one key keep insertion order
    pairs.sort(key=lambda kv: kv[0])
    return urlunsplit(parts._replace(query=urlencode(pairs)))
