from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, MutableMapping, Optional, Tuple, Union


HeaderSource = Union[Mapping[str, Any], Iterable[Tuple[str, Any]], None]


def _pairs(source: HeaderSource) -> Iterable[Tuple[str, Any]]:
    if source is None:
        return ()
    if isinstance(source, Mapping):
        return source.items()
    return source


class HeaderMap(Mapping):
    """Read-only header mapping with case-insensitive lookups.

    Keys are stored lower-cased next to the spelling they were first inserted
    with, which is what iteration yields. A later insert of the same name under
    different casing replaces the value but keeps the first spelling.
    """

    def __init__(self, headers: HeaderSource = None) -> None:
        self._store: Dict[str, Tuple[str, Any]] = {}
        for name, value in _pairs(headers):
            self._put(name, value)

    def _put(self, name: str, value: Any) -> None:
        key = name.lower()
        existing = self._store.get(key)
        self._store[key] = (existing[0] if existing else name, value)

    def __getitem__(self, name: str) -> Any:
        return self._store[name.lower()][1]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._store

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._store.values())

    def __len__(self) -> int:
        return len(self._store)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({dict(self.items())!r})"


class MutableHeaderMap(HeaderMap, MutableMapping):
    def __setitem__(self, name: str, value: Any) -> None:
        self._put(name, value)

    def __delitem__(self, name: str) -> None:
        del self._store[name.lower()]


class QueryParams(Mapping):
    """Parsed query parameters. ``None`` marks a key that was given without a value."""

    def __init__(self, params: Optional[Mapping[str, Optional[str]]] = None) -> None:
        self._params: Dict[str, Optional[str]] = dict(params or {})

    def __getitem__(self, key: str) -> Optional[str]:
        return self._params[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._params)

    def __len__(self) -> int:
        return len(self._params)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        # absent values fall back to the default just like missing keys
        value = self._params.get(key)
        return default if value is None else value

    def __repr__(self) -> str:
        return f"QueryParams({self._params!r})"


@dataclass(frozen=True)
class CanonicalRequest:
    method: str = ""
    headers: HeaderMap = field(default_factory=HeaderMap)
    query_params: QueryParams = field(default_factory=QueryParams)
    body: Optional[str] = None
    path: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.headers, HeaderMap):
            object.__setattr__(self, "headers", HeaderMap((k.lower(), v) for k, v in _pairs(self.headers)))
        if not isinstance(self.query_params, QueryParams):
            object.__setattr__(self, "query_params", QueryParams(self.query_params))
        object.__setattr__(self, "method", (self.method or "").upper())

    @property
    def user_agent(self) -> Optional[str]:
        return self.headers.get("user-agent")


@dataclass
class CanonicalResponse:
    status_code: int
    headers: MutableHeaderMap = field(default_factory=MutableHeaderMap)
    body: str = ""

    def __post_init__(self) -> None:
        headers = MutableHeaderMap()
        for name, value in _pairs(self.headers):
            if isinstance(value, (list, tuple)):
                headers[name] = [str(v) for v in value]
            else:
                headers[name] = [str(value)]
        self.headers = headers
        if self.body is None:
            self.body = ""

    def add_header(self, name: str, value: str) -> None:
        if name in self.headers:
            self.headers[name].append(value)
        else:
            self.headers[name] = [value]

    def header_lines(self) -> List[Tuple[str, str]]:
        """Flatten headers to ``(name, value)`` pairs, one per value."""
        return [(name, value) for name, values in self.headers.items() for value in values]
