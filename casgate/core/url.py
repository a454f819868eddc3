from dataclasses import dataclass, replace
from typing import Optional, Tuple
from urllib.parse import quote_plus, unquote_plus, urlsplit, urlunsplit

from ..exceptions import URLParseError


def _parse_query(query: str) -> Tuple[Tuple[str, Optional[str]], ...]:
    # A bare name ("?flag") keeps a None value so it serializes back unchanged
    params = []
    for piece in query.split("&"):
        if not piece:
            continue
        name, sep, value = piece.partition("=")
        params.append((unquote_plus(name), unquote_plus(value) if sep else None))
    return tuple(params)


def _encode_query(params) -> str:
    return "&".join(
        quote_plus(k) if v is None else f"{quote_plus(k)}={quote_plus(v)}"
        for k, v in params
    )


def _param_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class URL:
    """
    Immutable absolute URL used to build CAS protocol endpoints.

    Every derivation (append_path, add_params, remove_param) returns a new
    URL, so a server base URL can be shared between requests safely.
    """
    scheme: str
    host: str
    port: Optional[int] = None
    path: str = ""
    params: Tuple[Tuple[str, Optional[str]], ...] = ()
    fragment: str = ""

    @classmethod
    def parse(cls, text: str) -> "URL":
        if not isinstance(text, str):
            raise URLParseError(f"Expected a URL string, got {type(text).__name__}")
        try:
            parts = urlsplit(text.strip())
            port = parts.port
        except ValueError as e:
            raise URLParseError(f"Malformed URL {text!r}: {e}") from e

        if not parts.scheme or not parts.hostname:
            raise URLParseError(f"Not an absolute URL: {text!r}")

        return cls(
            scheme=parts.scheme.lower(),
            host=parts.hostname,
            port=port,
            path=parts.path,
            params=_parse_query(parts.query),
            fragment=parts.fragment,
        )

    @property
    def query_values(self) -> dict:
        return dict(self.params)

    def copy(self) -> "URL":
        return replace(self)

    def append_path(self, segment: str) -> "URL":
        path = self.path.rstrip("/") + "/" + segment.lstrip("/")
        return replace(self, path=path)

    def add_params(self, mapping: dict = None, **params) -> "URL":
        updates = dict(mapping or {})
        updates.update(params)
        updates = {str(k): _param_value(v) for k, v in updates.items()}

        merged = []
        written = set()
        for key, value in self.params:
            if key in written:
                continue
            if key in updates:
                merged.append((key, updates[key]))
                written.add(key)
            else:
                merged.append((key, value))
        merged.extend((k, v) for k, v in updates.items() if k not in written)
        return replace(self, params=tuple(merged))

    def remove_param(self, name: str) -> "URL":
        return replace(self, params=tuple((k, v) for k, v in self.params if k != name))

    @property
    def netloc(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        if self.port is not None:
            return f"{host}:{self.port}"
        return host

    def __str__(self) -> str:
        return urlunsplit((self.scheme, self.netloc, self.path, _encode_query(self.params), self.fragment))
