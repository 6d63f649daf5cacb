"""
Shapewire - HTTP Message Types

Transport-neutral request and response containers exchanged with the HTTP
transport, plus request-URI template expansion.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple
from urllib.parse import quote, urlencode

_LABEL_RE = re.compile(r"\{([^}]+)\}")


class CaseInsensitiveDict(Mapping[str, str]):
    """Read-only header mapping with case-insensitive keys."""

    def __init__(self, data: Optional[Mapping[str, str]] = None):
        self._store: Dict[str, Tuple[str, str]] = {}
        for key, value in (data or {}).items():
            self._store[key.lower()] = (key, value)

    def __getitem__(self, key: str) -> str:
        return self._store[key.lower()][1]

    def __iter__(self) -> Iterator[str]:
        return (original for original, _ in self._store.values())

    def __len__(self) -> int:
        return len(self._store)

    def __repr__(self) -> str:
        return f"CaseInsensitiveDict({dict(self.items())!r})"


@dataclass
class HttpRequest:
    """A fully formed HTTP request handed to the transport."""

    method: str
    path: str = "/"
    query: List[Tuple[str, str]] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    endpoint: Optional[str] = None

    @property
    def url(self) -> str:
        base = (self.endpoint or "").rstrip("/")
        if base and "://" not in base:
            base = f"https://{base}"
        url = f"{base}{self.path}"
        if self.query:
            url += "?" + urlencode(self.query, quote_via=quote)
        return url

    @property
    def content(self) -> bytes:
        """Body as bytes; streaming bodies are not materialized."""
        if self.body is None:
            return b""
        if isinstance(self.body, (bytes, bytearray)):
            return bytes(self.body)
        raise TypeError("Request body is a stream; read it through the transport")


@dataclass
class HttpResponse:
    """An HTTP response received from the transport."""

    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = b""

    def __post_init__(self):
        if not isinstance(self.headers, CaseInsensitiveDict):
            self.headers = CaseInsensitiveDict(self.headers)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def content(self) -> bytes:
        if self.body is None:
            return b""
        if isinstance(self.body, (bytes, bytearray)):
            return bytes(self.body)
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        if hasattr(self.body, "read"):
            self.body = self.body.read()
            return self.content
        raise TypeError(f"Unsupported response body type: {type(self.body).__name__}")


def split_request_uri(request_uri: str) -> Tuple[str, List[Tuple[str, str]]]:
    """Split a request URI template into its path and literal query pairs.

    ``/{Bucket}?acl`` yields ``("/{Bucket}", [("acl", "")])``.
    """
    path, _, literal_query = request_uri.partition("?")
    pairs: List[Tuple[str, str]] = []
    for part in literal_query.split("&"):
        if not part:
            continue
        name, _, value = part.partition("=")
        pairs.append((name, value))
    return path or "/", pairs


def expand_uri_template(path_template: str, labels: Mapping[str, str]) -> str:
    """Substitute ``{Label}`` and greedy ``{Label+}`` placeholders.

    Raises ``KeyError`` naming the label when a value is missing.
    """

    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        greedy = name.endswith("+")
        if greedy:
            name = name[:-1]
        if name not in labels:
            raise KeyError(name)
        value = labels[name]
        if greedy:
            return "/".join(quote(segment, safe="") for segment in value.split("/"))
        return quote(value, safe="")

    return _LABEL_RE.sub(_replace, path_template)
