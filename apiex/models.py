"""api-ex models - request templates, resolved requests and responses."""

from dataclasses import asdict, dataclass, field
from typing import Any

DEFAULT_TIMEOUT_MS = 30000


@dataclass
class RequestTemplate:
    """A saved, reusable request. Placeholders stay unresolved."""

    name: str
    method: str
    url: str
    headers: list[str] = field(default_factory=list)
    body: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "RequestTemplate":
        return cls(
            name=data["name"],
            method=data.get("method", "GET"),
            url=data.get("url", ""),
            headers=list(data.get("headers") or []),
            body=data.get("body") or "",
        )


@dataclass
class ResolvedRequest:
    """A concrete wire request. Never persisted."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    timeout_ms: int = DEFAULT_TIMEOUT_MS


@dataclass
class Response:
    """Normalized result of a completed exchange, whatever the status code."""

    status_code: int
    status_text: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None  # parsed JSON or raw text
    elapsed_ms: int = 0
    request: ResolvedRequest | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400
