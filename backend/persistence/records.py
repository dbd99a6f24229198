from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field, fields
from typing import Any

from .time_utils import epoch_millis

ROLES = {"user", "assistant"}
CITATION_KINDS = {"search", "map"}
DEFAULT_LANGUAGE = "en-US"

_LEGACY_ROLES = {"model": "assistant"}


class MessageIdSequence:
    """Millisecond ids, strictly increasing within the process."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def next(self, now_ms: int | None = None) -> str:
        candidate = epoch_millis() if now_ms is None else int(now_ms)
        with self._lock:
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
            return str(candidate)

    def observe(self, message_id: str) -> None:
        try:
            numeric = int(message_id)
        except (TypeError, ValueError):
            return
        with self._lock:
            if numeric > self._last:
                self._last = numeric


message_ids = MessageIdSequence()


@dataclass(frozen=True)
class Citation:
    title: str | None
    uri: str | None
    kind: str = "search"

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "uri": self.uri, "kind": self.kind}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Citation":
        kind = str(payload.get("kind") or payload.get("sourceType") or "search")
        if kind not in CITATION_KINDS:
            kind = "search"
        return cls(title=payload.get("title"), uri=payload.get("uri"), kind=kind)


@dataclass(frozen=True)
class Message:
    id: str
    role: str
    text: str
    timestamp: int
    citations: tuple[Citation, ...] = ()
    failed: bool = False

    @classmethod
    def create(
        cls,
        role: str,
        text: str,
        *,
        citations: list[Citation] | tuple[Citation, ...] = (),
        failed: bool = False,
    ) -> "Message":
        if role not in ROLES:
            raise ValueError(f"Unsupported message role: {role}")
        now = epoch_millis()
        return cls(
            id=message_ids.next(now),
            role=role,
            text=text,
            timestamp=now,
            citations=tuple(citations),
            failed=failed,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "text": self.text,
            "timestamp": self.timestamp,
            "citations": [citation.to_dict() for citation in self.citations],
            "failed": self.failed,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Message":
        role = str(payload.get("role") or "")
        role = _LEGACY_ROLES.get(role, role)
        if role not in ROLES:
            raise ValueError(f"Unsupported message role: {role!r}")
        raw_citations = payload.get("citations")
        if raw_citations is None:
            raw_citations = payload.get("groundingSources") or []
        failed = payload.get("failed")
        if failed is None:
            failed = payload.get("isError", False)
        return cls(
            id=str(payload["id"]),
            role=role,
            text=str(payload.get("text") or ""),
            timestamp=int(payload.get("timestamp") or 0),
            citations=tuple(Citation.from_dict(item) for item in raw_citations if isinstance(item, dict)),
            failed=bool(failed),
        )


@dataclass
class Profile:
    uid: str
    display_name: str = ""
    email: str = ""
    mobile: str = ""
    emergency_contact: str = ""
    blood_group: str = ""
    health_issues: str = ""
    language: str = DEFAULT_LANGUAGE
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        extra = payload.pop("extra")
        return {**extra, **payload}

    @classmethod
    def from_dict(cls, payload: dict[str, Any], *, uid: str | None = None) -> "Profile":
        known = PROFILE_FIELDS
        values = {key: payload[key] for key in known if payload.get(key) is not None}
        values["uid"] = str(values.get("uid") or uid or "")
        extra = {key: value for key, value in payload.items() if key not in known}
        return cls(**values, extra=extra)


PROFILE_FIELDS = frozenset(item.name for item in fields(Profile)) - {"extra"}
