from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Sequence

import httpx

from persistence.records import Citation, Message

from .models import language_name

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_CHAT_MODEL = "gemini-2.5-flash"

MISSING_KEY_TEXT = "API key missing. Set GEMINI_API_KEY to use the AI assistant."
EMPTY_REPLY_TEXT = "I couldn't find an answer to that."
NEARBY_FAILED_TEXT = "Failed to find location info."

_MAP_URI_RE = re.compile(
    r"^https?://(?:[a-z0-9-]+\.)*(?:google\.[a-z.]+/maps|maps\.google\.[a-z.]+|goo\.gl/maps|maps\.app\.goo\.gl)",
    re.IGNORECASE,
)


def _system_instruction(language: str) -> str:
    return (
        "You are an emergency first aid assistant. "
        "Give clear, calm, step-by-step instructions using short bullet points. "
        "Stay concise and action-oriented. When a procedure such as CPR is involved, "
        "prefer sources with diagrams or images and cite them. "
        "Tell the user to call local emergency services when the situation is life-threatening. "
        f"Respond in {language}."
    )


def is_map_uri(uri: str | None) -> bool:
    return isinstance(uri, str) and bool(_MAP_URI_RE.match(uri.strip()))


def extract_citations(response_json: dict[str, Any]) -> list[Citation]:
    candidates = response_json.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return []
    first = candidates[0]
    metadata = first.get("groundingMetadata") if isinstance(first, dict) else None
    if not isinstance(metadata, dict):
        return []
    chunks = metadata.get("groundingChunks")
    if not isinstance(chunks, list):
        return []

    citations: list[Citation] = []
    for chunk in chunks:
        if not isinstance(chunk, dict):
            continue
        web = chunk.get("web")
        maps = chunk.get("maps")
        if isinstance(web, dict):
            uri = web.get("uri")
            kind = "map" if is_map_uri(uri) else "search"
            citations.append(Citation(title=web.get("title"), uri=uri, kind=kind))
        elif isinstance(maps, dict):
            citations.append(Citation(title=maps.get("title"), uri=maps.get("uri"), kind="map"))
    return citations


def _coerce_gemini_text(response_json: dict[str, Any]) -> str:
    candidates = response_json.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""
    first = candidates[0]
    content = first.get("content") if isinstance(first, dict) else None
    if not isinstance(content, dict):
        return ""
    parts = content.get("parts")
    if not isinstance(parts, list):
        return ""
    texts = [part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)]
    return "".join(texts).strip()


def _gemini_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except Exception:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        err = payload["error"]
        message = str(err.get("message") or "").strip()
        status = str(err.get("status") or "").strip()
        if message:
            return f"{status}: {message}" if status else message
    return response.text.strip() or f"HTTP {response.status_code}"


def _error_summary(exc: BaseException) -> str:
    return str(exc).strip() or exc.__class__.__name__


def _history_contents(history: Sequence[Message]) -> list[dict[str, Any]]:
    contents: list[dict[str, Any]] = []
    for message in history:
        # Failed replies are error notices, not assistant content.
        if message.failed or not message.text.strip():
            continue
        role = "model" if message.role == "assistant" else "user"
        contents.append({"role": role, "parts": [{"text": message.text}]})
    return contents


@dataclass(frozen=True)
class NearbyPlace:
    name: str
    uri: str | None = None


@dataclass(frozen=True)
class NearbyPlaces:
    text: str
    places: list[NearbyPlace] = field(default_factory=list)


class AIOrchestrator:
    def __init__(
        self,
        *,
        api_key: str,
        model: str = DEFAULT_CHAT_MODEL,
        base_url: str = GEMINI_API_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _generate(self, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }
        # No client-side timeout: the service enforces its own.
        async with httpx.AsyncClient(timeout=None, transport=self._transport) as client:
            response = await client.post(
                f"{self.base_url}/models/{self.model}:generateContent",
                headers=headers,
                json=payload,
            )
        if response.status_code >= 400:
            raise RuntimeError(_gemini_error_message(response))
        body = response.json()
        if not isinstance(body, dict):
            raise RuntimeError("Unexpected response from the language model service.")
        return body

    async def converse(self, history: Sequence[Message], new_text: str, language_code: str) -> Message:
        if not self.configured:
            return Message.create("assistant", MISSING_KEY_TEXT, failed=True)

        language = language_name(language_code)
        payload = {
            "contents": [
                *_history_contents(history),
                {
                    "role": "user",
                    "parts": [{"text": f"{new_text.strip()}\n\nIMPORTANT: Respond in {language}."}],
                },
            ],
            "systemInstruction": {"parts": [{"text": _system_instruction(language)}]},
            "tools": [{"google_search": {}}],
        }
        try:
            body = await self._generate(payload)
            text = _coerce_gemini_text(body) or EMPTY_REPLY_TEXT
            citations = extract_citations(body)
        except Exception as exc:
            logger.warning("Language model request failed: %s", exc)
            return Message.create("assistant", f"Error connecting to AI: {_error_summary(exc)}", failed=True)
        return Message.create("assistant", text, citations=citations)

    async def find_nearby_places(
        self,
        latitude: float,
        longitude: float,
        query: str = "hospitals and clinics",
    ) -> NearbyPlaces:
        if not self.configured:
            return NearbyPlaces(text="API key missing")

        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {
                            "text": (
                                f"Find {query} near latitude {latitude}, longitude {longitude}. "
                                "List them with name, address, and rating."
                            )
                        }
                    ],
                }
            ],
            "tools": [{"google_maps": {}}],
            "toolConfig": {
                "retrievalConfig": {"latLng": {"latitude": latitude, "longitude": longitude}},
            },
        }
        try:
            body = await self._generate(payload)
            text = _coerce_gemini_text(body)
            citations = extract_citations(body)
        except Exception as exc:
            logger.warning("Nearby places lookup failed: %s", exc)
            return NearbyPlaces(text=NEARBY_FAILED_TEXT)

        places = [
            NearbyPlace(name=citation.title or "Unknown Place", uri=citation.uri)
            for citation in citations
            if citation.kind == "map"
        ]
        return NearbyPlaces(text=text, places=places)
