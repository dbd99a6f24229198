from __future__ import annotations

from dataclasses import dataclass

SUPPORTED_LANGUAGES = {
    "en-US": "English",
    "te-IN": "Telugu",
    "hi-IN": "Hindi",
    "ta-IN": "Tamil",
}
BASELINE_LANGUAGE = "English"


def language_name(language_code: str | None) -> str:
    return SUPPORTED_LANGUAGES.get((language_code or "").strip(), BASELINE_LANGUAGE)


@dataclass
class Composition:
    """Text the user is composing but has not sent yet."""

    text: str = ""

    def append(self, fragment: str) -> str:
        addition = (fragment or "").strip()
        if not addition:
            return self.text
        current = self.text.rstrip()
        self.text = f"{current} {addition}" if current else addition
        return self.text

    def clear(self) -> None:
        self.text = ""
