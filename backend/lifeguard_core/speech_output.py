from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Callable, Protocol

from .lifecycle import SPEECH_OUTPUT_TRANSITIONS, StateMachine
from .notices import SPEECH_OUTPUT_UNSUPPORTED, NoticeBoard
from .speech_text import normalize_for_speech

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Utterance:
    text: str
    lang: str
    on_end: Callable[[], None]
    on_error: Callable[[str], None]


class SynthesisEngine(Protocol):
    def speak(self, utterance: Utterance) -> None: ...

    def cancel(self) -> None: ...


class SpeechOutputController:
    def __init__(
        self,
        engine: SynthesisEngine | None,
        *,
        language_code: str,
        notices: NoticeBoard | None = None,
    ) -> None:
        self.engine = engine
        self.language_code = language_code
        self.notices = notices or NoticeBoard()
        self._state = StateMachine("speech_output", SPEECH_OUTPUT_TRANSITIONS)
        self._utterance_ids = itertools.count(1)
        self._active_utterance: int | None = None
        self.active_message_id: str | None = None

    @property
    def status(self) -> str:
        return self._state.status

    @property
    def speaking(self) -> bool:
        return self._state.status == "speaking"

    def speak(self, text: str, message_id: str) -> bool:
        """Read ``text`` aloud; asking again for the message already playing stops it."""
        if self.engine is None:
            self.notices.publish(SPEECH_OUTPUT_UNSUPPORTED, "Your device does not support read-aloud.")
            return False
        if self.speaking and self.active_message_id == message_id:
            self.cancel()
            return False

        self._release()
        self._cancel_engine()

        spoken = normalize_for_speech(text)
        if not spoken:
            return False

        utterance_id = next(self._utterance_ids)
        self._active_utterance = utterance_id
        self.active_message_id = message_id
        self._state.transition("speaking")
        try:
            self.engine.speak(
                Utterance(
                    text=spoken,
                    lang=self.language_code,
                    on_end=lambda: self._handle_done(utterance_id),
                    on_error=lambda code: self._handle_error(utterance_id, code),
                )
            )
        except Exception:
            logger.exception("Failed to start speech synthesis")
            self._handle_done(utterance_id)
            return False
        return self.speaking

    def cancel(self) -> None:
        if not self.speaking:
            return
        self._release()
        self._cancel_engine()

    def close(self) -> None:
        self._release()
        self._cancel_engine()

    def _cancel_engine(self) -> None:
        if self.engine is None:
            return
        try:
            self.engine.cancel()
        except Exception:
            logger.exception("Failed to cancel speech synthesis")

    def _release(self) -> None:
        self._active_utterance = None
        self.active_message_id = None
        if self.speaking:
            self._state.transition("idle")

    def _handle_done(self, utterance_id: int) -> None:
        if self._active_utterance != utterance_id:
            return
        self._release()

    def _handle_error(self, utterance_id: int, code: str) -> None:
        if self._active_utterance != utterance_id:
            return
        if code not in {"interrupted", "canceled"}:
            logger.warning("Speech synthesis error: %s", code)
        self._release()
