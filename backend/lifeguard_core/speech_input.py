from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Callable, Protocol

from .lifecycle import SPEECH_INPUT_TRANSITIONS, StateMachine
from .models import Composition
from .notices import MICROPHONE_PERMISSION_DENIED, SPEECH_INPUT_UNSUPPORTED, NoticeBoard

logger = logging.getLogger(__name__)

PERMISSION_ERRORS = {"not-allowed", "service-not-allowed"}
NO_SPEECH_ERROR = "no-speech"


@dataclass(frozen=True)
class RecognitionConfig:
    lang: str
    continuous: bool = False
    interim_results: bool = False


@dataclass(frozen=True)
class RecognitionHandlers:
    on_result: Callable[[str], None]
    on_error: Callable[[str], None]
    on_end: Callable[[], None]


class RecognitionEngine(Protocol):
    def start(self, config: RecognitionConfig, handlers: RecognitionHandlers) -> None: ...

    def stop(self) -> None: ...


class SpeechInputController:
    def __init__(
        self,
        engine: RecognitionEngine | None,
        *,
        language_code: str,
        composition: Composition,
        notices: NoticeBoard | None = None,
    ) -> None:
        self.engine = engine
        self.language_code = language_code
        self.composition = composition
        self.notices = notices or NoticeBoard()
        self._state = StateMachine("speech_input", SPEECH_INPUT_TRANSITIONS)
        self._session_ids = itertools.count(1)
        self._active_session: int | None = None
        self._recognized: list[str] = []

    @property
    def status(self) -> str:
        return self._state.status

    @property
    def listening(self) -> bool:
        return self._state.status == "listening"

    @property
    def recognized_text(self) -> str:
        return " ".join(self._recognized)

    def start(self) -> bool:
        if self.engine is None:
            self.notices.publish(SPEECH_INPUT_UNSUPPORTED, "Your device does not support voice input.")
            return False
        if self.listening:
            return True

        session_id = next(self._session_ids)
        self._active_session = session_id
        self._recognized = []
        self._state.transition("listening")
        try:
            self.engine.start(
                RecognitionConfig(lang=self.language_code, continuous=False, interim_results=False),
                self._bind(session_id),
            )
        except Exception:
            logger.exception("Failed to start speech recognition")
            self._finish(session_id)
            return False
        return self.listening

    def stop(self) -> None:
        if not self.listening:
            return
        self._finish(self._active_session)
        if self.engine is None:
            return
        try:
            self.engine.stop()
        except Exception:
            logger.exception("Failed to stop speech recognition")

    def toggle(self) -> bool:
        if self.listening:
            self.stop()
            return False
        return self.start()

    def close(self) -> None:
        self.stop()

    def _bind(self, session_id: int) -> RecognitionHandlers:
        return RecognitionHandlers(
            on_result=lambda text: self._handle_result(session_id, text),
            on_error=lambda code: self._handle_error(session_id, code),
            on_end=lambda: self._handle_end(session_id),
        )

    def _is_current(self, session_id: int) -> bool:
        return self.listening and self._active_session == session_id

    def _finish(self, session_id: int | None) -> None:
        if self._active_session != session_id or not self.listening:
            return
        self._active_session = None
        self._state.transition("idle")

    def _handle_result(self, session_id: int, text: str) -> None:
        if not self._is_current(session_id):
            logger.debug("Dropping recognition result from inactive session %s", session_id)
            return
        fragment = (text or "").strip()
        if not fragment:
            return
        self._recognized.append(fragment)
        self.composition.append(fragment)

    def _handle_error(self, session_id: int, code: str) -> None:
        if not self._is_current(session_id):
            return
        self._finish(session_id)
        if code in PERMISSION_ERRORS:
            self.notices.publish(
                MICROPHONE_PERMISSION_DENIED,
                "Microphone access denied. Allow microphone access in your settings to use voice input.",
            )
        elif code == NO_SPEECH_ERROR:
            return
        else:
            logger.warning("Speech recognition error: %s", code)

    def _handle_end(self, session_id: int) -> None:
        self._finish(session_id)
