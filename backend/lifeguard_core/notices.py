from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

SPEECH_INPUT_UNSUPPORTED = "speech_input_unsupported"
MICROPHONE_PERMISSION_DENIED = "microphone_permission_denied"
SPEECH_OUTPUT_UNSUPPORTED = "speech_output_unsupported"


@dataclass(frozen=True)
class Notice:
    code: str
    message: str


NoticeListener = Callable[[Notice], None]


class NoticeBoard:
    """Fans user-facing notices out to whoever renders them."""

    def __init__(self) -> None:
        self._listeners: list[NoticeListener] = []
        self.history: list[Notice] = []

    def add_listener(self, listener: NoticeListener) -> None:
        self._listeners.append(listener)

    def publish(self, code: str, message: str) -> Notice:
        notice = Notice(code=code, message=message)
        self.history.append(notice)
        for listener in self._listeners:
            try:
                listener(notice)
            except Exception:
                logger.exception("Notice listener failed for %s", code)
        return notice
