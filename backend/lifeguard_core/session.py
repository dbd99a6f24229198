from __future__ import annotations

import asyncio
import logging

from persistence.gateway import PersistenceError, PersistenceGateway
from persistence.records import Message, message_ids

from .models import Composition
from .notices import NoticeBoard
from .orchestrator import AIOrchestrator
from .speech_input import RecognitionEngine, SpeechInputController
from .speech_output import SpeechOutputController, SynthesisEngine

logger = logging.getLogger(__name__)

CANCELLED_TEXT = "Request cancelled."


class SessionController:
    """Owns one user's live transcript and sequences every chat action.

    Sending always wins over speech: dictation is stopped and read-aloud is
    cancelled before the user message is recorded. Each transcript change
    after ``load()`` schedules a full-transcript write right away; writes are
    serialized so they land in mutation order.
    """

    def __init__(
        self,
        *,
        user_id: str,
        language_code: str,
        gateway: PersistenceGateway,
        orchestrator: AIOrchestrator,
        recognition: RecognitionEngine | None = None,
        synthesis: SynthesisEngine | None = None,
        notices: NoticeBoard | None = None,
    ) -> None:
        self.user_id = user_id
        self.language_code = language_code
        self.gateway = gateway
        self.orchestrator = orchestrator
        self.notices = notices or NoticeBoard()
        self.composition = Composition()
        self.speech_input = SpeechInputController(
            recognition,
            language_code=language_code,
            composition=self.composition,
            notices=self.notices,
        )
        self.speech_output = SpeechOutputController(
            synthesis,
            language_code=language_code,
            notices=self.notices,
        )
        self._transcript: list[Message] = []
        self._loaded = False
        self._closed = False
        self._pending = False
        self._generation = 0
        self._cancelled_reply: Message | None = None
        self._persist_lock = asyncio.Lock()
        self._writes: set[asyncio.Task[None]] = set()

    @property
    def transcript(self) -> list[Message]:
        return list(self._transcript)

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> bool:
        return self._pending

    @property
    def pending_text(self) -> str:
        return self.composition.text

    @pending_text.setter
    def pending_text(self, value: str) -> None:
        self.composition.text = value or ""

    async def load(self) -> list[Message]:
        if self._loaded:
            return self.transcript
        try:
            stored = await self.gateway.fetch_transcript(self.user_id)
        except PersistenceError:
            # Stay unloaded so nothing is written over the unreadable record.
            logger.exception("Chat history for %s could not be loaded; not saving this session", self.user_id)
            return self.transcript
        for message in stored:
            message_ids.observe(message.id)
        early = self._transcript
        self._transcript = [*stored, *early]
        self._loaded = True
        if early:
            self._transcript_changed()
        return self.transcript

    async def send(self, text: str | None = None) -> Message | None:
        content = (self.composition.text if text is None else text or "").strip()
        if not content or self._pending or self._closed:
            return None

        self.speech_input.stop()
        self.speech_output.cancel()

        history = list(self._transcript)
        self._transcript.append(Message.create("user", content))
        self._transcript_changed()
        self.composition.clear()
        self._pending = True
        generation = self._generation

        try:
            reply = await self.orchestrator.converse(history, content, self.language_code)
        except Exception as exc:
            logger.exception("Assistant request raised instead of returning a failed reply")
            reply = Message.create("assistant", f"Error connecting to AI: {exc}", failed=True)

        if generation != self._generation:
            logger.info("Discarding reply %s for a closed session of %s", reply.id, self.user_id)
            return self._cancelled_reply

        self._transcript.append(reply)
        self._pending = False
        self._transcript_changed()
        return reply

    def start_listening(self) -> bool:
        return self.speech_input.start()

    def stop_listening(self) -> None:
        self.speech_input.stop()

    def toggle_listening(self) -> bool:
        return self.speech_input.toggle()

    def read_aloud(self, message_id: str) -> bool:
        message = next((item for item in self._transcript if item.id == message_id), None)
        if message is None or message.role != "assistant":
            return False
        return self.speech_output.speak(message.text, message.id)

    async def flush(self) -> None:
        while self._writes:
            await asyncio.gather(*list(self._writes))

    async def close(self) -> None:
        self._closed = True
        self._generation += 1
        if self._pending:
            # The request in flight still gets its one assistant answer.
            self._cancelled_reply = Message.create("assistant", CANCELLED_TEXT, failed=True)
            self._transcript.append(self._cancelled_reply)
            self._transcript_changed()
        self._pending = False
        self.speech_input.close()
        self.speech_output.close()
        await self.flush()

    def _transcript_changed(self) -> None:
        if not self._loaded:
            return
        snapshot = list(self._transcript)
        task = asyncio.get_running_loop().create_task(self._persist(snapshot))
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)

    async def _persist(self, snapshot: list[Message]) -> None:
        async with self._persist_lock:
            try:
                await self.gateway.save_transcript(self.user_id, snapshot)
            except PersistenceError:
                logger.exception("Chat history for %s was not saved", self.user_id)
