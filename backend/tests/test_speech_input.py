from __future__ import annotations

from lifeguard_core.models import Composition
from lifeguard_core.notices import MICROPHONE_PERMISSION_DENIED, SPEECH_INPUT_UNSUPPORTED, NoticeBoard
from lifeguard_core.speech_input import RecognitionConfig, SpeechInputController


def _controller(engine, language_code: str = "hi-IN"):
    composition = Composition()
    notices = NoticeBoard()
    controller = SpeechInputController(
        engine,
        language_code=language_code,
        composition=composition,
        notices=notices,
    )
    return controller, composition, notices


def test_missing_engine_publishes_unsupported_notice():
    controller, _, notices = _controller(None)
    received = []
    notices.add_listener(received.append)

    assert controller.start() is False
    assert controller.status == "idle"
    assert [notice.code for notice in received] == [SPEECH_INPUT_UNSUPPORTED]


def test_start_requests_single_final_utterance_in_session_language(recognition):
    controller, _, _ = _controller(recognition, "ta-IN")

    assert controller.start() is True
    assert controller.status == "listening"
    assert recognition.starts == [RecognitionConfig(lang="ta-IN", continuous=False, interim_results=False)]

    assert controller.start() is True
    assert len(recognition.starts) == 1


def test_recognized_text_is_appended_to_composition(recognition):
    controller, composition, _ = _controller(recognition)
    composition.text = "My chest "

    controller.start()
    recognition.emit_result("hurts when I breathe")
    recognition.emit_end()

    assert composition.text == "My chest hurts when I breathe"
    assert controller.recognized_text == "hurts when I breathe"
    assert controller.status == "idle"


def test_recognition_into_empty_composition_has_no_leading_space(recognition):
    controller, composition, _ = _controller(recognition)

    controller.start()
    recognition.emit_result("  bleeding badly ")

    assert composition.text == "bleeding badly"


def test_permission_error_publishes_notice_and_returns_to_idle(recognition):
    controller, _, notices = _controller(recognition)

    controller.start()
    recognition.emit_error("not-allowed")

    assert controller.status == "idle"
    assert [notice.code for notice in notices.history] == [MICROPHONE_PERMISSION_DENIED]


def test_silence_and_other_errors_do_not_notify(recognition):
    controller, _, notices = _controller(recognition)

    controller.start()
    recognition.emit_error("no-speech")
    assert controller.status == "idle"

    controller.start()
    recognition.emit_error("network")
    assert controller.status == "idle"
    assert notices.history == []


def test_stop_returns_to_idle_and_stops_engine(recognition):
    controller, _, _ = _controller(recognition)

    controller.stop()
    assert recognition.stop_calls == 0

    controller.start()
    controller.stop()

    assert controller.status == "idle"
    assert recognition.stop_calls == 1


def test_events_from_an_earlier_session_are_ignored(recognition):
    controller, composition, _ = _controller(recognition)

    controller.start()
    controller.stop()
    controller.start()

    recognition.emit_result("stale words", session=0)
    recognition.emit_end(session=0)

    assert composition.text == ""
    assert controller.status == "listening"

    recognition.emit_result("fresh words")
    assert composition.text == "fresh words"


def test_results_after_stop_are_dropped(recognition):
    controller, composition, _ = _controller(recognition)

    controller.start()
    controller.stop()
    recognition.emit_result("late result")

    assert composition.text == ""


def test_engine_start_failure_leaves_controller_idle(recognition):
    recognition.fail_start = True
    controller, _, _ = _controller(recognition)

    assert controller.start() is False
    assert controller.status == "idle"


def test_toggle_alternates_between_states(recognition):
    controller, _, _ = _controller(recognition)

    assert controller.toggle() is True
    assert controller.listening is True
    assert controller.toggle() is False
    assert controller.listening is False
    assert recognition.stop_calls == 1
