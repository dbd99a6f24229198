from .lifecycle import LifecycleError, StateMachine
from .models import SUPPORTED_LANGUAGES, Composition, language_name
from .notices import Notice, NoticeBoard
from .orchestrator import AIOrchestrator, NearbyPlace, NearbyPlaces, extract_citations
from .session import SessionController
from .settings import Settings, bootstrap_local_env
from .speech_input import RecognitionConfig, RecognitionEngine, RecognitionHandlers, SpeechInputController
from .speech_output import SpeechOutputController, SynthesisEngine, Utterance
from .speech_text import normalize_for_speech

__all__ = [
    "SUPPORTED_LANGUAGES",
    "AIOrchestrator",
    "Composition",
    "LifecycleError",
    "NearbyPlace",
    "NearbyPlaces",
    "Notice",
    "NoticeBoard",
    "RecognitionConfig",
    "RecognitionEngine",
    "RecognitionHandlers",
    "SessionController",
    "Settings",
    "SpeechInputController",
    "SpeechOutputController",
    "StateMachine",
    "SynthesisEngine",
    "Utterance",
    "bootstrap_local_env",
    "extract_citations",
    "language_name",
    "normalize_for_speech",
]
