from __future__ import annotations


class LifecycleError(Exception):
    pass


SPEECH_INPUT_TRANSITIONS = {
    "idle": {"listening"},
    "listening": {"idle"},
}

SPEECH_OUTPUT_TRANSITIONS = {
    "idle": {"speaking"},
    "speaking": {"idle"},
}


class StateMachine:
    def __init__(self, name: str, transitions: dict[str, set[str]], initial: str = "idle") -> None:
        if initial not in transitions:
            raise LifecycleError(f"{name}: unknown initial state {initial}")
        self.name = name
        self._transitions = transitions
        self._status = initial
        self.lifecycle = [initial]

    @property
    def status(self) -> str:
        return self._status

    def can(self, next_state: str) -> bool:
        return next_state in self._transitions.get(self._status, set())

    def transition(self, next_state: str) -> list[str]:
        if not self.can(next_state):
            raise LifecycleError(f"{self.name}: invalid transition {self._status} -> {next_state}")
        self._status = next_state
        self.lifecycle.append(next_state)
        # Only the recent tail is useful for debugging long sessions.
        if len(self.lifecycle) > 64:
            del self.lifecycle[:-64]
        return list(self.lifecycle)
