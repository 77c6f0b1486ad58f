from enum import Enum
from typing import Optional, Callable, List
from dataclasses import dataclass


class TournamentState(str, Enum):
    UPCOMING = "upcoming"
    LIVE = "live"
    COMPLETED = "completed"


class RegistrationState(str, Enum):
    REGISTERED = "registered"
    PLAYING = "playing"
    COMPLETED = "completed"


class TransitionError(Exception):
    def __init__(self, from_state: str, to_state: str, reason: str = None):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason or f"Cannot transition from {from_state} to {to_state}"
        super().__init__(self.reason)


@dataclass
class Transition:
    from_state: Enum
    to_state: Enum
    action: str
    guard: Optional[Callable] = None


class StateMachine:
    STATE_CLASS = None
    INITIAL_STATE = None
    TRANSITIONS: List[Transition] = []

    def __init__(self, initial_state=None):
        self._state = initial_state if initial_state is not None else self.INITIAL_STATE
        self._history: List[tuple] = []

    @property
    def state(self):
        return self._state

    @property
    def allowed_actions(self) -> List[str]:
        return [t.action for t in self.TRANSITIONS if t.from_state == self._state]

    def can_transition(self, action: str) -> bool:
        return action in self.allowed_actions

    def target_of(self, action: str):
        for t in self.TRANSITIONS:
            if t.from_state == self._state and t.action == action:
                return t.to_state
        return None

    def transition(self, action: str, guard_context: dict = None):
        for t in self.TRANSITIONS:
            if t.from_state == self._state and t.action == action:
                if t.guard and guard_context is not None:
                    if not t.guard(guard_context):
                        raise TransitionError(
                            self._state.value,
                            t.to_state.value,
                            f"Guard condition failed for action '{action}'"
                        )

                old_state = self._state
                self._state = t.to_state
                self._history.append((old_state, action, self._state))
                return self._state

        raise TransitionError(
            self._state.value,
            "unknown",
            f"No valid transition for action '{action}' from state '{self._state.value}'"
        )

    def transition_to(self, target: str, guard_context: dict = None):
        """Move to the named target state through whichever action leads there."""
        for t in self.TRANSITIONS:
            if t.from_state == self._state and t.to_state.value == target:
                return self.transition(t.action, guard_context)
        raise TransitionError(self._state.value, target)

    def get_history(self) -> List[tuple]:
        return self._history.copy()

    @classmethod
    def from_state_string(cls, state_str: str) -> "StateMachine":
        try:
            state = cls.STATE_CLASS(state_str)
        except ValueError:
            raise TransitionError(state_str, "unknown", f"Unknown state '{state_str}'")
        return cls(initial_state=state)


def placement_guard(context: dict) -> bool:
    placement = context.get("placement")
    return placement is None or placement >= 1


class TournamentStateMachine(StateMachine):
    STATE_CLASS = TournamentState
    INITIAL_STATE = TournamentState.UPCOMING
    TRANSITIONS = [
        Transition(TournamentState.UPCOMING, TournamentState.LIVE, "start"),
        Transition(TournamentState.UPCOMING, TournamentState.COMPLETED, "complete"),
        Transition(TournamentState.LIVE, TournamentState.COMPLETED, "complete"),
    ]


class RegistrationStateMachine(StateMachine):
    STATE_CLASS = RegistrationState
    INITIAL_STATE = RegistrationState.REGISTERED
    TRANSITIONS = [
        Transition(RegistrationState.REGISTERED, RegistrationState.PLAYING, "check_in"),
        Transition(RegistrationState.REGISTERED, RegistrationState.COMPLETED, "walkover", placement_guard),
        Transition(RegistrationState.PLAYING, RegistrationState.COMPLETED, "finish", placement_guard),
    ]
