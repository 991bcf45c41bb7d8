"""Lifecycle state machine for Form instances.

A Form is single-use per request and only ever moves forward:

    unprepared --prepare()--> prepared --[submitted]--> validated

``FormLifecycle`` enforces those transitions and keeps a short history of
the transitions taken, which makes it easy to assert in tests that
sanitize/validate ran exactly once (or not at all).

Usage:
    >>> from forumforms.state_machine import FormLifecycle
    >>> from forumforms.types import FormState
    >>> lc = FormLifecycle(form_name="form_question")
    >>> lc.state
    <FormState.UNPREPARED: 'unprepared'>
    >>> lc.transition_to(FormState.PREPARED)
    >>> lc.can_transition_to(FormState.VALIDATED)
    True
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Set, Tuple

from forumforms.errors import FormsError
from forumforms.types import FormState

logger = logging.getLogger(__name__)


class InvalidStateTransitionError(FormsError):
    """Raised when attempting an invalid lifecycle transition.

    Attributes:
        current_state: The current state before the attempted transition
        target_state: The target state that was attempted
    """

    def __init__(self, current_state: FormState, target_state: FormState, message: str):
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(message)


# Maps each state to the set of states it can transition to.
VALID_TRANSITIONS: Dict[FormState, Set[FormState]] = {
    FormState.UNPREPARED: {FormState.PREPARED},
    FormState.PREPARED: {FormState.VALIDATED},
    FormState.VALIDATED: set(),
}


@dataclass
class FormLifecycle:
    """Tracks the lifecycle state of one Form.

    Attributes:
        form_name: Name of the owning form, used in log and error messages
        state: Current lifecycle state
    """

    form_name: str
    state: FormState = FormState.UNPREPARED
    _history: List[Tuple[FormState, FormState]] = field(default_factory=list, init=False, repr=False)

    def can_transition_to(self, target_state: FormState) -> bool:
        return target_state in VALID_TRANSITIONS.get(self.state, set())

    def transition_to(self, target_state: FormState) -> None:
        """Move to ``target_state``.

        Raises:
            InvalidStateTransitionError: If the transition is not allowed
        """
        if not self.can_transition_to(target_state):
            allowed = VALID_TRANSITIONS[self.state]
            raise InvalidStateTransitionError(
                current_state=self.state,
                target_state=target_state,
                message=(
                    f"Invalid form transition for '{self.form_name}': cannot move from "
                    f"'{self.state.value}' to '{target_state.value}'. "
                    f"Allowed: {', '.join(sorted(s.value for s in allowed))}"
                    if allowed
                    else f"Invalid form transition for '{self.form_name}': "
                    f"'{self.state.value}' is final."
                ),
            )

        old_state = self.state
        self.state = target_state
        self._history.append((old_state, target_state))
        logger.debug("Form %s: %s -> %s", self.form_name, old_state.value, target_state.value)

    @property
    def is_prepared(self) -> bool:
        return self.state is not FormState.UNPREPARED

    @property
    def is_validated(self) -> bool:
        return self.state is FormState.VALIDATED

    def get_history(self) -> List[Tuple[FormState, FormState]]:
        """Return the (from, to) transitions taken so far, oldest first."""
        return list(self._history)


__all__ = [
    "FormLifecycle",
    "InvalidStateTransitionError",
    "VALID_TRANSITIONS",
]
