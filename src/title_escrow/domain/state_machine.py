"""Escrow Record Lifecycle Guard.

Uses python-statemachine to enforce which operations may touch a record at
the domain level. Whatever the API or a caller attempts, a mutation of a
FINALIZED record raises TransitionNotAllowed.

The machine is deliberately small. The unlock predicate is NOT modelled as
states: inspection, approvals and funding are independent flags that any
party may set in any order (see domain/unlock.py). The machine only tracks
whether the record is still open.

Transition table:
    LISTED -> LISTED      (receive_funds)
    LISTED -> LISTED      (post_inspection)
    LISTED -> LISTED      (post_approval)
    LISTED -> FINALIZED   (finalize_sale)
"""

from __future__ import annotations

from statemachine import State, StateMachine


class EscrowStateMachine(StateMachine):
    """State machine that guards escrow record lifecycle transitions.

    Usage:
        sm = EscrowStateMachine(current_status="LISTED")
        sm.finalize_sale()   # transitions to FINALIZED
        sm.current_state     # State('FINALIZED', ...)
    """

    # --- States ---
    LISTED = State("LISTED", initial=True)
    FINALIZED = State("FINALIZED", final=True)

    # --- Events / Transitions ---
    receive_funds = LISTED.to.itself()
    post_inspection = LISTED.to.itself()
    post_approval = LISTED.to.itself()
    finalize_sale = LISTED.to(FINALIZED)

    def __init__(self, current_status: str = "LISTED") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current EscrowStatus value (e.g., "LISTED").
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches EscrowStatus enum)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [event.id for event in self.allowed_events]


def validate_transition(current_status: str, event_name: str) -> str:
    """Validate a lifecycle transition and return the new status.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is invalid.
    """
    sm = EscrowStateMachine(current_status=current_status)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    event_method()
    return sm.status
