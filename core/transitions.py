"""
State Transitions
==================

Defines valid transitions of the convergence loop and provides validation.
"""

from enum import Enum
from typing import List, Tuple, Set
import logging

logger = logging.getLogger(__name__)


class StateTransition(Enum):
    """
    Valid state transitions of the convergence loop.

    Each transition is a tuple of (from_state, to_state).
    """
    # Repair directive issued, next round
    ROUND_TO_ROUND = ("RoundState", "RoundState")

    # Quality gate met
    ROUND_TO_CONVERGED = ("RoundState", "ConvergedState")

    # Round budget exhausted or early stop on plateau/regression
    ROUND_TO_EXHAUSTED = ("RoundState", "ExhaustedState")

    # ConvergedState and ExhaustedState are terminal

    @property
    def from_state(self) -> str:
        """Get source state."""
        return self.value[0]

    @property
    def to_state(self) -> str:
        """Get destination state."""
        return self.value[1]


class TransitionValidator:
    """
    Validates loop transitions against the allowed set.

    Example:
        >>> TransitionValidator.validate("RoundState", "ConvergedState")  # True
        >>> TransitionValidator.validate("ConvergedState", "RoundState")  # False
    """

    VALID_TRANSITIONS: Set[Tuple[str, str]] = {t.value for t in StateTransition}

    @classmethod
    def validate(cls, from_state: str, to_state: str) -> bool:
        """
        Check if transition is valid.

        Args:
            from_state: Source state name
            to_state: Destination state name

        Returns:
            True if transition is allowed, False otherwise
        """
        is_valid = (from_state, to_state) in cls.VALID_TRANSITIONS
        if not is_valid:
            logger.warning(f"Invalid transition attempted: {from_state} -> {to_state}")
        return is_valid

    @classmethod
    def get_allowed_transitions(cls, from_state: str) -> List[str]:
        """Get allowed destination states from the given state."""
        return sorted(
            to_state
            for (frm, to_state) in cls.VALID_TRANSITIONS
            if frm == from_state
        )

    @classmethod
    def is_terminal_state(cls, state_name: str) -> bool:
        """Check if state has no outgoing transitions."""
        return len(cls.get_allowed_transitions(state_name)) == 0

    @classmethod
    def validate_or_raise(cls, from_state: str, to_state: str):
        """
        Validate transition and raise exception if invalid.

        Raises:
            ValueError: If transition is not allowed
        """
        if not cls.validate(from_state, to_state):
            allowed = cls.get_allowed_transitions(from_state)
            raise ValueError(
                f"Invalid transition: {from_state} -> {to_state}. "
                f"Allowed transitions from {from_state}: {allowed}"
            )
