"""Funnel states and the persisted tag format for a contact's position."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FunnelState(str, Enum):
    NONE = "none"
    FOUNDATION_MODALITY_SELECTION = "foundation_modality_selection"
    FOUNDATION_PAYMENT_SELECTION = "foundation_payment_selection"
    MEMBER_OPTION_SELECTION = "member_option_selection"
    PAYMENT_METHOD_SELECTION = "payment_method_selection"


# States whose tag must carry the referenced catalog id
REF_REQUIRED = {FunnelState.MEMBER_OPTION_SELECTION, FunnelState.PAYMENT_METHOD_SELECTION}

VALID_TRANSITIONS = {
    FunnelState.NONE: [
        FunnelState.MEMBER_OPTION_SELECTION,
        FunnelState.FOUNDATION_MODALITY_SELECTION,
    ],
    FunnelState.MEMBER_OPTION_SELECTION: [
        FunnelState.PAYMENT_METHOD_SELECTION,
        FunnelState.NONE,
    ],
    FunnelState.PAYMENT_METHOD_SELECTION: [FunnelState.NONE],
    FunnelState.FOUNDATION_MODALITY_SELECTION: [
        FunnelState.FOUNDATION_PAYMENT_SELECTION,
        FunnelState.MEMBER_OPTION_SELECTION,
        FunnelState.NONE,
    ],
    FunnelState.FOUNDATION_PAYMENT_SELECTION: [
        FunnelState.MEMBER_OPTION_SELECTION,
        FunnelState.NONE,
    ],
}

_LEGACY_NONE = {"", "null", "none"}
_TAG_PATTERN = re.compile(r"^(?P<name>[a-z_]+?)(?:[:_](?P<ref>\d+))?$")


class InvalidTransitionError(Exception):
    def __init__(self, from_state: FunnelState, to_state: FunnelState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


class InvalidStateTagError(ValueError):
    pass


@dataclass(frozen=True)
class StateTag:
    state: FunnelState
    ref_id: Optional[int] = None

    def __post_init__(self):
        if self.state in REF_REQUIRED and self.ref_id is None:
            raise InvalidStateTagError(f"{self.state.value} requires a referenced id")
        if self.state == FunnelState.NONE and self.ref_id is not None:
            raise InvalidStateTagError("none does not carry a referenced id")

    @property
    def is_none(self) -> bool:
        return self.state == FunnelState.NONE

    def encode(self) -> str:
        if self.ref_id is None:
            return self.state.value
        return f"{self.state.value}:{self.ref_id}"

    @classmethod
    def decode(cls, raw: Optional[str]) -> "StateTag":
        """Parse a stored tag, accepting the legacy `null` and `name_<id>` forms."""
        value = (raw or "").strip().lower()
        if value in _LEGACY_NONE:
            return NONE_TAG

        match = _TAG_PATTERN.match(value)
        if not match:
            raise InvalidStateTagError(f"Unparsable state tag: {raw!r}")
        try:
            state = FunnelState(match.group("name"))
        except ValueError as exc:
            raise InvalidStateTagError(f"Unknown state in tag: {raw!r}") from exc

        ref = match.group("ref")
        return cls(state, int(ref) if ref is not None else None)

    @classmethod
    def member_option_selection(cls, plan_id: int) -> "StateTag":
        return cls(FunnelState.MEMBER_OPTION_SELECTION, plan_id)

    @classmethod
    def payment_method_selection(cls, response_id: int) -> "StateTag":
        return cls(FunnelState.PAYMENT_METHOD_SELECTION, response_id)

    @classmethod
    def foundation_modality_selection(cls, campaign_id: Optional[int] = None) -> "StateTag":
        return cls(FunnelState.FOUNDATION_MODALITY_SELECTION, campaign_id)

    @classmethod
    def foundation_payment_selection(cls, campaign_id: Optional[int] = None) -> "StateTag":
        return cls(FunnelState.FOUNDATION_PAYMENT_SELECTION, campaign_id)


NONE_TAG = StateTag(FunnelState.NONE)


def can_transition(from_state: FunnelState, to_state: FunnelState) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_state, [])
    return to_state in allowed


def transition(current: StateTag, target: StateTag) -> StateTag:
    """Validate a move between tags. Raises InvalidTransitionError if not allowed."""
    if not can_transition(current.state, target.state):
        raise InvalidTransitionError(current.state, target.state)
    return target


def expire(current: StateTag) -> StateTag:
    """Drop a held state after inactivity."""
    return transition(current, NONE_TAG)
