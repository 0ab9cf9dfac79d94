from enum import Enum
from typing import Optional


class ConversationState(str, Enum):
    MENU = "MENU"
    HUMAN = "HUMAN"
    ASK_NAME = "ASK_NAME"
    ASK_CONTACT = "ASK_CONTACT"
    ASK_NOTES = "ASK_NOTES"
    ASK_AI_MODE = "ASK_AI_MODE"
    READY = "READY"


# HUMAN and MENU are reachable from every state ("humano", "menu", "cancelar").
VALID_TRANSITIONS = {
    ConversationState.MENU: [ConversationState.HUMAN, ConversationState.ASK_NAME],
    ConversationState.HUMAN: [ConversationState.MENU],
    ConversationState.ASK_NAME: [ConversationState.ASK_CONTACT, ConversationState.ASK_NAME],
    ConversationState.ASK_CONTACT: [
        ConversationState.ASK_NOTES,
        ConversationState.ASK_AI_MODE,
        ConversationState.READY,
        ConversationState.ASK_NAME,
    ],
    ConversationState.ASK_NOTES: [
        ConversationState.ASK_AI_MODE,
        ConversationState.READY,
        ConversationState.ASK_NAME,
    ],
    ConversationState.ASK_AI_MODE: [ConversationState.READY, ConversationState.ASK_NAME],
    ConversationState.READY: [ConversationState.ASK_NAME],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: ConversationState, to_state: ConversationState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


def parse_state(value: Optional[str]) -> ConversationState:
    """Read a stored state; unknown values fall back to MENU."""
    try:
        return ConversationState(str(value or "").upper())
    except ValueError:
        return ConversationState.MENU


def can_transition(from_state: ConversationState, to_state: ConversationState) -> bool:
    if to_state in (ConversationState.HUMAN, ConversationState.MENU) and from_state != to_state:
        return True
    return to_state in VALID_TRANSITIONS.get(from_state, [])


def transition(from_state: ConversationState, to_state: ConversationState) -> ConversationState:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state


def escalate(current_state: ConversationState) -> ConversationState:
    """Hand the conversation to a human operator."""
    return transition(current_state, ConversationState.HUMAN)


def return_to_bot(current_state: ConversationState) -> ConversationState:
    """Back to automatic mode. Staying in MENU is a no-op, not an error."""
    if current_state == ConversationState.MENU:
        return current_state
    return transition(current_state, ConversationState.MENU)


def start_checkout(current_state: ConversationState) -> ConversationState:
    return transition(current_state, ConversationState.ASK_NAME)


def next_checkout_state(
    current_state: ConversationState,
    ask_notes: bool = False,
    ask_ai_mode: bool = False,
) -> ConversationState:
    """Next step of ASK_NAME -> ASK_CONTACT -> [ASK_NOTES] -> [ASK_AI_MODE] -> READY."""
    sequence = [ConversationState.ASK_NAME, ConversationState.ASK_CONTACT]
    if ask_notes:
        sequence.append(ConversationState.ASK_NOTES)
    if ask_ai_mode:
        sequence.append(ConversationState.ASK_AI_MODE)
    sequence.append(ConversationState.READY)

    if current_state not in sequence or current_state == ConversationState.READY:
        raise InvalidTransitionError(current_state, ConversationState.READY)
    return transition(current_state, sequence[sequence.index(current_state) + 1])
