from shopbot.services.session_service import (
    CustomerSession,
    load_session,
    normalize_customer_id,
    reset_checkout,
    save_session,
)
from shopbot.services.state_machine import (
    ConversationState,
    InvalidTransitionError,
    can_transition,
    escalate,
    next_checkout_state,
    return_to_bot,
    start_checkout,
    transition,
)
