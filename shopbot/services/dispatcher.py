"""Inbound message dispatch.

One call to :func:`handle_inbound` is one customer turn: resolve the company,
load the session, evaluate the intent branches in priority order and stop at
the first one that answers. Every turn produces exactly one reply.

Branch order:

1. human triggers (``humano``, ``asesor``, emergency keywords)
2. leaving HUMAN with ``menu``/``hola``
3. HUMAN suppression
4. admin commands
5. ``menu``/``hola``
6. read-only and simple keywords (catalogo, carrito, ayuda, cancelar, pago, pagado)
7. ``agregar <n>``
8. AI free text (state MENU, AI mode lite/pro, non-reserved text)
9. checkout and its ASK_* steps
10. ``confirmar``
11. default hint
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from shopbot.config import settings
from shopbot.logging_config import CustomerLogger, get_logger
from shopbot.schemas.company import CompanyProfile
from shopbot.services import replies
from shopbot.services.admin_commands import (
    execute_admin_command,
    is_admin_command,
    is_admin_sender,
    parse_admin_command,
)
from shopbot.services.ai_service import generate_ai_reply, is_ai_enabled
from shopbot.services.company_service import apply_assignment, resolve_company
from shopbot.services.notification_service import (
    format_handoff_notification,
    format_order_notification,
    format_payment_report_notification,
)
from shopbot.services.order_service import (
    create_order,
    format_order_summary,
    format_price,
    get_order,
    report_payment,
)
from shopbot.services.result import AI_ERROR, EMPTY_REPLY, LIMIT_REACHED, RATE_LIMITED
from shopbot.services.session_service import (
    CustomerSession,
    load_session,
    normalize_customer_id,
    reset_checkout,
    save_session,
)
from shopbot.services.settings_service import remember_last_customer
from shopbot.services.state_machine import (
    ConversationState,
    InvalidTransitionError,
    escalate,
    next_checkout_state,
    return_to_bot,
    start_checkout,
    transition,
)

logger = get_logger("dispatcher")

HUMAN_TRIGGERS = {"humano", "asesor", "hablar con humano"}
GREETINGS = {"menu", "hola"}
PAYMENT_INFO_KEYWORDS = {"pago", "pagar"}
PAYMENT_REPORT_KEYWORDS = {"pagado", "ya pague", "ya pagué"}
AI_MODE_ANSWERS = {"no", "lite", "pro"}

RESERVED_KEYWORDS = {
    "menu",
    "hola",
    "catalogo",
    "carrito",
    "checkout",
    "agregar",
    "pago",
    "pagar",
    "pagado",
    "ya pague",
    "ya pagué",
    "confirmar",
    "cancelar",
    "ayuda",
    "humano",
    "asesor",
    "hablar con humano",
}

CHECKOUT_PROMPTS = {
    ConversationState.ASK_CONTACT: replies.MSG_ASK_CONTACT,
    ConversationState.ASK_NOTES: replies.MSG_ASK_NOTES,
    ConversationState.ASK_AI_MODE: replies.MSG_ASK_AI_MODE,
}

# An empty AI reply falls through to the default branch
_AI_FAILURE_REPLIES = {
    EMPTY_REPLY: None,
    LIMIT_REACHED: replies.MSG_AI_LIMIT,
    RATE_LIMITED: replies.MSG_AI_RATE_LIMITED,
    AI_ERROR: replies.MSG_AI_ERROR,
}

_ADD_ITEM = re.compile(r"^agregar (\d+)$")


@dataclass
class DispatchResult:
    reply: str
    state: Optional[str] = None
    company_id: Optional[str] = None
    notifications: list[str] = field(default_factory=list)


@dataclass
class Turn:
    db: Session
    session: CustomerSession
    company: CompanyProfile
    body: str
    text: str
    is_admin_command: bool
    log: CustomerLogger
    notifications: list[str] = field(default_factory=list)

    @property
    def from_number(self) -> str:
        return self.session.from_number

    def save(self) -> None:
        save_session(self.db, self.session)

    def notify(self, message: str) -> None:
        self.notifications.append(message)


def normalize_text(body: Optional[str]) -> str:
    return re.sub(r"\s+", " ", (body or "").strip()).lower()


def is_reserved(text: str) -> bool:
    return text in RESERVED_KEYWORDS or text.startswith("agregar ")


# === BRANCHES ===
# Each branch returns the reply when it handles the turn, None to let the next one try.


def _human_trigger(turn: Turn) -> Optional[str]:
    if turn.is_admin_command:
        return None
    rules = turn.company.rules
    requested = turn.text in HUMAN_TRIGGERS
    urgent = not requested and rules.allow_human and any(kw in turn.text for kw in rules.emergency_keywords)
    if not requested and not urgent:
        return None
    if not rules.allow_human:
        return replies.MSG_HUMAN_UNAVAILABLE

    session = turn.session
    if session.state == ConversationState.HUMAN and session.data.human_notified:
        return replies.MSG_HUMAN_WAITING

    if session.state != ConversationState.HUMAN:
        session.state = escalate(session.state)
    session.data.human_notified = True
    turn.save()
    turn.notify(format_handoff_notification(turn.company.name, turn.from_number, turn.body, urgent=urgent))
    turn.log.info("Handoff requested", context={"urgent": urgent})
    return replies.MSG_URGENT_NOTIFIED if urgent else replies.MSG_HUMAN_NOTIFIED


def _exit_human(turn: Turn) -> Optional[str]:
    if turn.session.state != ConversationState.HUMAN or turn.text not in GREETINGS:
        return None
    turn.session.state = return_to_bot(turn.session.state)
    turn.session.data.human_notified = False
    turn.save()
    return replies.menu_text(turn.company)


def _human_suppression(turn: Turn) -> Optional[str]:
    if turn.session.state == ConversationState.HUMAN and not turn.is_admin_command:
        return replies.MSG_HUMAN_WAITING
    return None


def _admin(turn: Turn) -> Optional[str]:
    if not turn.is_admin_command:
        return None
    if not is_admin_sender(turn.from_number):
        turn.log.warning("Admin command from non-admin sender")
        return replies.MSG_RESTRICTED
    return execute_admin_command(turn.db, parse_admin_command(turn.text), turn.from_number)


def _menu(turn: Turn) -> Optional[str]:
    if turn.text not in GREETINGS:
        return None
    turn.session.state = return_to_bot(turn.session.state)
    turn.session.data.human_notified = False
    turn.save()
    return replies.menu_text(turn.company)


def _keywords(turn: Turn) -> Optional[str]:
    text = turn.text
    if text == "catalogo":
        return replies.catalog_text(turn.company)
    if text == "carrito":
        return replies.cart_text(turn.session.cart, turn.company)
    if text == "ayuda":
        return replies.help_text(turn.company)
    if text == "cancelar":
        reset_checkout(turn.session)
        turn.save()
        return replies.MSG_CANCELLED
    if text in PAYMENT_INFO_KEYWORDS:
        return replies.payment_text(turn.company)
    if text in PAYMENT_REPORT_KEYWORDS:
        return _report_payment(turn)
    return None


def _report_payment(turn: Turn) -> str:
    order = get_order(turn.db, turn.session.last_order_id) if turn.session.last_order_id else None
    if order is None:
        return replies.MSG_NO_LAST_ORDER
    if order.payment_status == "paid":
        return f"✅ El pedido {order.id} ya figura como pagado."

    report_payment(turn.db, order)
    turn.notify(
        format_payment_report_notification(turn.company.name, turn.from_number, order.id, format_price(order.total or 0))
    )
    turn.log.info("Payment reported", context={"order_id": order.id})
    return replies.payment_reported_text(order.id)


def _add_item(turn: Turn) -> Optional[str]:
    match = _ADD_ITEM.match(turn.text)
    if not match:
        return None
    item = turn.company.find_item(int(match.group(1)))
    if item is None:
        return replies.MSG_UNKNOWN_PRODUCT
    turn.session.cart.append(item.id)
    turn.save()
    return replies.added_text(item.name, turn.session.cart, turn.company)


def _ai(turn: Turn) -> Optional[str]:
    session = turn.session
    if session.state != ConversationState.MENU or not is_ai_enabled(session.data):
        return None
    if not turn.text or is_reserved(turn.text):
        return None

    result = generate_ai_reply(turn.db, session, turn.company, turn.body)
    return result.recover(_AI_FAILURE_REPLIES, replies.MSG_AI_UNAVAILABLE)


def _checkout(turn: Turn) -> Optional[str]:
    if turn.text != "checkout":
        return None
    session = turn.session
    if not session.cart:
        return replies.MSG_CART_EMPTY
    session.state = start_checkout(session.state)
    session.data.clear_checkout()
    turn.save()
    return replies.MSG_ASK_NAME


def _advance_checkout(turn: Turn) -> ConversationState:
    rules = turn.company.rules
    current = turn.session.state
    try:
        return next_checkout_state(current, ask_notes=rules.ask_notes, ask_ai_mode=rules.offer_ai)
    except InvalidTransitionError:
        # Rules changed mid-checkout and the current step is no longer part of the flow
        return transition(current, ConversationState.READY)


def _checkout_step(turn: Turn) -> Optional[str]:
    session = turn.session
    state = session.state
    if state not in (
        ConversationState.ASK_NAME,
        ConversationState.ASK_CONTACT,
        ConversationState.ASK_NOTES,
        ConversationState.ASK_AI_MODE,
    ):
        return None
    if not turn.text or is_reserved(turn.text):
        return None

    data = session.data
    if state == ConversationState.ASK_NAME:
        data.name = turn.body
    elif state == ConversationState.ASK_CONTACT:
        data.contact = turn.body
    elif state == ConversationState.ASK_NOTES:
        data.notes = "" if turn.text in replies.NOTES_SKIP_ANSWERS else turn.body
    else:
        if turn.text not in AI_MODE_ANSWERS:
            return replies.MSG_ASK_AI_MODE
        data.requested_ai_mode = turn.text

    session.state = _advance_checkout(turn)
    turn.save()
    if session.state == ConversationState.READY:
        return replies.ready_text(session.cart, turn.company, data.name, data.contact, data.notes)
    return CHECKOUT_PROMPTS[session.state]


def _confirm(turn: Turn) -> Optional[str]:
    if turn.text != "confirmar":
        return None
    session = turn.session
    if session.state != ConversationState.READY or not session.cart:
        return replies.MSG_CONFIRM_NOT_READY

    order = create_order(
        turn.db,
        from_number=turn.from_number,
        company=turn.company,
        cart=session.cart,
        name=session.data.name,
        contact=session.data.contact,
        notes=session.data.notes,
        requested_ai_mode=session.data.requested_ai_mode,
    )
    reset_checkout(session)
    session.last_order_id = order.id
    turn.save()
    turn.notify(format_order_notification(format_order_summary(order, turn.company.name)))
    turn.log.info("Order confirmed", context={"order_id": order.id, "total": order.total})
    return replies.order_confirmed_text(order.id, order.total)


def _default(turn: Turn) -> str:
    turn.save()
    return replies.MSG_NOT_UNDERSTOOD


BRANCHES: list[Callable[[Turn], Optional[str]]] = [
    _human_trigger,
    _exit_human,
    _human_suppression,
    _admin,
    _menu,
    _keywords,
    _add_item,
    _ai,
    _checkout,
    _checkout_step,
    _confirm,
    _default,
]


def handle_inbound(db: Session, from_number: str, body: Optional[str]) -> DispatchResult:
    """Run one turn. Does not commit; see :func:`process_inbound`."""
    from_number = normalize_customer_id(from_number) or "unknown"
    body = (body or "").strip()
    text = normalize_text(body)
    admin_command = is_admin_command(text)

    session = load_session(db, from_number)
    log = CustomerLogger(logger, from_number, session.data.company_id)

    if not admin_command:
        company_id = apply_assignment(db, from_number, session.data.company_id)
        if company_id != session.data.company_id:
            log.info("Company assignment applied", context={"new_company_id": company_id})
            session.data.company_id = company_id
            save_session(db, session)

    company = resolve_company(db, session.data.company_id)
    turn = Turn(
        db=db,
        session=session,
        company=company,
        body=body,
        text=text,
        is_admin_command=admin_command,
        log=log.for_company(company.id),
    )

    reply = None
    for branch in BRANCHES:
        reply = branch(turn)
        if reply is not None:
            break

    return DispatchResult(
        reply=reply,
        state=session.state.value,
        company_id=company.id,
        notifications=turn.notifications,
    )


def _remember_sender(db: Session, from_number: str, body: Optional[str]) -> None:
    """Record the sender as the admin's default target, in its own short transaction."""
    if is_admin_command(normalize_text(body)):
        return
    from_number = normalize_customer_id(from_number) or "unknown"
    try:
        remember_last_customer(db, from_number)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(
            "Could not record last customer",
            extra={"context": {"from_number": from_number, "error": str(e)}},
        )


def process_inbound(db: Session, from_number: str, body: Optional[str]) -> DispatchResult:
    """Run a turn and commit it.

    A concurrent write to the same session (stale version) rolls the turn back
    and runs it again from a fresh read. Any other failure rolls back and
    answers with a fixed apology so the webhook always gets a reply. The
    sender becomes the last customer only once the turn has committed.
    """
    attempts = max(settings.turn_max_attempts, 1)
    for attempt in range(1, attempts + 1):
        try:
            result = handle_inbound(db, from_number, body)
            db.commit()
        except (StaleDataError, IntegrityError) as e:
            db.rollback()
            logger.warning(
                "Concurrent update on turn, retrying",
                extra={"context": {"from_number": from_number, "attempt": attempt, "error": str(e)}},
            )
        except Exception as e:
            db.rollback()
            logger.error(
                "Turn failed",
                extra={"context": {"from_number": from_number, "error": str(e)}},
                exc_info=True,
            )
            return DispatchResult(reply=replies.MSG_SERVICE_ERROR)
        else:
            _remember_sender(db, from_number, body)
            return result

    logger.error(
        "Turn retries exhausted",
        extra={"context": {"from_number": from_number, "attempts": attempts}},
    )
    return DispatchResult(reply=replies.MSG_SERVICE_ERROR)
