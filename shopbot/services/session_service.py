import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from shopbot.models import ChatSession
from shopbot.schemas.session import SessionData, parse_cart, parse_session_data
from shopbot.services.state_machine import ConversationState, parse_state

WHATSAPP_PREFIX = "whatsapp:"


def normalize_customer_id(value: Optional[str]) -> str:
    """Bring a customer number to the gateway form ``whatsapp:+<digits>``."""
    value = (value or "").strip()
    if not value:
        return ""
    if value.lower().startswith(WHATSAPP_PREFIX):
        return WHATSAPP_PREFIX + value[len(WHATSAPP_PREFIX):].strip()
    if value.startswith("+"):
        return f"{WHATSAPP_PREFIX}{value}"
    if re.fullmatch(r"\d+", value):
        return f"{WHATSAPP_PREFIX}+{value}"
    return value


@dataclass
class CustomerSession:
    """A loaded session row together with its parsed cart and data bag."""

    row: ChatSession
    state: ConversationState
    cart: list[int] = field(default_factory=list)
    data: SessionData = field(default_factory=SessionData)
    last_order_id: Optional[str] = None

    @property
    def from_number(self) -> str:
        return self.row.from_number


def _wrap(row: ChatSession) -> CustomerSession:
    return CustomerSession(
        row=row,
        state=parse_state(row.state),
        cart=parse_cart(row.cart),
        data=parse_session_data(row.data),
        last_order_id=row.last_order_id or None,
    )


def find_session(db: Session, from_number: str) -> Optional[CustomerSession]:
    row = db.query(ChatSession).filter(ChatSession.from_number == from_number).first()
    return _wrap(row) if row else None


def load_session(db: Session, from_number: str) -> CustomerSession:
    """Find the customer's session or create it lazily in MENU with an empty cart."""
    session = find_session(db, from_number)
    if session is not None:
        return session

    row = ChatSession(
        from_number=from_number,
        state=ConversationState.MENU.value,
        cart=[],
        data=SessionData().to_json(),
        updated_at=datetime.now(timezone.utc),
    )
    db.add(row)
    db.flush()
    return _wrap(row)


def save_session(db: Session, session: CustomerSession) -> None:
    """Write the session back. A concurrent write to the same row raises StaleDataError on flush."""
    row = session.row
    row.state = session.state.value
    row.cart = list(session.cart)
    row.data = session.data.to_json()
    row.last_order_id = session.last_order_id
    row.updated_at = datetime.now(timezone.utc)
    db.flush()


def reset_checkout(session: CustomerSession) -> None:
    """Clear cart and checkout fields; AI mode and usage counters stay."""
    session.cart = []
    session.data.clear_checkout()
    session.state = ConversationState.MENU
