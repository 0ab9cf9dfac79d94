import secrets
import string
import uuid
from dataclasses import asdict, dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from shopbot.config import settings
from shopbot.logging_config import get_logger
from shopbot.models import Order
from shopbot.schemas.company import CompanyProfile

logger = get_logger("order_service")

UNKNOWN_PRODUCT_NAME = "Producto desconocido"
PAYMENT_STATUSES = {"pending", "paid", "payment_reported"}
ORDER_ID_ALPHABET = string.ascii_uppercase + string.digits
ORDER_ID_LENGTH = 6


class OrderIdExhaustedError(Exception):
    pass


@dataclass
class OrderLine:
    id: int
    name: str
    qty: int
    unit: float
    subtotal: float


def price_cart(cart: list[int], company: CompanyProfile) -> tuple[list[OrderLine], float]:
    """Group the cart by item id (first-seen order) and price it against the catalog.

    Ids missing from the catalog are priced at zero under a placeholder name.
    """
    quantities: dict[int, int] = {}
    for item_id in cart:
        quantities[item_id] = quantities.get(item_id, 0) + 1

    lines: list[OrderLine] = []
    total = 0.0
    for item_id, qty in quantities.items():
        item = company.find_item(item_id)
        unit = float(item.price) if item else 0.0
        subtotal = unit * qty
        total += subtotal
        lines.append(
            OrderLine(
                id=item_id,
                name=item.name if item else UNKNOWN_PRODUCT_NAME,
                qty=qty,
                unit=unit,
                subtotal=subtotal,
            )
        )
    return lines, total


def format_price(amount: float) -> str:
    if float(amount).is_integer():
        return f"${int(amount)}"
    return f"${amount:.2f}"


def generate_order_id() -> str:
    suffix = "".join(secrets.choice(ORDER_ID_ALPHABET) for _ in range(ORDER_ID_LENGTH))
    return f"{settings.order_id_prefix}{suffix}"


def get_order(db: Session, order_id: str) -> Optional[Order]:
    if not order_id:
        return None
    return db.query(Order).filter(Order.id == order_id.strip().upper()).first()


def allocate_order_id(db: Session) -> str:
    """Short human-readable id, checked against the ledger before use."""
    for _ in range(max(settings.order_id_max_attempts, 1)):
        candidate = generate_order_id()
        if get_order(db, candidate) is None:
            return candidate
        logger.warning(f"Order id collision: {candidate}")
    fallback = f"{settings.order_id_prefix}{uuid.uuid4().hex[:12].upper()}"
    if get_order(db, fallback) is None:
        return fallback
    raise OrderIdExhaustedError("Could not allocate a unique order id")


def create_order(
    db: Session,
    *,
    from_number: str,
    company: CompanyProfile,
    cart: list[int],
    name: Optional[str],
    contact: Optional[str],
    notes: Optional[str] = None,
    requested_ai_mode: Optional[str] = None,
) -> Order:
    lines, total = price_cart(cart, company)
    order = Order(
        id=allocate_order_id(db),
        created_at=datetime.now(timezone.utc),
        from_number=from_number,
        company_id=company.id,
        name=name or "",
        contact=contact or "",
        notes=notes or "",
        items=list(cart),
        items_detailed=[asdict(line) for line in lines],
        total=total,
        payment_status="pending",
        payment_method="",
        order_status="confirmed",
        delivered_at=None,
        requested_ai_mode=requested_ai_mode,
    )
    db.add(order)
    db.flush()
    logger.info(
        "Order created",
        extra={"context": {"order_id": order.id, "company_id": company.id, "total": total}},
    )
    return order


# === QUERIES ===


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def list_orders(
    db: Session,
    *,
    order_status: Optional[str] = None,
    payment_status: Optional[str] = None,
    company_id: Optional[str] = None,
    day: Optional[date] = None,
    search: Optional[str] = None,
    limit: int = 50,
) -> list[Order]:
    query = db.query(Order)
    if order_status:
        query = query.filter(Order.order_status == order_status)
    if payment_status:
        query = query.filter(Order.payment_status == payment_status)
    if company_id:
        query = query.filter(Order.company_id == company_id)
    if day:
        start, end = _day_bounds(day)
        query = query.filter(Order.created_at >= start, Order.created_at < end)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Order.id.ilike(pattern),
                Order.name.ilike(pattern),
                Order.contact.ilike(pattern),
                Order.from_number.ilike(pattern),
            )
        )
    return query.order_by(Order.created_at.desc()).limit(max(limit, 1)).all()


# === STATUS TRANSITIONS ===


def mark_paid(db: Session, order: Order, method: Optional[str] = None) -> Order:
    order.payment_status = "paid"
    order.order_status = "paid"
    if method:
        order.payment_method = method
    db.flush()
    return order


def mark_delivered(db: Session, order: Order) -> Order:
    order.order_status = "delivered"
    if order.delivered_at is None:
        order.delivered_at = datetime.now(timezone.utc)
    db.flush()
    return order


def report_payment(db: Session, order: Order) -> Order:
    """Customer says they paid. A claim, not a verified payment."""
    if order.payment_status != "paid":
        order.payment_status = "payment_reported"
        order.order_status = "payment_reported"
    db.flush()
    return order


def set_order_status(db: Session, order: Order, status: str) -> Order:
    status = (status or "").strip().lower()
    if not status:
        raise ValueError("status must not be empty")
    if status == "delivered":
        return mark_delivered(db, order)
    if status == "paid":
        return mark_paid(db, order)
    order.order_status = status
    db.flush()
    return order


def update_order(
    db: Session,
    order: Order,
    *,
    order_status: Optional[str] = None,
    payment_status: Optional[str] = None,
    payment_method: Optional[str] = None,
) -> Order:
    if payment_status is not None and payment_status not in PAYMENT_STATUSES:
        raise ValueError(f"payment_status must be one of: {', '.join(sorted(PAYMENT_STATUSES))}")
    if order_status is not None:
        set_order_status(db, order, order_status)
    if payment_status is not None:
        order.payment_status = payment_status
    if payment_method is not None:
        order.payment_method = payment_method.strip()
    db.flush()
    return order


# === TEXT ===


def format_order_summary(order: Order, company_name: Optional[str] = None) -> str:
    lines = [f"🧾 Pedido {order.id}"]
    if company_name:
        lines.append(f"Empresa: {company_name}")
    lines.append(f"Cliente: {order.from_number}")
    if order.name:
        lines.append(f"Nombre: {order.name}")
    if order.contact:
        lines.append(f"Contacto: {order.contact}")
    if order.notes:
        lines.append(f"Notas: {order.notes}")
    for line in order.items_detailed or []:
        lines.append(f"• {line.get('name')} x{line.get('qty')} — {format_price(line.get('subtotal', 0))}")
    lines.append(f"Total: {format_price(order.total or 0)}")
    lines.append(f"Pago: {order.payment_status} | Estado: {order.order_status}")
    if order.requested_ai_mode and order.requested_ai_mode != "no":
        lines.append(f"IA solicitada: {order.requested_ai_mode}")
    return "\n".join(lines)


def format_order_list(orders: list[Order]) -> str:
    if not orders:
        return "No hay pedidos."
    rows = [
        f"• {o.id} — {o.name or o.from_number} — {format_price(o.total or 0)} — {o.order_status}/{o.payment_status}"
        for o in orders
    ]
    return "📦 Pedidos:\n" + "\n".join(rows)
