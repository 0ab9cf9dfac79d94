"""Administrator commands sent over the chat channel.

Text is parsed once into one of a closed set of command variants and each
variant is executed by its own handler. Input that starts with ``admin`` but
matches no variant becomes :class:`Unknown` and is answered with the command
list instead of being acknowledged.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Optional, Union

from sqlalchemy.orm import Session

from shopbot.config import settings
from shopbot.logging_config import get_logger
from shopbot.services import company_service, order_service
from shopbot.services.company_service import CompanyValidationError
from shopbot.services.result import NOT_FOUND, Result
from shopbot.services.session_service import (
    CustomerSession,
    find_session,
    normalize_customer_id,
    save_session,
)
from shopbot.services.settings_service import get_last_customer
from shopbot.services.state_machine import return_to_bot

logger = get_logger("admin_commands")

ADMIN_PREFIX = "admin"
DEFAULT_ORDER_LIMIT = 10
MAX_ORDER_LIMIT = 50

# Chat keyword -> (column, value) filter
ORDER_STATUS_FILTERS = {
    "pendientes": ("payment_status", "pending"),
    "pagados": ("payment_status", "paid"),
    "reportados": ("payment_status", "payment_reported"),
    "entregados": ("order_status", "delivered"),
}

ADMIN_HELP = """🛠️ Comandos admin:
• admin whoami
• admin company list
• admin company set <empresa> [cliente]
• admin ai set off|lite|pro [cliente]
• admin ai status [cliente]
• admin bot [cliente]
• admin pedidos [n] | hoy | fecha AAAA-MM-DD
• admin pedidos pendientes|pagados|reportados|entregados
• admin pedido <ID>
• admin pedido <ID> pagado [método]
• admin pedido <ID> entregado
• admin pedido <ID> estado <texto>
[cliente] por defecto es el último que escribió."""

MSG_NO_TARGET = "No tengo 'último cliente' todavía. Hacé que un cliente mande un mensaje primero."


@dataclass(frozen=True)
class Whoami:
    pass


@dataclass(frozen=True)
class Help:
    pass


@dataclass(frozen=True)
class CompanyList:
    pass


@dataclass(frozen=True)
class CompanySet:
    company_id: str
    target: Optional[str] = None


@dataclass(frozen=True)
class AiSet:
    mode: str
    target: Optional[str] = None


@dataclass(frozen=True)
class AiStatus:
    target: Optional[str] = None


@dataclass(frozen=True)
class ReturnToBot:
    target: Optional[str] = None


@dataclass(frozen=True)
class OrdersRecent:
    limit: int = DEFAULT_ORDER_LIMIT


@dataclass(frozen=True)
class OrdersByDay:
    day: date


@dataclass(frozen=True)
class OrdersByStatus:
    status: str


@dataclass(frozen=True)
class OrderShow:
    order_id: str


@dataclass(frozen=True)
class OrderMarkPaid:
    order_id: str
    method: Optional[str] = None


@dataclass(frozen=True)
class OrderMarkDelivered:
    order_id: str


@dataclass(frozen=True)
class OrderSetStatus:
    order_id: str
    status: str


@dataclass(frozen=True)
class Unknown:
    text: str


AdminCommand = Union[
    Whoami,
    Help,
    CompanyList,
    CompanySet,
    AiSet,
    AiStatus,
    ReturnToBot,
    OrdersRecent,
    OrdersByDay,
    OrdersByStatus,
    OrderShow,
    OrderMarkPaid,
    OrderMarkDelivered,
    OrderSetStatus,
    Unknown,
]

_COMPANY_SET = re.compile(r"^company set ([a-z0-9_-]+)(?: (\S+))?$")
_AI_SET = re.compile(r"^ai set (off|lite|pro)(?: (\S+))?$")
_AI_STATUS = re.compile(r"^ai status(?: (\S+))?$")
_BOT = re.compile(r"^bot(?: (\S+))?$")
_ORDERS_RECENT = re.compile(r"^pedidos(?: (\d{1,3}))?$")
_ORDERS_DATE = re.compile(r"^pedidos fecha (\d{4}-\d{2}-\d{2})$")
_ORDERS_STATUS = re.compile(r"^pedidos (pendientes|pagados|reportados|entregados)$")
_ORDER_SHOW = re.compile(r"^pedido (\S+)$")
_ORDER_PAID = re.compile(r"^pedido (\S+) pagado(?: (.+))?$")
_ORDER_DELIVERED = re.compile(r"^pedido (\S+) entregado$")
_ORDER_STATUS = re.compile(r"^pedido (\S+) estado (.+)$")


def normalize_command(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").strip()).lower()


def is_admin_command(text: str) -> bool:
    command = normalize_command(text)
    return command == ADMIN_PREFIX or command.startswith(ADMIN_PREFIX + " ")


def is_admin_sender(from_number: str) -> bool:
    admin = normalize_customer_id(settings.admin_number)
    return bool(admin) and normalize_customer_id(from_number) == admin


def parse_admin_command(text: str) -> AdminCommand:
    command = normalize_command(text)
    if not is_admin_command(command):
        return Unknown(text=command)
    rest = command[len(ADMIN_PREFIX):].strip()

    if rest == "whoami":
        return Whoami()
    if rest in ("ayuda", "help"):
        return Help()
    if rest == "company list":
        return CompanyList()
    if m := _COMPANY_SET.match(rest):
        return CompanySet(company_id=m.group(1), target=m.group(2))
    if m := _AI_SET.match(rest):
        return AiSet(mode=m.group(1), target=m.group(2))
    if m := _AI_STATUS.match(rest):
        return AiStatus(target=m.group(1))
    if m := _BOT.match(rest):
        return ReturnToBot(target=m.group(1))
    if rest == "pedidos hoy":
        return OrdersByDay(day=datetime.now(timezone.utc).date())
    if m := _ORDERS_DATE.match(rest):
        try:
            return OrdersByDay(day=date.fromisoformat(m.group(1)))
        except ValueError:
            return Unknown(text=command)
    if m := _ORDERS_STATUS.match(rest):
        return OrdersByStatus(status=m.group(1))
    if m := _ORDERS_RECENT.match(rest):
        limit = int(m.group(1)) if m.group(1) else DEFAULT_ORDER_LIMIT
        return OrdersRecent(limit=min(max(limit, 1), MAX_ORDER_LIMIT))
    if m := _ORDER_PAID.match(rest):
        return OrderMarkPaid(order_id=m.group(1).upper(), method=m.group(2))
    if m := _ORDER_DELIVERED.match(rest):
        return OrderMarkDelivered(order_id=m.group(1).upper())
    if m := _ORDER_STATUS.match(rest):
        return OrderSetStatus(order_id=m.group(1).upper(), status=m.group(2))
    if m := _ORDER_SHOW.match(rest):
        return OrderShow(order_id=m.group(1).upper())
    return Unknown(text=command)


# === EXECUTION ===


def _resolve_target(db: Session, target: Optional[str]) -> Optional[str]:
    if target:
        return normalize_customer_id(target)
    return get_last_customer(db)


def _target_session(db: Session, target: Optional[str]) -> Result[CustomerSession]:
    from_number = _resolve_target(db, target)
    if not from_number:
        return Result.failure(MSG_NO_TARGET, NOT_FOUND)
    session = find_session(db, from_number)
    if session is None:
        return Result.failure(f"No existe una sesión para {from_number}.", NOT_FOUND)
    return Result.success(session)


def _order_or_error(db: Session, order_id: str) -> Result:
    order = order_service.get_order(db, order_id)
    if order is None:
        return Result.failure(f"No existe el pedido {order_id}.", NOT_FOUND)
    return Result.success(order)


def _whoami(db: Session, command: Whoami, sender: str) -> str:
    return f"ADMIN OK: {sender}"


def _help(db: Session, command: Help, sender: str) -> str:
    return ADMIN_HELP


def _company_list(db: Session, command: CompanyList, sender: str) -> str:
    companies = company_service.list_companies(db)
    if not companies:
        return "No hay empresas."
    return "📋 Empresas:\n" + "\n".join(f"• {c.id} — {c.name}" for c in companies)


def _company_set(db: Session, command: CompanySet, sender: str) -> str:
    company = company_service.get_company(db, command.company_id)
    if company is None:
        return f"No existe la empresa '{command.company_id}'."
    target = _resolve_target(db, command.target)
    if not target:
        return MSG_NO_TARGET
    try:
        company_service.assign_company(db, target, company.id)
    except CompanyValidationError as e:
        return f"⚠️ {e.message}"
    return f"🏢 Empresa para {target}: {company.id} ({company.name}) ✅"


def _ai_set(db: Session, command: AiSet, sender: str) -> str:
    result = _target_session(db, command.target)
    if not result.ok:
        return result.error
    session = result.value
    session.data.ai_mode = command.mode
    save_session(db, session)
    return f"🤖 IA {command.mode.upper()} para {session.from_number}"


def _ai_status(db: Session, command: AiStatus, sender: str) -> str:
    result = _target_session(db, command.target)
    if not result.ok:
        return result.error
    data = result.value.data
    return (
        f"🤖 IA: {data.ai_mode.upper()} para {result.value.from_number}\n"
        f"Uso: {data.ai_count} ({data.ai_count_date or 'sin uso'})"
    )


def _return_to_bot(db: Session, command: ReturnToBot, sender: str) -> str:
    result = _target_session(db, command.target)
    if not result.ok:
        return result.error
    session = result.value
    session.state = return_to_bot(session.state)
    session.data.human_notified = False
    save_session(db, session)
    return f"🤖 Bot reactivado para {session.from_number}"


def _orders_recent(db: Session, command: OrdersRecent, sender: str) -> str:
    return order_service.format_order_list(order_service.list_orders(db, limit=command.limit))


def _orders_by_day(db: Session, command: OrdersByDay, sender: str) -> str:
    orders = order_service.list_orders(db, day=command.day, limit=MAX_ORDER_LIMIT)
    return f"📅 {command.day.isoformat()}\n" + order_service.format_order_list(orders)


def _orders_by_status(db: Session, command: OrdersByStatus, sender: str) -> str:
    column, value = ORDER_STATUS_FILTERS[command.status]
    orders = order_service.list_orders(db, limit=MAX_ORDER_LIMIT, **{column: value})
    return order_service.format_order_list(orders)


def _order_show(db: Session, command: OrderShow, sender: str) -> str:
    result = _order_or_error(db, command.order_id)
    if not result.ok:
        return result.error
    order = result.value
    company = company_service.get_company(db, order.company_id)
    return order_service.format_order_summary(order, company.name if company else order.company_id)


def _order_mark_paid(db: Session, command: OrderMarkPaid, sender: str) -> str:
    result = _order_or_error(db, command.order_id)
    if not result.ok:
        return result.error
    order = order_service.mark_paid(db, result.value, command.method)
    method = f" ({order.payment_method})" if order.payment_method else ""
    return f"💰 Pedido {order.id} marcado como pagado{method}."


def _order_mark_delivered(db: Session, command: OrderMarkDelivered, sender: str) -> str:
    result = _order_or_error(db, command.order_id)
    if not result.ok:
        return result.error
    order = order_service.mark_delivered(db, result.value)
    return f"📦 Pedido {order.id} marcado como entregado."


def _order_set_status(db: Session, command: OrderSetStatus, sender: str) -> str:
    result = _order_or_error(db, command.order_id)
    if not result.ok:
        return result.error
    order = order_service.set_order_status(db, result.value, command.status)
    return f"✏️ Pedido {order.id}: estado {order.order_status}."


def _unknown(db: Session, command: Unknown, sender: str) -> str:
    return f"❓ Comando admin desconocido: {command.text}\n\n{ADMIN_HELP}"


_HANDLERS: dict[type, Callable[[Session, AdminCommand, str], str]] = {
    Whoami: _whoami,
    Help: _help,
    CompanyList: _company_list,
    CompanySet: _company_set,
    AiSet: _ai_set,
    AiStatus: _ai_status,
    ReturnToBot: _return_to_bot,
    OrdersRecent: _orders_recent,
    OrdersByDay: _orders_by_day,
    OrdersByStatus: _orders_by_status,
    OrderShow: _order_show,
    OrderMarkPaid: _order_mark_paid,
    OrderMarkDelivered: _order_mark_delivered,
    OrderSetStatus: _order_set_status,
    Unknown: _unknown,
}


def execute_admin_command(db: Session, command: AdminCommand, sender: str) -> str:
    """Run a parsed command. The caller has already checked that ``sender`` is the administrator."""
    handler = _HANDLERS[type(command)]
    reply = handler(db, command, sender)
    logger.info(
        "Admin command executed",
        extra={"context": {"command": type(command).__name__, "sender": sender}},
    )
    return reply
