"""Customer-facing texts. Every reply the bot sends is built here."""

from typing import Optional

from shopbot.schemas.company import CompanyProfile
from shopbot.services.order_service import format_price, price_cart

MSG_NOT_UNDERSTOOD = "No entendí 😅. Escribí: menu / catalogo / carrito / checkout / humano"
MSG_RESTRICTED = "⛔ Comando restringido."
MSG_HUMAN_NOTIFIED = (
    "✅ Listo. Un asesor fue notificado y te va a responder en breve.\n\n"
    "Mientras tanto podés escribir *menu* para volver al bot."
)
MSG_URGENT_NOTIFIED = (
    "🚨 Recibimos tu urgencia y avisamos a un asesor ahora mismo.\n\n"
    "Si podés, contanos brevemente qué pasó."
)
MSG_HUMAN_WAITING = "⏳ Un asesor ya fue notificado. Escribí *menu* para volver."
MSG_HUMAN_UNAVAILABLE = "En este canal no hay atención humana disponible. Escribí *menu* para seguir con el bot."
MSG_UNKNOWN_PRODUCT = "Ese producto no existe. Escribí catalogo y elegí una opción válida."
MSG_CART_EMPTY = "🧺 Carrito vacío. Agregá productos con: agregar <número>"
MSG_ASK_NAME = "¿A nombre de quién va el pedido?"
MSG_ASK_CONTACT = "Pasame un contacto (teléfono o email)."
MSG_ASK_NOTES = "¿Alguna nota para el pedido? (dirección, horario, etc.) Si no, escribí: no"
MSG_ASK_AI_MODE = "¿Querés sumar asistente con IA a tu pedido? Respondé: no / lite / pro"
MSG_CONFIRM_NOT_READY = "Todavía no hay un pedido para confirmar. Escribí checkout para empezar."
MSG_CANCELLED = "🗑️ Pedido cancelado y carrito vaciado. Escribí *menu* para empezar de nuevo."
MSG_NO_LAST_ORDER = "No encontré un pedido tuyo reciente. Si ya compraste, escribí humano."
MSG_SERVICE_ERROR = "⚠️ Tuvimos un problema procesando tu mensaje. Probá de nuevo en un momento."

MSG_AI_UNAVAILABLE = "IA no disponible."
MSG_AI_LIMIT = "⚠️ Límite diario de IA alcanzado. Escribí humano."
MSG_AI_RATE_LIMITED = "Contame un poco más 🙂"
MSG_AI_ERROR = "Perdón, no pude responder ahora. Probá de nuevo o escribí humano."

DEFAULT_PAYMENT_INFO = "Te pasamos los datos de pago por este medio al confirmar el pedido."

NOTES_SKIP_ANSWERS = {"no", "-"}


def menu_text(company: CompanyProfile) -> str:
    return (
        f"👋 Hola! Soy el asistente de {company.name}\n"
        "• catalogo\n"
        "• carrito\n"
        "• checkout\n"
        "• humano"
    )


def catalog_text(company: CompanyProfile) -> str:
    if not company.catalog:
        return f"🛒 {company.name}\nTodavía no hay productos cargados."
    lines = [f"{item.id}) {item.name} — {format_price(item.price)}" for item in company.catalog]
    return f"🛒 {company.name}\n" + "\n".join(lines) + "\n\nPara sumar: agregar <número>"


def cart_text(cart: list[int], company: CompanyProfile) -> str:
    if not cart:
        return "🧺 Carrito vacío."
    lines, total = price_cart(cart, company)
    rows = [f"• {line.name} x{line.qty} — {format_price(line.subtotal)}" for line in lines]
    return f"🧾 {company.name}\n" + "\n".join(rows) + f"\nTotal: {format_price(total)}"


def added_text(item_name: str, cart: list[int], company: CompanyProfile) -> str:
    return f"✅ Agregado {item_name}\n\n{cart_text(cart, company)}\n\nPara finalizar: checkout"


def help_text(company: CompanyProfile) -> str:
    lines = [
        f"ℹ️ Ayuda — {company.name}",
        "• menu: volver al inicio",
        "• catalogo: ver productos",
        "• agregar <número>: sumar al carrito",
        "• carrito: ver tu carrito",
        "• checkout: finalizar la compra",
        "• cancelar: vaciar carrito y empezar de nuevo",
        "• pago: cómo pagar",
        "• pagado: avisar que ya pagaste",
    ]
    if company.rules.allow_human:
        lines.append("• humano: hablar con una persona")
    return "\n".join(lines)


def payment_text(company: CompanyProfile) -> str:
    info = (company.rules.payment_info or "").strip() or DEFAULT_PAYMENT_INFO
    return f"💳 Pago — {company.name}\n{info}\n\nCuando pagues, escribí: pagado"


def payment_reported_text(order_id: str) -> str:
    return f"🙌 Gracias! Registramos tu aviso de pago del pedido {order_id}. Lo verificamos y te confirmamos."


def ready_text(
    cart: list[int],
    company: CompanyProfile,
    name: Optional[str],
    contact: Optional[str],
    notes: Optional[str] = None,
) -> str:
    lines = ["Resumen:", cart_text(cart, company), f"Nombre: {name or '-'}", f"Contacto: {contact or '-'}"]
    if notes:
        lines.append(f"Notas: {notes}")
    lines.append("")
    lines.append("Confirmar: confirmar | Cancelar: cancelar")
    return "\n".join(lines)


def order_confirmed_text(order_id: str, total: float) -> str:
    return f"🎉 Pedido {order_id} confirmado.\nTotal: {format_price(total)}\n\nPara pagar escribí: pago"
