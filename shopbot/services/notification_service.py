"""Operator notifications (human handoff, new orders, payment reports) over Telegram."""

import httpx

from shopbot.config import settings
from shopbot.logging_config import get_logger

logger = get_logger("notification_service")

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"


def send_notification(text: str) -> bool:
    """Best effort: failures are logged and reported as False, never raised."""
    bot_token = settings.telegram_bot_token.strip()
    chat_id = settings.telegram_chat_id.strip()
    if not bot_token or not chat_id:
        logger.warning("Telegram not configured (TELEGRAM_BOT_TOKEN/TELEGRAM_CHAT_ID)")
        return False

    try:
        with httpx.Client(timeout=settings.notify_timeout_seconds) as client:
            response = client.post(
                TELEGRAM_API_URL.format(token=bot_token),
                json={"chat_id": chat_id, "text": text, "disable_web_page_preview": True},
            )
        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.status_code != 200 or data.get("ok") is False:
            logger.error(
                "Telegram API error",
                extra={"context": {"status": response.status_code, "description": data.get("description")}},
            )
            return False
        return True
    except Exception as e:
        logger.error(f"Telegram notify failed: {e}")
        return False


def send_notifications(messages: list[str]) -> int:
    """Deliver a turn's notifications in order. Returns how many went through."""
    return sum(1 for message in messages if send_notification(message))


def format_handoff_notification(company_name: str, from_number: str, message: str, urgent: bool = False) -> str:
    title = "🚨 URGENCIA" if urgent else "🙋‍♂️ HUMANO SOLICITADO"
    return f"{title}\nEmpresa: {company_name}\nCliente: {from_number}\nMensaje: {message}"


def format_order_notification(summary: str) -> str:
    return f"🛒 NUEVO PEDIDO\n{summary}"


def format_payment_report_notification(company_name: str, from_number: str, order_id: str, total: str) -> str:
    return f"💸 PAGO REPORTADO\nEmpresa: {company_name}\nCliente: {from_number}\nPedido: {order_id}\nTotal: {total}"
