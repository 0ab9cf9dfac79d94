from shopbot.models.ai_message import AIMessage
from shopbot.models.chat_session import ChatSession
from shopbot.models.company import Company
from shopbot.models.customer_company import CustomerCompany
from shopbot.models.order import Order
from shopbot.models.setting import Setting

__all__ = [
    "Company",
    "CustomerCompany",
    "ChatSession",
    "Order",
    "Setting",
    "AIMessage",
]
