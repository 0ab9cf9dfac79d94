from fastapi import APIRouter, BackgroundTasks, Depends, Form, Response
from sqlalchemy.orm import Session
from twilio.twiml.messaging_response import MessagingResponse

from shopbot.database import get_db
from shopbot.logging_config import get_logger
from shopbot.services.dispatcher import process_inbound
from shopbot.services.notification_service import send_notifications

logger = get_logger("whatsapp")

router = APIRouter()


def to_twiml(text: str) -> str:
    twiml = MessagingResponse()
    twiml.message(text)
    return str(twiml)


@router.post("/whatsapp")
def whatsapp_webhook(
    background_tasks: BackgroundTasks,
    from_number: str = Form(default="unknown", alias="From"),
    body: str = Form(default="", alias="Body"),
    db: Session = Depends(get_db),
):
    """Twilio inbound webhook. Always answers 200 with exactly one TwiML message."""
    result = process_inbound(db, from_number, body)

    if result.notifications:
        background_tasks.add_task(send_notifications, result.notifications)

    logger.info(
        "Inbound handled",
        extra={"context": {"from_number": from_number, "state": result.state, "company_id": result.company_id}},
    )
    return Response(content=to_twiml(result.reply), media_type="text/xml")
