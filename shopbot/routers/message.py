from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from shopbot.database import get_db
from shopbot.schemas.message import MessageRequest, MessageResponse
from shopbot.services.dispatcher import process_inbound
from shopbot.services.notification_service import send_notifications

router = APIRouter()


@router.post("/message", response_model=MessageResponse)
def handle_message(request: MessageRequest, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    """Same turn as the WhatsApp webhook, with a JSON envelope (simulators, tests)."""
    result = process_inbound(db, request.from_number, request.body)

    if result.notifications:
        background_tasks.add_task(send_notifications, result.notifications)

    return MessageResponse(reply=result.reply, state=result.state, company_id=result.company_id)
