from typing import Optional

from pydantic import BaseModel


class MessageRequest(BaseModel):
    from_number: str
    body: str = ""


class MessageResponse(BaseModel):
    reply: str
    state: Optional[str] = None
    company_id: Optional[str] = None
