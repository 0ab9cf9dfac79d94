from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class AssignmentRequest(BaseModel):
    from_number: str
    company_id: str

    @field_validator("from_number", "company_id")
    @classmethod
    def strip_value(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("must not be empty")
        return value


class AssignmentResponse(BaseModel):
    from_number: str
    company_id: str
    updated_at: Optional[datetime] = None


class OrderLine(BaseModel):
    id: int
    name: str
    qty: int
    unit: float
    subtotal: float


class OrderResponse(BaseModel):
    id: str
    created_at: datetime
    from_number: str
    company_id: str
    name: Optional[str] = None
    contact: Optional[str] = None
    notes: Optional[str] = None
    items: list[int]
    items_detailed: list[OrderLine]
    total: float
    payment_status: str
    payment_method: Optional[str] = None
    order_status: str
    delivered_at: Optional[datetime] = None
    requested_ai_mode: Optional[str] = None


class OrderUpdate(BaseModel):
    order_status: Optional[str] = None
    payment_status: Optional[str] = None
    payment_method: Optional[str] = None

    @field_validator("order_status", "payment_status")
    @classmethod
    def normalize_status(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip().lower()
        if not value:
            raise ValueError("status must not be empty")
        return value
