from sqlalchemy import Column, DateTime, Float, Text

from shopbot.database import Base, JSONType


class Order(Base):
    __tablename__ = "orders"

    id = Column(Text, primary_key=True)  # PED-XXXXXX
    created_at = Column(DateTime(timezone=True), nullable=False)
    from_number = Column(Text, nullable=False, index=True)
    company_id = Column(Text, nullable=False)
    name = Column(Text, default="")
    contact = Column(Text, default="")
    notes = Column(Text, default="")
    items = Column(JSONType, nullable=False, default=list)  # raw cart ids
    items_detailed = Column(JSONType, nullable=False, default=list)  # [{id, name, qty, unit, subtotal}]
    total = Column(Float, nullable=False, default=0)
    payment_status = Column(Text, nullable=False, default="pending")  # pending, paid, payment_reported
    payment_method = Column(Text, default="")
    order_status = Column(Text, nullable=False, default="confirmed")  # confirmed, paid, delivered, payment_reported, ...
    delivered_at = Column(DateTime(timezone=True))
    requested_ai_mode = Column(Text)
