from sqlalchemy import Column, DateTime, Text

from shopbot.database import Base


class CustomerCompany(Base):
    """Administrator assignment of a customer number to a company."""

    __tablename__ = "customer_company"

    from_number = Column(Text, primary_key=True)
    company_id = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True))
