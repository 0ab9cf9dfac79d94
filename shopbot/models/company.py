from sqlalchemy import Column, DateTime, Text

from shopbot.database import Base, JSONType


class Company(Base):
    __tablename__ = "companies"

    id = Column(Text, primary_key=True)  # slug, e.g. veterinaria_sm
    name = Column(Text, nullable=False)
    prompt = Column(Text, nullable=False, default="")
    catalog = Column(JSONType, nullable=False, default=list)  # [{id, name, price}]
    rules = Column(JSONType, nullable=False, default=dict)  # {tone, emergencyKeywords, allowHuman, ...}
    created_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))
