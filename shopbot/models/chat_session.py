from sqlalchemy import Column, DateTime, Integer, Text

from shopbot.database import Base, JSONType


class ChatSession(Base):
    __tablename__ = "sessions"

    from_number = Column(Text, primary_key=True)
    state = Column(Text, nullable=False, default="MENU")
    cart = Column(JSONType, nullable=False, default=list)  # ordered item ids, duplicates allowed
    data = Column(JSONType, nullable=False, default=dict)  # companyId, aiMode, aiCount, checkout fields...
    last_order_id = Column(Text)
    version = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True))

    __mapper_args__ = {"version_id_col": version}
