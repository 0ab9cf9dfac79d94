from sqlalchemy import Column, DateTime, Integer, Text

from shopbot.database import Base


class AIMessage(Base):
    __tablename__ = "ai_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    from_number = Column(Text, nullable=False, index=True)
    role = Column(Text, nullable=False)  # user, assistant
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
