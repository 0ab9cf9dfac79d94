from sqlalchemy import Column, DateTime, Text

from shopbot.database import Base


class Setting(Base):
    """Process-wide key/value entries. Last write wins."""

    __tablename__ = "settings"

    key = Column(Text, primary_key=True)
    value = Column(Text, nullable=False, default="")
    updated_at = Column(DateTime(timezone=True))
