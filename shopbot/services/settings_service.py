from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from shopbot.models import Setting

LAST_CUSTOMER_KEY = "last_customer"


def get_setting(db: Session, key: str, default: str = "") -> str:
    row = db.query(Setting).filter(Setting.key == key).first()
    if row is None or row.value is None:
        return default
    return row.value


def set_setting(db: Session, key: str, value: Optional[str]) -> Setting:
    """Upsert a key. Last write wins; there is no version check across writers."""
    row = db.merge(Setting(key=key, value=value or "", updated_at=datetime.now(timezone.utc)))
    db.flush()
    return row


def remember_last_customer(db: Session, from_number: str) -> None:
    set_setting(db, LAST_CUSTOMER_KEY, from_number)


def get_last_customer(db: Session) -> Optional[str]:
    return get_setting(db, LAST_CUSTOMER_KEY) or None
