from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

AIMode = Literal["off", "lite", "pro"]
AI_MODES = ("off", "lite", "pro")


class SessionData(BaseModel):
    """Typed view of the session data bag.

    Stored as JSON with camelCase keys. Missing keys take defaults and
    values of the wrong type fall back to defaults instead of failing the turn.
    """

    model_config = ConfigDict(populate_by_name=True)

    company_id: Optional[str] = Field(default=None, alias="companyId")
    ai_mode: AIMode = Field(default="off", alias="aiMode")
    ai_count: int = Field(default=0, alias="aiCount")
    ai_count_date: str = Field(default="", alias="aiCountDate")
    last_ai_at: float = Field(default=0.0, alias="lastAiAt")
    human_notified: bool = Field(default=False, alias="humanNotified")

    # Transient checkout fields
    name: Optional[str] = None
    contact: Optional[str] = None
    notes: Optional[str] = None
    requested_ai_mode: Optional[str] = Field(default=None, alias="requestedAiMode")

    @field_validator("ai_mode", mode="before")
    @classmethod
    def coerce_ai_mode(cls, value: Any) -> str:
        mode = str(value or "").strip().lower()
        return mode if mode in AI_MODES else "off"

    @field_validator("ai_count", mode="before")
    @classmethod
    def coerce_ai_count(cls, value: Any) -> int:
        try:
            count = int(value)
        except (TypeError, ValueError):
            return 0
        return max(count, 0)

    @field_validator("last_ai_at", mode="before")
    @classmethod
    def coerce_last_ai_at(cls, value: Any) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    @field_validator("ai_count_date", mode="before")
    @classmethod
    def coerce_date(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("human_notified", mode="before")
    @classmethod
    def coerce_flag(cls, value: Any) -> bool:
        return value is True

    @field_validator("company_id", "name", "contact", "notes", "requested_ai_mode", mode="before")
    @classmethod
    def coerce_optional_text(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, (dict, list)):
            return None
        return str(value)

    def clear_checkout(self) -> None:
        self.name = None
        self.contact = None
        self.notes = None
        self.requested_ai_mode = None

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True)


def parse_session_data(raw: Any) -> SessionData:
    if not isinstance(raw, dict):
        return SessionData()
    try:
        return SessionData.model_validate(raw)
    except ValidationError:
        return SessionData()


def parse_cart(raw: Any) -> list[int]:
    if not isinstance(raw, list):
        return []
    cart: list[int] = []
    for entry in raw:
        if isinstance(entry, bool):
            continue
        try:
            cart.append(int(entry))
        except (TypeError, ValueError):
            continue
    return cart
