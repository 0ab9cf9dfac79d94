from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class CatalogItem(BaseModel):
    id: int
    name: str
    price: float = Field(ge=0)

    @field_validator("id", mode="before")
    @classmethod
    def reject_bool_id(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("id must be an integer")
        return value


class CompanyRules(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    tone: str = "neutral"
    emergency_keywords: list[str] = Field(default_factory=list, alias="emergencyKeywords")
    allow_human: bool = Field(default=True, alias="allowHuman")
    ask_notes: bool = Field(default=False, alias="askNotes")
    offer_ai: bool = Field(default=False, alias="offerAi")
    payment_info: Optional[str] = Field(default=None, alias="paymentInfo")

    @field_validator("emergency_keywords", mode="before")
    @classmethod
    def normalize_keywords(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            return []
        return [str(item).strip().lower() for item in value if str(item).strip()]


class CompanyProfile(BaseModel):
    """Company as the dispatcher sees it: persona, catalog and rules already parsed."""

    id: str
    name: str
    prompt: str = ""
    catalog: list[CatalogItem] = Field(default_factory=list)
    rules: CompanyRules = Field(default_factory=CompanyRules)

    def find_item(self, item_id: int) -> Optional[CatalogItem]:
        for item in self.catalog:
            if item.id == item_id:
                return item
        return None


def parse_catalog(raw: Any) -> list[CatalogItem]:
    """Read a stored catalog, dropping entries that do not fit the schema."""
    if not isinstance(raw, list):
        return []
    items: list[CatalogItem] = []
    seen: set[int] = set()
    for entry in raw:
        try:
            item = CatalogItem.model_validate(entry)
        except ValidationError:
            continue
        if item.id in seen:
            continue
        seen.add(item.id)
        items.append(item)
    return items


def parse_rules(raw: Any) -> CompanyRules:
    if not isinstance(raw, dict):
        return CompanyRules()
    try:
        return CompanyRules.model_validate(raw)
    except ValidationError:
        return CompanyRules()


# === ADMIN API ===


class CompanyCreate(BaseModel):
    id: str
    name: Optional[str] = None


class CompanyUpdate(BaseModel):
    name: Optional[str] = None
    prompt: Optional[str] = None
    catalog: Any = None
    rules: Any = None


class CompanyResponse(BaseModel):
    id: str
    name: str
    prompt: str
    catalog: list[dict]
    rules: dict
