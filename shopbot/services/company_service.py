import json
import re
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from shopbot.config import settings
from shopbot.logging_config import get_logger
from shopbot.models import ChatSession, Company, CustomerCompany
from shopbot.schemas.company import (
    CatalogItem,
    CompanyProfile,
    CompanyRules,
    parse_catalog,
    parse_rules,
)
from shopbot.schemas.session import parse_session_data

logger = get_logger("company_service")

COMPANY_ID_PATTERN = re.compile(r"^[a-z0-9_-]{3,40}$")
DEFAULT_PROMPT = "Sos el asistente de la empresa. Respondés acorde al manual de marca."

DEFAULT_COMPANIES = [
    {
        "id": "babystepsbots",
        "name": "Babystepsbots",
        "prompt": "Sos el asistente comercial de Babystepsbots. Español Argentina, claro, directo, vendedor.",
        "catalog": [
            {"id": 1, "name": "Bot WhatsApp", "price": 120},
            {"id": 2, "name": "Bot Instagram", "price": 100},
            {"id": 3, "name": "Bot Unificado", "price": 200},
        ],
        "rules": {"tone": "comercial", "allowHuman": True},
    },
    {
        "id": "veterinaria_sm",
        "name": "Veterinaria San Miguel",
        "prompt": "Sos asistente de una veterinaria. Empático, calmado, priorizás urgencias.",
        "catalog": [
            {"id": 1, "name": "Consulta", "price": 5000},
            {"id": 2, "name": "Vacunación", "price": 8000},
        ],
        "rules": {"tone": "empatico", "emergencyKeywords": ["urgente", "accidente"], "allowHuman": True},
    },
]


class CompanyValidationError(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


def seed_default_companies(db: Session) -> int:
    """Insert the built-in companies that are missing. Returns how many were added."""
    added = 0
    now = datetime.now(timezone.utc)
    for seed in DEFAULT_COMPANIES:
        if db.query(Company).filter(Company.id == seed["id"]).first():
            continue
        db.add(Company(created_at=now, updated_at=now, **seed))
        added += 1
    if added:
        db.flush()
        logger.info("Seeded default companies", extra={"context": {"added": added}})
    return added


def to_profile(company: Company) -> CompanyProfile:
    return CompanyProfile(
        id=company.id,
        name=company.name or company.id,
        prompt=company.prompt or "",
        catalog=parse_catalog(company.catalog),
        rules=parse_rules(company.rules),
    )


def _builtin_default_profile() -> CompanyProfile:
    seed = next((c for c in DEFAULT_COMPANIES if c["id"] == settings.default_company_id), DEFAULT_COMPANIES[0])
    return CompanyProfile(
        id=seed["id"],
        name=seed["name"],
        prompt=seed["prompt"],
        catalog=parse_catalog(seed["catalog"]),
        rules=parse_rules(seed["rules"]),
    )


def get_company(db: Session, company_id: Optional[str]) -> Optional[Company]:
    if not company_id:
        return None
    return db.query(Company).filter(Company.id == company_id.strip().lower()).first()


def resolve_company(db: Session, company_id: Optional[str]) -> CompanyProfile:
    """Company profile for a turn. Unknown ids fall back to the default company, never fail."""
    company = get_company(db, company_id)
    if company is None:
        if company_id and company_id != settings.default_company_id:
            logger.warning(
                "Company not found, using default",
                extra={"context": {"company_id": company_id, "default": settings.default_company_id}},
            )
        company = get_company(db, settings.default_company_id)
    if company is None:
        return _builtin_default_profile()
    return to_profile(company)


def list_companies(db: Session) -> list[Company]:
    return db.query(Company).order_by(Company.id).all()


# === VALIDATION ===


def validate_company_id(company_id: str) -> str:
    company_id = (company_id or "").strip().lower()
    if not COMPANY_ID_PATTERN.match(company_id):
        raise CompanyValidationError("Invalid company id: use 3-40 chars of a-z, 0-9, '_' or '-'")
    return company_id


def _load_json(raw: Any, label: str) -> Any:
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise CompanyValidationError(f"Invalid {label} JSON: {e.msg}")
    return raw


def validate_catalog(raw: Any) -> list[dict]:
    """Strict check used on admin edits: the catalog must be a list of {id, name, price}."""
    value = _load_json(raw, "catalog")
    if not isinstance(value, list):
        raise CompanyValidationError("Invalid catalog: must be a list")

    items: list[dict] = []
    seen: set[int] = set()
    for index, entry in enumerate(value):
        try:
            item = CatalogItem.model_validate(entry)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            raise CompanyValidationError(f"Invalid catalog item #{index}: {location} {first.get('msg')}".strip())
        if item.id in seen:
            raise CompanyValidationError(f"Invalid catalog: duplicated item id {item.id}")
        seen.add(item.id)
        items.append(item.model_dump())
    return items


def validate_rules(raw: Any) -> dict:
    value = _load_json(raw, "rules")
    if not isinstance(value, dict):
        raise CompanyValidationError("Invalid rules: must be an object")
    try:
        CompanyRules.model_validate(value)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise CompanyValidationError(f"Invalid rules: {location} {first.get('msg')}".strip())
    return value


# === ADMIN OPERATIONS ===


def create_company(db: Session, company_id: str, name: Optional[str] = None) -> Company:
    company_id = validate_company_id(company_id)
    existing = get_company(db, company_id)
    if existing:
        return existing

    now = datetime.now(timezone.utc)
    company = Company(
        id=company_id,
        name=(name or "").strip() or company_id,
        prompt=DEFAULT_PROMPT,
        catalog=[],
        rules={"tone": "neutral", "allowHuman": True},
        created_at=now,
        updated_at=now,
    )
    db.add(company)
    db.flush()
    logger.info(f"Created company {company_id}")
    return company


def update_company(
    db: Session,
    company: Company,
    *,
    name: Optional[str] = None,
    prompt: Optional[str] = None,
    catalog: Any = None,
    rules: Any = None,
) -> Company:
    """Validate everything first so a bad payload never half-applies."""
    new_catalog = validate_catalog(catalog) if catalog is not None else None
    new_rules = validate_rules(rules) if rules is not None else None

    if name is not None:
        company.name = name.strip() or company.id
    if prompt is not None:
        company.prompt = prompt
    if new_catalog is not None:
        company.catalog = new_catalog
    if new_rules is not None:
        company.rules = new_rules
    company.updated_at = datetime.now(timezone.utc)
    db.flush()
    return company


def delete_company(db: Session, company: Company) -> None:
    """Sessions still pointing at the company fall back to the default one."""
    if company.id == settings.default_company_id:
        raise CompanyValidationError("The default company cannot be deleted")
    db.delete(company)
    db.flush()
    logger.info(f"Deleted company {company.id}")


# === CUSTOMER ASSIGNMENTS ===


def get_assignment(db: Session, from_number: str) -> Optional[CustomerCompany]:
    return db.query(CustomerCompany).filter(CustomerCompany.from_number == from_number).first()


def list_assignments(db: Session, limit: int = 100) -> list[CustomerCompany]:
    return db.query(CustomerCompany).order_by(CustomerCompany.updated_at.desc()).limit(limit).all()


def assign_company(db: Session, from_number: str, company_id: str) -> CustomerCompany:
    """Upsert the assignment and rewrite the company cached in the customer's session."""
    company = get_company(db, company_id)
    if company is None:
        raise CompanyValidationError(f"Company '{company_id}' does not exist")

    now = datetime.now(timezone.utc)
    assignment = get_assignment(db, from_number)
    if assignment is None:
        assignment = CustomerCompany(from_number=from_number, company_id=company.id, updated_at=now)
        db.add(assignment)
    else:
        assignment.company_id = company.id
        assignment.updated_at = now

    row = db.query(ChatSession).filter(ChatSession.from_number == from_number).first()
    if row is not None:
        data = parse_session_data(row.data)
        data.company_id = company.id
        row.data = data.to_json()
        row.updated_at = now

    db.flush()
    logger.info(
        "Customer assigned to company",
        extra={"context": {"from_number": from_number, "company_id": company.id}},
    )
    return assignment


def delete_assignment(db: Session, from_number: str) -> bool:
    assignment = get_assignment(db, from_number)
    if assignment is None:
        return False
    db.delete(assignment)
    db.flush()
    return True


def apply_assignment(db: Session, from_number: str, current_company_id: Optional[str]) -> str:
    """Company id for this turn: assignment, then session cache, then the default."""
    assignment = get_assignment(db, from_number)
    if assignment and assignment.company_id:
        return assignment.company_id
    return current_company_id or settings.default_company_id
