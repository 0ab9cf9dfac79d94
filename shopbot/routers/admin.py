"""Administration API: companies, customer assignments and orders."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from shopbot.config import settings
from shopbot.database import get_db
from shopbot.logging_config import get_logger
from shopbot.models import Company, CustomerCompany, Order
from shopbot.schemas.admin import AssignmentRequest, AssignmentResponse, OrderResponse, OrderUpdate
from shopbot.schemas.company import CompanyCreate, CompanyResponse, CompanyUpdate
from shopbot.services import company_service, order_service
from shopbot.services.company_service import CompanyValidationError
from shopbot.services.session_service import normalize_customer_id

logger = get_logger("admin")


def _require_admin_token(authorization: Optional[str] = Header(default=None)) -> None:
    expected = settings.api_token
    if not expected:
        raise HTTPException(status_code=500, detail="API_TOKEN not configured")
    scheme, _, provided = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not provided or provided.strip() != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


router = APIRouter(prefix="/api", tags=["admin"], dependencies=[Depends(_require_admin_token)])


# === HELPERS ===


def _company_response(company: Company) -> CompanyResponse:
    return CompanyResponse(
        id=company.id,
        name=company.name or company.id,
        prompt=company.prompt or "",
        catalog=company.catalog if isinstance(company.catalog, list) else [],
        rules=company.rules if isinstance(company.rules, dict) else {},
    )


def _assignment_response(assignment: CustomerCompany) -> AssignmentResponse:
    return AssignmentResponse(
        from_number=assignment.from_number,
        company_id=assignment.company_id,
        updated_at=assignment.updated_at,
    )


def _order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        created_at=order.created_at,
        from_number=order.from_number,
        company_id=order.company_id,
        name=order.name,
        contact=order.contact,
        notes=order.notes,
        items=order.items or [],
        items_detailed=order.items_detailed or [],
        total=order.total or 0,
        payment_status=order.payment_status,
        payment_method=order.payment_method,
        order_status=order.order_status,
        delivered_at=order.delivered_at,
        requested_ai_mode=order.requested_ai_mode,
    )


def _get_company_or_404(db: Session, company_id: str) -> Company:
    company = company_service.get_company(db, company_id)
    if not company:
        raise HTTPException(status_code=404, detail=f"Company '{company_id}' not found")
    return company


def _get_order_or_404(db: Session, order_id: str) -> Order:
    order = order_service.get_order(db, order_id)
    if not order:
        raise HTTPException(status_code=404, detail=f"Order '{order_id}' not found")
    return order


# === COMPANIES ===


@router.get("/companies", response_model=list[CompanyResponse])
def list_companies(db: Session = Depends(get_db)):
    return [_company_response(c) for c in company_service.list_companies(db)]


@router.get("/companies/{company_id}", response_model=CompanyResponse)
def get_company(company_id: str, db: Session = Depends(get_db)):
    return _company_response(_get_company_or_404(db, company_id))


@router.post("/companies", response_model=CompanyResponse, status_code=201)
def create_company(data: CompanyCreate, db: Session = Depends(get_db)):
    """Create a company with an empty catalog. An existing id is returned unchanged."""
    try:
        company = company_service.create_company(db, data.id, data.name)
    except CompanyValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    db.commit()
    return _company_response(company)


@router.put("/companies/{company_id}", response_model=CompanyResponse)
def update_company(company_id: str, data: CompanyUpdate, db: Session = Depends(get_db)):
    """Update name, prompt, catalog or rules.

    Validation:
    - catalog must be a list of {id, name, price} with unique ids
    - rules must be an object
    Nothing is written when any field fails.
    """
    company = _get_company_or_404(db, company_id)
    try:
        company_service.update_company(
            db,
            company,
            name=data.name,
            prompt=data.prompt,
            catalog=data.catalog,
            rules=data.rules,
        )
    except CompanyValidationError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=e.message)
    db.commit()
    logger.info("Company updated", extra={"context": {"company_id": company.id}})
    return _company_response(company)


@router.delete("/companies/{company_id}")
def delete_company(company_id: str, db: Session = Depends(get_db)):
    company = _get_company_or_404(db, company_id)
    try:
        company_service.delete_company(db, company)
    except CompanyValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    db.commit()
    return {"ok": True, "id": company_id}


# === ASSIGNMENTS ===


@router.get("/assignments", response_model=list[AssignmentResponse])
def list_assignments(limit: int = Query(default=100, ge=1, le=500), db: Session = Depends(get_db)):
    return [_assignment_response(a) for a in company_service.list_assignments(db, limit=limit)]


@router.post("/assignments", response_model=AssignmentResponse)
def create_assignment(data: AssignmentRequest, db: Session = Depends(get_db)):
    from_number = normalize_customer_id(data.from_number)
    try:
        assignment = company_service.assign_company(db, from_number, data.company_id.lower())
    except CompanyValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    db.commit()
    return _assignment_response(assignment)


@router.delete("/assignments/{from_number}")
def delete_assignment(from_number: str, db: Session = Depends(get_db)):
    from_number = normalize_customer_id(from_number)
    if not company_service.delete_assignment(db, from_number):
        raise HTTPException(status_code=404, detail=f"Assignment for '{from_number}' not found")
    db.commit()
    return {"ok": True, "from_number": from_number}


# === ORDERS ===


@router.get("/orders", response_model=list[OrderResponse])
def list_orders(
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    company_id: Optional[str] = None,
    date_filter: Optional[str] = Query(default=None, alias="date"),
    q: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    day = None
    if date_filter:
        try:
            day = date.fromisoformat(date_filter)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="date must be YYYY-MM-DD") from exc

    orders = order_service.list_orders(
        db,
        order_status=status.strip().lower() if status else None,
        payment_status=payment_status.strip().lower() if payment_status else None,
        company_id=company_id,
        day=day,
        search=q,
        limit=limit,
    )
    return [_order_response(o) for o in orders]


@router.get("/orders/{order_id}", response_model=OrderResponse)
def get_order(order_id: str, db: Session = Depends(get_db)):
    return _order_response(_get_order_or_404(db, order_id))


@router.patch("/orders/{order_id}", response_model=OrderResponse)
def update_order(order_id: str, data: OrderUpdate, db: Session = Depends(get_db)):
    order = _get_order_or_404(db, order_id)
    try:
        order_service.update_order(
            db,
            order,
            order_status=data.order_status,
            payment_status=data.payment_status,
            payment_method=data.payment_method,
        )
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    db.commit()
    logger.info(
        "Order updated",
        extra={"context": {"order_id": order.id, "order_status": order.order_status}},
    )
    return _order_response(order)
