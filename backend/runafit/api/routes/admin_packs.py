"""
Admin Packs Routes - pack catalogue, pack sales and lot expiry.

Provides:
- GET /admin/packs, POST /admin/packs, PATCH /admin/packs/{id}
- POST /admin/packs/{id}/deactivate
- POST /admin/clients/{id}/credit-lots: sell a pack to a client
- POST /admin/credit-lots/expire: mark lots past their expiry as expired
"""
from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from runafit.api.dependencies import get_clock, get_db, require_admin
from runafit.api.routes.credits import CreditLotItem
from runafit.lib.clock import StudioClock
from runafit.lib.logging import get_logger
from runafit.lib.request_context import SessionContext
from runafit.services.credit_ledger import CreditLedger
from runafit.services.pack_service import PackService


logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["admin", "packs"])


# Request/Response Models
class PackCreate(BaseModel):
    studio_id: int
    name: str = Field(..., min_length=1, max_length=120)
    class_count: int = Field(..., gt=0)
    price: Decimal = Field(..., ge=0)
    duration_days: int = Field(30, gt=0)


class PackUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    class_count: Optional[int] = Field(None, gt=0)
    price: Optional[Decimal] = Field(None, ge=0)
    duration_days: Optional[int] = Field(None, gt=0)
    active: Optional[bool] = None


class PackOut(BaseModel):
    id: UUID
    studio_id: int
    name: str
    class_count: int
    price: Decimal
    duration_days: int
    active: bool

    model_config = {"from_attributes": True}


class SaleRequest(BaseModel):
    pack_id: UUID
    payment_method: Optional[str] = Field(None, max_length=32, description="cash, transfer, ...")
    amount_paid: Optional[Decimal] = Field(None, ge=0, description="Defaults to the pack price")
    accumulate: Optional[bool] = Field(
        None,
        description="Carry the client's remaining credits into the new lot (true), "
                    "keep them apart (false) or ask first (omitted)",
    )


class SaleResponse(BaseModel):
    status: str
    existing_remaining: int
    carried_over: int = 0
    lot: Optional[CreditLotItem] = None


class ExpireResponse(BaseModel):
    as_of: date
    expired_count: int


def get_pack_service(
    clock: StudioClock = Depends(get_clock),
    db: Session = Depends(get_db),
) -> PackService:
    return PackService(db, clock)


# Routes
@router.get("/packs", response_model=List[PackOut])
def list_packs(
    studio_id: Optional[int] = Query(None),
    active_only: bool = Query(True, description="Show only packs that can be sold"),
    admin: SessionContext = Depends(require_admin),
    service: PackService = Depends(get_pack_service),
) -> List[PackOut]:
    return [PackOut.model_validate(p) for p in service.list_packs(studio_id=studio_id, active_only=active_only)]


@router.post("/packs", response_model=PackOut, status_code=status.HTTP_201_CREATED)
def create_pack(
    request: PackCreate,
    admin: SessionContext = Depends(require_admin),
    service: PackService = Depends(get_pack_service),
) -> PackOut:
    pack = service.create_pack(
        studio_id=request.studio_id,
        name=request.name,
        class_count=request.class_count,
        price=request.price,
        duration_days=request.duration_days,
    )
    return PackOut.model_validate(pack)


@router.patch("/packs/{pack_id}", response_model=PackOut)
def update_pack(
    pack_id: UUID,
    request: PackUpdate,
    admin: SessionContext = Depends(require_admin),
    service: PackService = Depends(get_pack_service),
) -> PackOut:
    return PackOut.model_validate(service.update_pack(pack_id, **request.model_dump(exclude_unset=True)))


@router.post("/packs/{pack_id}/deactivate", response_model=PackOut)
def deactivate_pack(
    pack_id: UUID,
    admin: SessionContext = Depends(require_admin),
    service: PackService = Depends(get_pack_service),
) -> PackOut:
    return PackOut.model_validate(service.deactivate_pack(pack_id))


@router.post("/clients/{client_id}/credit-lots", response_model=SaleResponse)
def sell_pack(
    client_id: UUID,
    request: SaleRequest,
    admin: SessionContext = Depends(require_admin),
    service: PackService = Depends(get_pack_service),
):
    """
    Sell a pack to a client.

    If the client still has usable credits and `accumulate` is omitted, the
    sale is not recorded; the response (202) carries status
    renewal_confirmation_required and the credits left.
    """
    logger.info(f"POST /admin/clients/{client_id}/credit-lots (pack={request.pack_id})")
    outcome = service.sell_pack(
        admin,
        client_id,
        request.pack_id,
        payment_method=request.payment_method,
        amount_paid=request.amount_paid,
        accumulate=request.accumulate,
    )
    body = SaleResponse(
        status=outcome.status,
        existing_remaining=outcome.existing_remaining,
        carried_over=outcome.carried_over,
        lot=CreditLotItem.model_validate(outcome.lot) if outcome.lot else None,
    )
    if not outcome.sold:
        return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=body.model_dump(mode="json"))
    return body


@router.post("/credit-lots/expire", response_model=ExpireResponse)
def expire_lots(
    admin: SessionContext = Depends(require_admin),
    clock: StudioClock = Depends(get_clock),
    db: Session = Depends(get_db),
) -> ExpireResponse:
    """Mark every lot whose expiry date has passed as expired."""
    today = clock.today()
    expired = CreditLedger(db, clock).expire_lots(today)
    return ExpireResponse(as_of=today, expired_count=expired)
