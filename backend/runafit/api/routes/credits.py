"""
Credit balance route.

GET /credits/me returns the caller's lots and usable balance. The first call
in a login session also sends the low balance / expiring pack warning when
one applies.
"""
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from runafit.api.dependencies import get_clock, get_db, get_notifier, get_session_context
from runafit.lib.clock import StudioClock
from runafit.lib.request_context import SessionContext
from runafit.models.credit_lots import CreditLotStatus
from runafit.services.credit_ledger import CreditLedger
from runafit.services.notification_service import NotificationService


router = APIRouter(prefix="/credits", tags=["credits"])


class CreditLotItem(BaseModel):
    id: UUID
    total_credits: int
    remaining_credits: int
    carried_over_credits: int
    purchase_date: date
    expiry_date: date
    status: CreditLotStatus

    model_config = {"from_attributes": True}


class WarningItem(BaseModel):
    kinds: List[str]
    message: str


class BalanceResponse(BaseModel):
    total_remaining: int
    current_lot_id: Optional[UUID] = None
    days_to_expiry: Optional[int] = None
    lots: List[CreditLotItem]
    warning: Optional[WarningItem] = None


@router.get("/me", response_model=BalanceResponse)
def my_credits(
    session: SessionContext = Depends(get_session_context),
    clock: StudioClock = Depends(get_clock),
    notifier: NotificationService = Depends(get_notifier),
    db: Session = Depends(get_db),
) -> BalanceResponse:
    """Balance summary of the caller."""
    ledger = CreditLedger(db, clock, notifier)
    balance = ledger.balance_summary(session.client_id)
    warning = ledger.check_balance_warning(session, session.client_id)

    return BalanceResponse(
        total_remaining=balance.total_remaining,
        current_lot_id=balance.current_lot.id if balance.current_lot else None,
        days_to_expiry=balance.days_to_expiry,
        lots=[CreditLotItem.model_validate(lot) for lot in balance.lots],
        warning=WarningItem(kinds=warning.kinds, message=warning.message) if warning else None,
    )
