"""
Pack catalogue and pack sales.

Selling a pack creates a credit lot. When the client still has usable
credits, the administrator chooses whether they roll into the new lot
(renewal) or stay in the old one.
"""
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from runafit.lib.clock import StudioClock
from runafit.lib.logging import get_logger
from runafit.lib.metrics import get_metrics_collector
from runafit.lib.request_context import SessionContext
from runafit.models.clients import Client
from runafit.models.credit_lots import CreditLot, CreditLotStatus
from runafit.models.packs import Pack
from runafit.services.credit_ledger import CreditLedger
from runafit.services.errors import InvalidInput, NotPermitted, RecordNotFound


logger = get_logger(__name__)

_EDITABLE_FIELDS = ("name", "class_count", "price", "duration_days", "active")


@dataclass
class SaleOutcome:
    status: str  # "sold" or "renewal_confirmation_required"
    lot: Optional[CreditLot] = None
    carried_over: int = 0
    existing_remaining: int = 0

    @property
    def sold(self) -> bool:
        return self.status == "sold"


class PackService:
    """Catalogue management and selling packs to clients."""

    def __init__(self, db_session: Session, clock: Optional[StudioClock] = None):
        self.db = db_session
        self.clock = clock or StudioClock()
        self.ledger = CreditLedger(db_session, self.clock)

    # ===== Catalogue =====

    def get_pack(self, pack_id: UUID) -> Pack:
        pack = self.db.get(Pack, pack_id)
        if pack is None:
            raise RecordNotFound("Pack", pack_id)
        return pack

    def list_packs(self, studio_id: Optional[int] = None, active_only: bool = True) -> list[Pack]:
        stmt = select(Pack)
        if studio_id is not None:
            stmt = stmt.where(Pack.studio_id == studio_id)
        if active_only:
            stmt = stmt.where(Pack.active == True)  # noqa: E712
        stmt = stmt.order_by(Pack.class_count, Pack.name)
        return list(self.db.scalars(stmt).all())

    def create_pack(
        self,
        studio_id: int,
        name: str,
        class_count: int,
        price: Decimal,
        duration_days: int = 30,
    ) -> Pack:
        if class_count <= 0 or duration_days <= 0:
            raise InvalidInput("Pack needs a positive class count and duration", {
                "class_count": class_count,
                "duration_days": duration_days,
            })
        pack = Pack(
            studio_id=studio_id,
            name=name.strip(),
            class_count=class_count,
            price=price,
            duration_days=duration_days,
            active=True,
        )
        self.db.add(pack)
        self.db.commit()
        logger.info("Pack created", extra={"pack_id": str(pack.id), "class_count": class_count})
        return pack

    def update_pack(self, pack_id: UUID, **changes) -> Pack:
        pack = self.get_pack(pack_id)
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise InvalidInput("Unknown pack fields", {field: "not editable" for field in sorted(unknown)})
        for field, value in changes.items():
            if value is not None:
                setattr(pack, field, value)
        if pack.class_count <= 0 or pack.duration_days <= 0:
            self.db.rollback()
            raise InvalidInput("Pack needs a positive class count and duration")
        self.db.commit()
        return pack

    def deactivate_pack(self, pack_id: UUID) -> Pack:
        pack = self.get_pack(pack_id)
        pack.active = False
        self.db.commit()
        logger.info("Pack deactivated", extra={"pack_id": str(pack_id)})
        return pack

    # ===== Sales =====

    def sell_pack(
        self,
        session: SessionContext,
        client_id: UUID,
        pack_id: UUID,
        payment_method: Optional[str] = None,
        amount_paid: Optional[Decimal] = None,
        accumulate: Optional[bool] = None,
    ) -> SaleOutcome:
        """
        Sell a pack to a client, creating a credit lot.

        Args:
            session: Acting session, must be an administrator
            client_id: Buyer
            pack_id: Pack to sell (must be active)
            payment_method: Recorded as given (cash, transfer...)
            amount_paid: Defaults to the pack price
            accumulate: What to do with credits still usable in current lots.
                None asks for confirmation, True carries them into the new lot,
                False leaves them where they are.
        """
        if not session.is_admin:
            raise NotPermitted("Only administrators can sell packs")
        if self.db.get(Client, client_id) is None:
            raise RecordNotFound("Client", client_id)
        pack = self.get_pack(pack_id)
        if not pack.active:
            raise InvalidInput("Pack is not available for sale", {"pack_id": str(pack_id)})

        today = self.clock.today()
        current_lots = self.ledger.consumable_lots(client_id, today)
        existing_remaining = sum(lot.remaining_credits for lot in current_lots)

        if existing_remaining and accumulate is None:
            return SaleOutcome(
                status="renewal_confirmation_required",
                existing_remaining=existing_remaining,
            )

        carried = 0
        try:
            if accumulate and current_lots:
                for old in current_lots:
                    old = self.ledger.lock_lot(old.id)
                    carried += old.remaining_credits
                    # Credits spent from the old lot stay spent
                    old.total_credits -= old.remaining_credits
                    old.remaining_credits = 0
                    old.status = CreditLotStatus.EXHAUSTED

            lot = CreditLot(
                client_id=client_id,
                pack_id=pack.id,
                total_credits=pack.class_count + carried,
                remaining_credits=pack.class_count + carried,
                carried_over_credits=carried,
                purchase_date=today,
                expiry_date=today + timedelta(days=pack.duration_days),
                status=CreditLotStatus.ACTIVE,
                amount_paid=amount_paid if amount_paid is not None else pack.price,
                payment_method=payment_method,
            )
            self.db.add(lot)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        get_metrics_collector().increment_lots_sold(renewal=bool(accumulate and carried))
        logger.info("Pack sold", extra={
            "client_id": str(client_id),
            "pack_id": str(pack.id),
            "credit_lot_id": str(lot.id),
            "carried_over": carried,
            "expiry_date": lot.expiry_date.isoformat(),
        })
        return SaleOutcome(
            status="sold",
            lot=lot,
            carried_over=carried,
            existing_remaining=existing_remaining,
        )
