"""
Credit ledger: per-client credit lots, lot selection, debit and restore.

Selection policy for every booking path: among the client's active lots with
credits left whose expiry covers the class date, take the earliest expiry,
then the earliest purchase date, then the lowest id.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update, func
from sqlalchemy.orm import Session

from runafit.lib.clock import StudioClock
from runafit.lib.config_flags import get_booking_rules, get_feature_flags
from runafit.lib.logging import get_logger
from runafit.lib.metrics import get_metrics_collector
from runafit.lib.request_context import SessionContext
from runafit.models.credit_lots import CreditLot, CreditLotStatus
from runafit.services.errors import NoCreditAvailable, InsufficientCredit
from runafit.services.notification_service import NotificationService, get_notification_service


logger = get_logger(__name__)


@dataclass
class CreditBalance:
    client_id: UUID
    total_remaining: int
    current_lot: Optional[CreditLot]
    days_to_expiry: Optional[int]
    lots: list[CreditLot] = field(default_factory=list)


@dataclass
class CreditWarning:
    client_id: UUID
    kinds: list[str]
    remaining_credits: int
    days_to_expiry: Optional[int]

    @property
    def message(self) -> str:
        parts = []
        if "low_balance" in self.kinds:
            parts.append(f"You have {self.remaining_credits} class credit(s) left.")
        if "expiring" in self.kinds:
            if self.days_to_expiry == 0:
                parts.append("Your pack expires today.")
            else:
                parts.append(f"Your pack expires in {self.days_to_expiry} day(s).")
        parts.append("Ask the front desk to renew it.")
        return " ".join(parts)


class CreditLedger:
    """Reads and mutates credit lots inside the caller's session."""

    def __init__(
        self,
        db_session: Session,
        clock: Optional[StudioClock] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.db = db_session
        self.clock = clock or StudioClock()
        self.notifier = notifier or get_notification_service()

    # ===== Selection =====

    def _consumable(self, client_id: UUID, target_date: date):
        return (
            select(CreditLot)
            .where(
                CreditLot.client_id == client_id,
                CreditLot.status == CreditLotStatus.ACTIVE,
                CreditLot.remaining_credits > 0,
                CreditLot.expiry_date >= target_date,
            )
            .order_by(CreditLot.expiry_date, CreditLot.purchase_date, CreditLot.id)
        )

    def consumable_lots(self, client_id: UUID, target_date: date) -> list[CreditLot]:
        return list(self.db.scalars(self._consumable(client_id, target_date)).all())

    def select_consumable_lot(self, client_id: UUID, target_date: date) -> CreditLot:
        """
        Pick the lot that pays for a class on target_date.

        Raises:
            NoCreditAvailable: no lot qualifies (expired, empty, or expiring
                before target_date)
        """
        lot = self.db.scalars(self._consumable(client_id, target_date).limit(1)).first()
        if lot is None:
            raise NoCreditAvailable(client_id, target_date)
        return lot

    def total_remaining(self, client_id: UUID, on_date: Optional[date] = None) -> int:
        """Credits usable for a class on on_date (today by default)."""
        on_date = on_date or self.clock.today()
        total = self.db.scalar(
            select(func.coalesce(func.sum(CreditLot.remaining_credits), 0)).where(
                CreditLot.client_id == client_id,
                CreditLot.status == CreditLotStatus.ACTIVE,
                CreditLot.remaining_credits > 0,
                CreditLot.expiry_date >= on_date,
            )
        )
        return int(total or 0)

    def lots_for(self, client_id: UUID) -> list[CreditLot]:
        stmt = (
            select(CreditLot)
            .where(CreditLot.client_id == client_id)
            .order_by(CreditLot.purchase_date.desc(), CreditLot.created_at.desc())
        )
        return list(self.db.scalars(stmt).all())

    # ===== Mutation (caller commits) =====

    def lock_lot(self, lot_id: UUID) -> CreditLot:
        """Re-read a lot with a row lock held until the transaction ends."""
        stmt = (
            select(CreditLot)
            .where(CreditLot.id == lot_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.db.scalars(stmt).one()

    def decrement(self, lot: CreditLot) -> CreditLot:
        """
        Take one credit from the lot.

        Raises:
            InsufficientCredit: remaining is already 0
        """
        if lot.remaining_credits <= 0:
            raise InsufficientCredit(lot.id)
        lot.remaining_credits -= 1
        if lot.remaining_credits == 0 and lot.status == CreditLotStatus.ACTIVE:
            lot.status = CreditLotStatus.EXHAUSTED
        return lot

    def restore(self, lot: CreditLot) -> bool:
        """
        Give one credit back, capped at the lot total.

        Expired lots take the credit back and stay expired.
        Returns False when the lot was already full.
        """
        if lot.remaining_credits >= lot.total_credits:
            logger.warning("Restore skipped, lot already full", extra={"lot_id": str(lot.id)})
            return False
        lot.remaining_credits += 1
        if lot.status == CreditLotStatus.EXHAUSTED:
            lot.status = CreditLotStatus.ACTIVE
        return True

    def expire_lots(self, today: Optional[date] = None) -> int:
        """Mark active and exhausted lots past their expiry as expired. Commits."""
        today = today or self.clock.today()
        try:
            result = self.db.execute(
                update(CreditLot)
                .where(
                    CreditLot.status.in_([CreditLotStatus.ACTIVE, CreditLotStatus.EXHAUSTED]),
                    CreditLot.expiry_date < today,
                )
                .values(status=CreditLotStatus.EXPIRED)
                .execution_options(synchronize_session="fetch")
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        expired = result.rowcount or 0
        logger.info("Expired credit lots", extra={"expired_count": expired, "as_of": today.isoformat()})
        return expired

    # ===== Balance & warnings =====

    def balance_summary(self, client_id: UUID) -> CreditBalance:
        today = self.clock.today()
        lots = self.lots_for(client_id)
        usable = [lot for lot in lots if lot.covers(today) and lot.status == CreditLotStatus.ACTIVE]
        usable.sort(key=lambda lot: (lot.expiry_date, lot.purchase_date, str(lot.id)))
        current = usable[0] if usable else None
        return CreditBalance(
            client_id=client_id,
            total_remaining=sum(lot.remaining_credits for lot in usable),
            current_lot=current,
            days_to_expiry=(current.expiry_date - today).days if current else None,
            lots=lots,
        )

    def evaluate_warning(self, client_id: UUID) -> Optional[CreditWarning]:
        """
        Work out whether the client should be warned, without sending anything.

        Only lots that have not expired count; a client with none of them
        gets no warning.
        """
        rules = get_booking_rules()
        today = self.clock.today()
        stmt = select(CreditLot).where(
            CreditLot.client_id == client_id,
            CreditLot.status.in_([CreditLotStatus.ACTIVE, CreditLotStatus.EXHAUSTED]),
            CreditLot.expiry_date >= today,
        )
        lots = list(self.db.scalars(stmt).all())
        if not lots:
            return None

        remaining = sum(lot.remaining_credits for lot in lots)
        with_credits = [lot for lot in lots if lot.remaining_credits > 0]
        days_to_expiry = (
            min(lot.expiry_date for lot in with_credits) - today
        ).days if with_credits else None

        kinds = []
        if remaining <= rules.low_credit_threshold:
            kinds.append("low_balance")
        if days_to_expiry is not None and days_to_expiry <= rules.expiry_warning_days:
            kinds.append("expiring")
        if not kinds:
            return None
        return CreditWarning(
            client_id=client_id,
            kinds=kinds,
            remaining_credits=remaining,
            days_to_expiry=days_to_expiry,
        )

    def check_balance_warning(self, session: SessionContext, client_id: UUID) -> Optional[CreditWarning]:
        """
        Warn the client about a low balance or an expiring pack, once per session.

        Returns:
            The warning when one was sent now, None otherwise
        """
        if not get_feature_flags().credit_warnings_enabled:
            return None
        if self.notifier.already_notified(session.session_id, client_id):
            return None

        warning = self.evaluate_warning(client_id)
        if warning is None:
            return None

        sent = self.notifier.notify_once(
            session.session_id,
            client_id,
            warning.message,
            kinds=warning.kinds,
            remaining_credits=warning.remaining_credits,
            days_to_expiry=warning.days_to_expiry,
        )
        if not sent:
            return None

        metrics = get_metrics_collector()
        for kind in warning.kinds:
            metrics.increment_credit_warnings(kind)
        return warning
