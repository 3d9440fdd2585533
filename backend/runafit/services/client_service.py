"""
Client administration: registration, edits and lookups.
"""
import re
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from runafit.lib.clock import StudioClock
from runafit.lib.logging import get_logger
from runafit.lib.request_context import SessionContext
from runafit.models.clients import Client, ClientRole, Shift
from runafit.services.errors import DuplicateRecord, InvalidInput, NotPermitted, RecordNotFound
from runafit.services.notification_service import NotificationService
from runafit.services.outcomes import MaterializationReport
from runafit.services.schedule_materializer import ScheduleInput, ScheduleMaterializer


logger = get_logger(__name__)

DNI_PATTERN = re.compile(r"^\d{7,8}$")

# Values staff type when they do not have the real number at hand
PLACEHOLDER_DNIS = frozenset({"123456", "1234567", "12345678", "11111111", "00000000", "0000000"})

_EDITABLE_FIELDS = ("name", "phone", "dni", "studio_id", "shift_preference", "is_active", "role")


def validate_dni(dni: str) -> str:
    """
    Normalize and validate a national id number.

    Dots and spaces are stripped ("30.123.456" -> "30123456").

    Raises:
        InvalidInput: not 7-8 digits, or a placeholder value
    """
    value = re.sub(r"[.\s-]", "", dni or "")
    if not DNI_PATTERN.match(value):
        raise InvalidInput("DNI must have 7 or 8 digits", {"dni": dni})
    if value in PLACEHOLDER_DNIS or len(set(value)) == 1:
        raise InvalidInput("DNI looks like a placeholder", {"dni": dni})
    return value


class ClientService:
    """Admin-side client management."""

    def __init__(
        self,
        db_session: Session,
        clock: Optional[StudioClock] = None,
        notifier: Optional[NotificationService] = None,
        materializer: Optional[ScheduleMaterializer] = None,
    ):
        self.db = db_session
        self.clock = clock or StudioClock()
        self.materializer = materializer or ScheduleMaterializer(db_session, self.clock, notifier)

    def get_client(self, client_id: UUID) -> Client:
        client = self.db.get(Client, client_id)
        if client is None:
            raise RecordNotFound("Client", client_id)
        return client

    def find_by_dni(self, dni: str) -> Optional[Client]:
        return self.db.scalar(select(Client).where(Client.dni == dni))

    def list_clients(
        self,
        studio_id: Optional[int] = None,
        active_only: bool = True,
        search: Optional[str] = None,
    ) -> list[Client]:
        stmt = select(Client).where(Client.role == ClientRole.CLIENT)
        if studio_id is not None:
            stmt = stmt.where(Client.studio_id == studio_id)
        if active_only:
            stmt = stmt.where(Client.is_active == True)  # noqa: E712
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(Client.name.ilike(pattern), Client.dni.like(pattern)))
        return list(self.db.scalars(stmt.order_by(Client.name)).all())

    def _commit_client(self, client: Client) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise DuplicateRecord("A client with this DNI already exists", {"dni": client.dni}) from exc

    def register_client(
        self,
        session: SessionContext,
        dni: str,
        name: str,
        studio_id: int,
        phone: Optional[str] = None,
        shift_preference: Optional[Shift] = None,
        fixed_schedule: Optional[Iterable[ScheduleInput]] = None,
    ) -> tuple[Client, Optional[MaterializationReport]]:
        """
        Register a new client, optionally with a fixed weekly schedule.

        Returns:
            The client and, when a schedule was given, its materialization report

        Raises:
            NotPermitted: session is not an administrator
            InvalidInput: bad DNI or empty name
            DuplicateRecord: DNI already registered
        """
        if not session.is_admin:
            raise NotPermitted("Only administrators can register clients")
        dni = validate_dni(dni)
        if not name or not name.strip():
            raise InvalidInput("Name is required", {"name": name})
        if self.find_by_dni(dni) is not None:
            raise DuplicateRecord("A client with this DNI already exists", {"dni": dni})

        client = Client(
            dni=dni,
            name=name.strip(),
            phone=phone,
            studio_id=studio_id,
            shift_preference=shift_preference,
            role=ClientRole.CLIENT,
            is_active=True,
        )
        self.db.add(client)
        self._commit_client(client)
        logger.info("Client registered", extra={"client_id": str(client.id), "studio_id": studio_id})

        report = None
        if fixed_schedule is not None:
            report = self.materializer.set_fixed_schedule(session, client.id, fixed_schedule)
        return client, report

    def update_client(
        self,
        session: SessionContext,
        client_id: UUID,
        fixed_schedule: Optional[Iterable[ScheduleInput]] = None,
        **changes,
    ) -> tuple[Client, Optional[MaterializationReport]]:
        """Apply field changes and, when given, replace the fixed schedule."""
        if not session.is_admin:
            raise NotPermitted("Only administrators can edit clients")
        client = self.get_client(client_id)

        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise InvalidInput("Unknown client fields", {field: "not editable" for field in sorted(unknown)})

        if changes.get("dni") is not None:
            changes["dni"] = validate_dni(changes["dni"])
            existing = self.find_by_dni(changes["dni"])
            if existing is not None and existing.id != client.id:
                raise DuplicateRecord("A client with this DNI already exists", {"dni": changes["dni"]})

        for field, value in changes.items():
            if value is not None:
                setattr(client, field, value)
        self._commit_client(client)
        logger.info("Client updated", extra={"client_id": str(client_id), "fields": sorted(changes)})

        report = None
        if fixed_schedule is not None:
            report = self.materializer.set_fixed_schedule(session, client_id, fixed_schedule)
        return client, report
