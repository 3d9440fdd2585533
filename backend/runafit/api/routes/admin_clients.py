"""
Admin Clients Routes - client registration, edits and fixed schedules.

Provides:
- GET /admin/clients: list clients (studio, search, active filters)
- POST /admin/clients: register a client, optionally with a fixed schedule
- GET /admin/clients/{id}: client detail
- PATCH /admin/clients/{id}: edit a client, optionally replacing the schedule
- PUT /admin/clients/{id}/fixed-schedule: replace and materialize the schedule
- GET /admin/clients/{id}/fixed-schedule: current schedule
"""
from datetime import time
from typing import List, Optional, Union
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from runafit.api.dependencies import get_clock, get_db, get_notifier, require_admin
from runafit.api.routes.reservations import SeriesResponse, series_response
from runafit.lib.clock import StudioClock
from runafit.lib.logging import get_logger
from runafit.lib.request_context import SessionContext
from runafit.models.clients import ClientRole, Shift
from runafit.services.client_service import ClientService
from runafit.services.notification_service import NotificationService
from runafit.services.outcomes import MaterializationReport


logger = get_logger(__name__)
router = APIRouter(prefix="/admin/clients", tags=["admin", "clients"])


# Request/Response Models
class ScheduleEntryIn(BaseModel):
    weekday: Union[int, str] = Field(..., description="0-6 (Monday=0) or a weekday name")
    class_time: time


class ScheduleEntryOut(BaseModel):
    weekday: int
    class_time: time

    model_config = {"from_attributes": True}


class ClientCreate(BaseModel):
    dni: str = Field(..., description="National id, 7-8 digits")
    name: str = Field(..., min_length=1, max_length=255)
    studio_id: int
    phone: Optional[str] = None
    shift_preference: Optional[Shift] = None
    fixed_schedule: Optional[List[ScheduleEntryIn]] = None


class ClientUpdate(BaseModel):
    dni: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    studio_id: Optional[int] = None
    phone: Optional[str] = None
    shift_preference: Optional[Shift] = None
    is_active: Optional[bool] = None
    fixed_schedule: Optional[List[ScheduleEntryIn]] = None


class ClientOut(BaseModel):
    id: UUID
    dni: str
    name: str
    phone: Optional[str]
    role: ClientRole
    studio_id: int
    shift_preference: Optional[Shift]
    is_active: bool

    model_config = {"from_attributes": True}


class MaterializationOut(BaseModel):
    entries: List[ScheduleEntryOut]
    booked_count: int
    failed_count: int
    series: List[SeriesResponse]


class ClientWithScheduleOut(BaseModel):
    client: ClientOut
    materialization: Optional[MaterializationOut] = None


class FixedScheduleRequest(BaseModel):
    entries: List[ScheduleEntryIn]


def _entries(items: Optional[List[ScheduleEntryIn]]):
    if items is None:
        return None
    return [(item.weekday, item.class_time) for item in items]


def materialization_out(report: Optional[MaterializationReport]) -> Optional[MaterializationOut]:
    if report is None:
        return None
    return MaterializationOut(
        entries=[ScheduleEntryOut(weekday=w, class_time=t) for w, t in report.entries],
        booked_count=report.booked_count,
        failed_count=report.failed_count,
        series=[series_response(s) for s in report.series],
    )


def get_client_service(
    clock: StudioClock = Depends(get_clock),
    notifier: NotificationService = Depends(get_notifier),
    db: Session = Depends(get_db),
) -> ClientService:
    return ClientService(db, clock, notifier)


# Routes
@router.get("", response_model=List[ClientOut])
def list_clients(
    studio_id: Optional[int] = Query(None, description="Only clients of this studio"),
    search: Optional[str] = Query(None, description="Match on name or DNI"),
    active_only: bool = Query(True),
    admin: SessionContext = Depends(require_admin),
    service: ClientService = Depends(get_client_service),
) -> List[ClientOut]:
    clients = service.list_clients(studio_id=studio_id, active_only=active_only, search=search)
    return [ClientOut.model_validate(c) for c in clients]


@router.post("", response_model=ClientWithScheduleOut, status_code=status.HTTP_201_CREATED)
def register_client(
    request: ClientCreate,
    admin: SessionContext = Depends(require_admin),
    service: ClientService = Depends(get_client_service),
) -> ClientWithScheduleOut:
    """
    Register a client.

    A fixed schedule in the payload is saved and booked for the rest of
    the month right away.
    """
    client, report = service.register_client(
        admin,
        dni=request.dni,
        name=request.name,
        studio_id=request.studio_id,
        phone=request.phone,
        shift_preference=request.shift_preference,
        fixed_schedule=_entries(request.fixed_schedule),
    )
    return ClientWithScheduleOut(client=ClientOut.model_validate(client), materialization=materialization_out(report))


@router.get("/{client_id}", response_model=ClientOut)
def get_client(
    client_id: UUID,
    admin: SessionContext = Depends(require_admin),
    service: ClientService = Depends(get_client_service),
) -> ClientOut:
    return ClientOut.model_validate(service.get_client(client_id))


@router.patch("/{client_id}", response_model=ClientWithScheduleOut)
def update_client(
    client_id: UUID,
    request: ClientUpdate,
    admin: SessionContext = Depends(require_admin),
    service: ClientService = Depends(get_client_service),
) -> ClientWithScheduleOut:
    changes = request.model_dump(exclude_unset=True, exclude={"fixed_schedule"})
    client, report = service.update_client(
        admin,
        client_id,
        fixed_schedule=_entries(request.fixed_schedule),
        **changes,
    )
    return ClientWithScheduleOut(client=ClientOut.model_validate(client), materialization=materialization_out(report))


@router.put("/{client_id}/fixed-schedule", response_model=MaterializationOut)
def set_fixed_schedule(
    client_id: UUID,
    request: FixedScheduleRequest,
    admin: SessionContext = Depends(require_admin),
    service: ClientService = Depends(get_client_service),
) -> MaterializationOut:
    """
    Replace the client's fixed schedule and pre-book it until the end of the month.

    Dates that cannot be booked (no credit, full class, another class that
    day) are reported per date and do not fail the request.
    """
    logger.info(f"PUT /admin/clients/{client_id}/fixed-schedule ({len(request.entries)} entries)")
    report = service.materializer.set_fixed_schedule(admin, client_id, _entries(request.entries))
    return materialization_out(report)


@router.get("/{client_id}/fixed-schedule", response_model=List[ScheduleEntryOut])
def get_fixed_schedule(
    client_id: UUID,
    admin: SessionContext = Depends(require_admin),
    service: ClientService = Depends(get_client_service),
) -> List[ScheduleEntryOut]:
    service.get_client(client_id)
    return [ScheduleEntryOut.model_validate(e) for e in service.materializer.get_fixed_schedule(client_id)]
