"""
Contract tests for the client-facing API: availability, reservations,
series, cancellation and credits.
"""
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from runafit.api.app import app
from runafit.api.dependencies import get_clock
from runafit.lib.clock import FixedClock
from runafit.lib.jwt import create_access_token
from runafit.models import Shift


NOW = datetime(2026, 3, 6, 8, 0)


@pytest.fixture
def api():
    app.dependency_overrides[get_clock] = lambda: FixedClock(NOW)
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(client, session_id="login-1"):
    token = create_access_token(
        str(client.id),
        client.role.value,
        studio_id=client.studio_id,
        shift=client.shift_preference.value if client.shift_preference else None,
        session_id=session_id,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def member(make_client, make_lot):
    client = make_client(name="Ana Perez", shift_preference=Shift.MORNING)
    make_lot(client, total=8, remaining=3, expires_in_days=10)
    return client


# ===== Service endpoints =====

@pytest.mark.contract
def test_health(api):
    response = api.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.contract
def test_correlation_id_echoed(api):
    response = api.get("/health", headers={"X-Correlation-ID": "trace-123"})

    assert response.headers["X-Correlation-ID"] == "trace-123"


@pytest.mark.contract
def test_metrics_exposed_after_booking(api, member):
    api.post("/reservations", json={"class_date": "2026-03-11", "class_time": "09:00"}, headers=auth(member))

    response = api.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert 'reservations_booked_total{entry="client"} 1' in response.text


# ===== Auth =====

@pytest.mark.contract
def test_missing_token_is_401(api):
    response = api.post("/reservations", json={"class_date": "2026-03-11", "class_time": "09:00"})

    assert response.status_code == 401
    assert "correlation_id" in response.json()


@pytest.mark.contract
def test_garbage_token_is_401(api):
    response = api.get("/credits/me", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


@pytest.mark.contract
def test_client_token_on_admin_route_is_403(api, member):
    response = api.get("/admin/clients", headers=auth(member))

    assert response.status_code == 403


# ===== Availability =====

@pytest.mark.contract
def test_availability_uses_shift_preference(api, member):
    response = api.get("/availability", params={"date": "2026-03-09"}, headers=auth(member))

    assert response.status_code == 200
    data = response.json()
    assert data["class_date"] == "2026-03-09"
    assert [s["class_time"] for s in data["slots"]] == ["07:00:00", "08:00:00", "09:00:00"]
    assert all(s["free_count"] == 6 and s["shift"] == "morning" for s in data["slots"])


@pytest.mark.contract
def test_availability_all_shifts(api, member):
    response = api.get(
        "/availability", params={"date": "2026-03-06", "all_shifts": "true"}, headers=auth(member)
    )

    slots = response.json()["slots"]
    assert len(slots) == 10
    assert slots[0]["started"] is True
    assert slots[2]["started"] is False


@pytest.mark.contract
def test_free_units_shrink_after_booking(api, member):
    api.post("/reservations", json={"class_date": "2026-03-11", "class_time": "09:00"}, headers=auth(member))

    response = api.get("/availability/units", params={"date": "2026-03-11", "time": "09:00"}, headers=auth(member))

    assert response.status_code == 200
    assert len(response.json()["free_units"]) == 5


# ===== Booking =====

@pytest.mark.contract
def test_book_returns_201(api, member):
    response = api.post(
        "/reservations", json={"class_date": "2026-03-11", "class_time": "09:00"}, headers=auth(member)
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "confirmed"
    assert data["remaining_credits"] == 2
    assert 1 <= data["resource_unit"] <= 6
    assert "reservation_id" in data
    assert "credit_lot_id" in data


@pytest.mark.contract
def test_same_day_booking_is_409(api, member):
    headers = auth(member)
    api.post("/reservations", json={"class_date": "2026-03-11", "class_time": "09:00"}, headers=headers)

    response = api.post("/reservations", json={"class_date": "2026-03-11", "class_time": "18:00"}, headers=headers)

    assert response.status_code == 409
    data = response.json()
    assert data["status"] == "rejected"
    assert data["reason"] == "duplicate_day_booking"
    assert data["message"]
    assert "correlation_id" in data


@pytest.mark.contract
def test_no_credit_is_422(api, make_client):
    broke = make_client(name="No Credits")

    response = api.post("/reservations", json={"class_date": "2026-03-11", "class_time": "09:00"}, headers=auth(broke))

    assert response.status_code == 422
    assert response.json()["reason"] == "no_credit_available"


@pytest.mark.contract
def test_unknown_slot_is_422(api, member):
    response = api.post("/reservations", json={"class_date": "2026-03-10", "class_time": "18:00"}, headers=auth(member))

    assert response.status_code == 422
    assert response.json()["reason"] == "slot_not_offered"


@pytest.mark.contract
def test_malformed_body_is_422(api, member):
    response = api.post("/reservations", json={"class_date": "next monday"}, headers=auth(member))

    assert response.status_code == 422
    assert response.json()["error"] == "Validation error"


@pytest.mark.contract
def test_client_cannot_book_for_someone_else(api, member, make_client):
    other = make_client(name="Other")

    response = api.post(
        "/reservations",
        json={"class_date": "2026-03-11", "class_time": "09:00", "client_id": str(other.id)},
        headers=auth(member),
    )

    assert response.status_code == 403


@pytest.mark.contract
def test_admin_books_on_behalf_first_free_bed(api, member, admin):
    response = api.post(
        "/reservations",
        json={"class_date": "2026-03-11", "class_time": "09:00", "client_id": str(member.id)},
        headers=auth(admin),
    )

    assert response.status_code == 201
    assert response.json()["resource_unit"] == 1


@pytest.mark.contract
def test_my_reservations(api, member):
    headers = auth(member)
    api.post("/reservations", json={"class_date": "2026-03-13", "class_time": "08:00"}, headers=headers)
    api.post("/reservations", json={"class_date": "2026-03-11", "class_time": "09:00"}, headers=headers)

    response = api.get("/reservations/me", headers=headers)

    assert response.status_code == 200
    assert [r["class_date"] for r in response.json()] == ["2026-03-11", "2026-03-13"]
    assert all(r["status"] == "confirmed" for r in response.json())


# ===== Series =====

@pytest.mark.contract
def test_series_needs_confirmation_then_books(api, make_client, make_lot):
    regular = make_client(name="Regular")
    make_lot(regular, total=8, remaining=3, expires_in_days=30)
    headers = auth(regular)
    body = {"class_date": "2026-03-09", "class_time": "09:00"}

    asked = api.post("/reservations/series", json=body, headers=headers)

    assert asked.status_code == 200
    assert asked.json()["status"] == "confirmation_required"
    assert asked.json()["requested"] == 4
    assert asked.json()["max_bookable"] == 3
    assert asked.json()["results"] == []

    done = api.post("/reservations/series", json={**body, "accept_partial": True}, headers=headers)

    data = done.json()
    assert data["status"] == "completed"
    assert data["success_count"] == 3
    assert data["failure_count"] == 1
    assert data["results"][-1]["reason"] == "no_credit_available"
    assert len({r["resource_unit"] for r in data["results"] if r["success"]}) == 1


# ===== Cancellation =====

@pytest.mark.contract
def test_cancel_and_cancel_again(api, member):
    headers = auth(member)
    booked = api.post("/reservations", json={"class_date": "2026-03-11", "class_time": "09:00"}, headers=headers)
    reservation_id = booked.json()["reservation_id"]

    first = api.post(f"/reservations/{reservation_id}/cancel", headers=headers)
    second = api.post(f"/reservations/{reservation_id}/cancel", headers=headers)

    assert first.status_code == 200
    assert first.json()["status"] == "cancelled"
    assert first.json()["remaining_credits"] == 3
    assert second.status_code == 200
    assert second.json()["status"] == "already_cancelled"


@pytest.mark.contract
def test_late_cancel_needs_confirm_late(api, member):
    headers = auth(member)
    booked = api.post("/reservations", json={"class_date": "2026-03-06", "class_time": "09:00"}, headers=headers)
    reservation_id = booked.json()["reservation_id"]

    asked = api.post(f"/reservations/{reservation_id}/cancel", headers=headers)
    confirmed = api.post(f"/reservations/{reservation_id}/cancel", json={"confirm_late": True}, headers=headers)

    assert asked.json()["status"] == "confirmation_required"
    assert asked.json()["hours_until_start"] == 1.0
    assert confirmed.json()["status"] == "cancelled"


@pytest.mark.contract
def test_cancel_someone_elses_reservation_is_403(api, member, make_client):
    booked = api.post(
        "/reservations", json={"class_date": "2026-03-11", "class_time": "09:00"}, headers=auth(member)
    )
    stranger = make_client(name="Stranger")

    response = api.post(f"/reservations/{booked.json()['reservation_id']}/cancel", headers=auth(stranger))

    assert response.status_code == 403


@pytest.mark.contract
def test_cancel_unknown_is_404(api, member):
    response = api.post("/reservations/00000000-0000-0000-0000-000000000000/cancel", headers=auth(member))

    assert response.status_code == 404


# ===== Credits =====

@pytest.mark.contract
def test_credits_me_warns_once_per_session(api, make_client, make_lot):
    client = make_client()
    make_lot(client, total=8, remaining=1, expires_in_days=20)

    first = api.get("/credits/me", headers=auth(client, session_id="login-a"))
    again = api.get("/credits/me", headers=auth(client, session_id="login-a"))
    new_login = api.get("/credits/me", headers=auth(client, session_id="login-b"))

    assert first.status_code == 200
    data = first.json()
    assert data["total_remaining"] == 1
    assert data["days_to_expiry"] == 20
    assert len(data["lots"]) == 1
    assert data["warning"]["kinds"] == ["low_balance"]
    assert again.json()["warning"] is None
    assert new_login.json()["warning"] is not None
