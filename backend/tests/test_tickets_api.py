"""
Tests for the ticket HTTP endpoints: purchase, codes, door operations and
staff administration.
"""

import pytest
from httpx import AsyncClient

from ticketgate import main
from ticketgate.core.config import Settings, get_settings
from ticketgate.main import refuse_default_secrets
from ticketgate.models.enums import TicketTier
from ticketgate.services import ticket_service
from tests.conftest import make_allocation


def purchase_body(event_id: int, tier: str = "early_bird", order_id: int = 1001) -> dict:
    return {
        "event_id": event_id,
        "tier": tier,
        "order_id": order_id,
        "attendee_name": "Amina Tazi",
        "attendee_email": "amina@example.com",
        "attendee_phone": "+212600000000",
    }


async def buy(client: AsyncClient, headers: dict, event_id: int, **kwargs) -> dict:
    response = await client.post("/api/v1/tickets/purchase", json=purchase_body(event_id, **kwargs), headers=headers)
    assert response.status_code == 201
    return response.json()


async def stored_code(db_session, ticket_id: str) -> str:
    ticket = await ticket_service.get_ticket(db_session, ticket_id)
    return ticket.payload


# ---------------------------------------------------------------------------
# Purchase and listing
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_tiers(client: AsyncClient, db_session, test_event, early_bird):
    await make_allocation(db_session, test_event, TicketTier.VIP, max_tickets=10, price="400.00", sold=4)

    response = await client.get(f"/api/v1/events/{test_event.id}/tiers")

    assert response.status_code == 200
    data = response.json()
    assert [t["tier"] for t in data] == ["early_bird", "vip"]
    assert data[0]["remaining"] == 50
    assert data[1]["remaining"] == 6


@pytest.mark.asyncio
async def test_purchase_ticket(client: AsyncClient, auth_headers, test_event, early_bird):
    data = await buy(client, auth_headers, test_event.id)

    assert data["ticket_id"].startswith("TKT-")
    assert data["status"] == "active"
    assert data["tier"] == "early_bird"
    assert data["user_id"] == 42
    assert "payload" not in data

    tiers = (await client.get(f"/api/v1/events/{test_event.id}/tiers")).json()
    assert tiers[0]["remaining"] == 49


@pytest.mark.asyncio
async def test_purchase_unauthenticated(client: AsyncClient, test_event, early_bird):
    response = await client.post("/api/v1/tickets/purchase", json=purchase_body(test_event.id))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_purchase_sold_out(client: AsyncClient, auth_headers, test_event, vip_single):
    event_id = test_event.id
    await buy(client, auth_headers, event_id, tier="vip")

    response = await client.post(
        "/api/v1/tickets/purchase",
        json=purchase_body(event_id, tier="vip", order_id=1002),
        headers=auth_headers,
    )

    assert response.status_code == 409
    assert response.json()["detail"] == "Sold out"


@pytest.mark.asyncio
async def test_purchase_unallocated_tier(client: AsyncClient, auth_headers, test_event, early_bird):
    response = await client.post(
        "/api/v1/tickets/purchase",
        json=purchase_body(test_event.id, tier="last_phase"),
        headers=auth_headers,
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_purchase_unknown_tier_value(client: AsyncClient, auth_headers, test_event):
    response = await client.post(
        "/api/v1/tickets/purchase",
        json=purchase_body(test_event.id, tier="backstage"),
        headers=auth_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_my_tickets(client: AsyncClient, auth_headers, other_user_headers, test_event, early_bird):
    mine = await buy(client, auth_headers, test_event.id)
    await buy(client, other_user_headers, test_event.id, order_id=1002)

    response = await client.get("/api/v1/tickets/mine", headers=auth_headers)

    assert response.status_code == 200
    assert [t["ticket_id"] for t in response.json()] == [mine["ticket_id"]]


# ---------------------------------------------------------------------------
# Codes
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_owner_gets_png_code(client: AsyncClient, auth_headers, test_event, early_bird):
    ticket = await buy(client, auth_headers, test_event.id)

    response = await client.get(f"/api/v1/tickets/{ticket['ticket_id']}/code", headers=auth_headers)

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.headers["cache-control"] == "no-store"
    assert response.content.startswith(b"\x89PNG")


@pytest.mark.asyncio
async def test_owner_gets_data_url(client: AsyncClient, auth_headers, test_event, early_bird):
    ticket = await buy(client, auth_headers, test_event.id)

    response = await client.get(
        f"/api/v1/tickets/{ticket['ticket_id']}/code", params={"format": "data_url"}, headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["data_url"].startswith("data:image/png;base64,")


@pytest.mark.asyncio
async def test_code_hidden_from_other_users(client: AsyncClient, auth_headers, other_user_headers, test_event, early_bird):
    ticket = await buy(client, auth_headers, test_event.id)

    response = await client.get(f"/api/v1/tickets/{ticket['ticket_id']}/code", headers=other_user_headers)
    missing = await client.get("/api/v1/tickets/TKT-NOPE/code", headers=auth_headers)

    assert response.status_code == 404
    assert missing.status_code == 404


# ---------------------------------------------------------------------------
# Door operations
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_validate_requires_staff(client: AsyncClient, auth_headers):
    body = {"code": "ABC:123", "device_id": "gate-1"}

    anonymous = await client.post("/api/v1/tickets/validate", json=body)
    attendee = await client.post("/api/v1/tickets/validate", json=body, headers=auth_headers)

    assert anonymous.status_code == 401
    assert attendee.status_code == 403


@pytest.mark.asyncio
async def test_validate_use_and_rescan(
    client: AsyncClient, db_session, auth_headers, staff_headers, second_staff_headers, test_event, early_bird,
):
    ticket = await buy(client, auth_headers, test_event.id)
    ticket_id = ticket["ticket_id"]
    code = await stored_code(db_session, ticket_id)

    first = await client.post(
        "/api/v1/tickets/validate", json={"code": code, "device_id": "gate-1"}, headers=staff_headers,
    )
    assert first.status_code == 200
    assert first.json()["is_valid"] is True
    assert first.json()["ticket"]["ticket_id"] == ticket_id

    used = await client.post(f"/api/v1/tickets/{ticket_id}/use", json={"device_id": "gate-1"}, headers=staff_headers)
    assert used.status_code == 200
    assert used.json()["status"] == "used"
    assert used.json()["used_by"] == "door-staff-1"

    again = await client.post(f"/api/v1/tickets/{ticket_id}/use", headers=second_staff_headers)
    assert again.status_code == 409

    rescan = await client.post(
        "/api/v1/tickets/validate",
        json={"code": code, "device_id": "gate-2", "channel": "manual"},
        headers=second_staff_headers,
    )
    assert rescan.status_code == 200
    assert rescan.json()["is_valid"] is False
    assert rescan.json()["status"] == "already_used"
    assert rescan.json()["message"].endswith("by door-staff-1")

    history = await client.get(f"/api/v1/admin/tickets/{ticket_id}/validations", headers=staff_headers)
    assert history.status_code == 200
    assert [(h["validator_id"], h["channel"], h["outcome"]) for h in history.json()] == [
        ("door-staff-1", "scan", "valid"),
        ("door-staff-2", "manual", "already_used"),
    ]


@pytest.mark.asyncio
async def test_staff_identity_comes_from_token(client: AsyncClient, db_session, auth_headers, staff_headers, test_event, early_bird):
    """A name claimed in the request body never reaches the audit log or used_by."""
    ticket = await buy(client, auth_headers, test_event.id)
    ticket_id = ticket["ticket_id"]
    code = await stored_code(db_session, ticket_id)

    await client.post(
        "/api/v1/tickets/validate",
        json={"code": code, "validator_id": "gate-9", "device_id": "gate-9"},
        headers=staff_headers,
    )
    used = await client.post(
        f"/api/v1/tickets/{ticket_id}/use", json={"validator_id": "someone-else"}, headers=staff_headers,
    )

    assert used.status_code == 200
    assert used.json()["used_by"] == "door-staff-1"
    history = await client.get(f"/api/v1/admin/tickets/{ticket_id}/validations", headers=staff_headers)
    assert [h["validator_id"] for h in history.json()] == ["door-staff-1"]


@pytest.mark.asyncio
async def test_validate_garbage_is_still_200(client: AsyncClient, staff_headers):
    response = await client.post(
        "/api/v1/tickets/validate", json={"code": "not a ticket", "device_id": "gate-1"}, headers=staff_headers,
    )

    assert response.status_code == 200
    assert response.json()["is_valid"] is False
    assert response.json()["status"] == "invalid"
    assert response.json()["ticket"] is None


@pytest.mark.asyncio
async def test_cancel_then_use(client: AsyncClient, auth_headers, staff_headers, test_event, early_bird):
    ticket = await buy(client, auth_headers, test_event.id)
    ticket_id = ticket["ticket_id"]

    cancelled = await client.post(f"/api/v1/tickets/{ticket_id}/cancel", headers=staff_headers)
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"

    used = await client.post(f"/api/v1/tickets/{ticket_id}/use", json={"device_id": "gate-1"}, headers=staff_headers)
    assert used.status_code == 409
    assert used.json()["detail"] == "Ticket is cancelled, not active"


@pytest.mark.asyncio
async def test_use_unknown_ticket(client: AsyncClient, staff_headers):
    response = await client.post("/api/v1/tickets/TKT-NOPE/use", json={"device_id": "gate-1"}, headers=staff_headers)
    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_admin_requires_staff(client: AsyncClient, auth_headers, test_event):
    response = await client.get(f"/api/v1/admin/events/{test_event.id}/tickets", headers=auth_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_lists_event_tickets(client: AsyncClient, auth_headers, staff_headers, test_event, early_bird):
    await buy(client, auth_headers, test_event.id)
    await buy(client, auth_headers, test_event.id, order_id=1002)

    response = await client.get(f"/api/v1/admin/events/{test_event.id}/tickets", headers=staff_headers)

    assert response.status_code == 200
    assert len(response.json()) == 2


@pytest.mark.asyncio
async def test_admin_allocation_lifecycle(client: AsyncClient, staff_headers, test_event):
    event_id = test_event.id
    body = {"tier": "vip", "max_tickets": 20, "price": "250.00"}

    created = await client.post(f"/api/v1/admin/events/{event_id}/allocations", json=body, headers=staff_headers)
    assert created.status_code == 201
    assert created.json()["remaining"] == 20

    duplicate = await client.post(f"/api/v1/admin/events/{event_id}/allocations", json=body, headers=staff_headers)
    assert duplicate.status_code == 409

    updated = await client.patch(
        f"/api/v1/admin/events/{event_id}/allocations/vip", json={"max_tickets": 30}, headers=staff_headers,
    )
    assert updated.status_code == 200
    assert updated.json()["max_tickets"] == 30


@pytest.mark.asyncio
async def test_admin_allocation_for_missing_event(client: AsyncClient, staff_headers):
    response = await client.post(
        "/api/v1/admin/events/9999/allocations",
        json={"tier": "vip", "max_tickets": 20, "price": "250.00"},
        headers=staff_headers,
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_admin_cannot_shrink_below_sold(client: AsyncClient, db_session, staff_headers, test_event):
    event_id = test_event.id
    await make_allocation(db_session, test_event, TicketTier.VIP, max_tickets=10, sold=8)

    response = await client.patch(
        f"/api/v1/admin/events/{event_id}/allocations/vip", json={"max_tickets": 5}, headers=staff_headers,
    )
    missing = await client.patch(
        f"/api/v1/admin/events/{event_id}/allocations/last_phase", json={"max_tickets": 5}, headers=staff_headers,
    )

    assert response.status_code == 409
    assert missing.status_code == 404


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["cache"] == {"status": "disabled"}


@pytest.mark.asyncio
async def test_metrics(client: AsyncClient):
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "ticket_issuance_total" in response.text


def production_settings(**overrides):
    values = {"ENVIRONMENT": "production", "TICKET_ENCRYPTION_KEY": "k-prod-2026", "SECRET_KEY": "s-prod-2026"}
    values.update(overrides)
    return get_settings().model_copy(update=values)


def test_production_refuses_default_ticket_key():
    default_key = Settings.model_fields["TICKET_ENCRYPTION_KEY"].default

    with pytest.raises(RuntimeError, match="TICKET_ENCRYPTION_KEY"):
        refuse_default_secrets(production_settings(TICKET_ENCRYPTION_KEY=default_key))
    refuse_default_secrets(production_settings())
    # outside production the defaults are tolerated
    refuse_default_secrets(production_settings(ENVIRONMENT="development", TICKET_ENCRYPTION_KEY=default_key))


@pytest.mark.asyncio
async def test_startup_aborts_with_default_ticket_key(monkeypatch):
    default_key = Settings.model_fields["TICKET_ENCRYPTION_KEY"].default
    monkeypatch.setattr(main, "settings", production_settings(TICKET_ENCRYPTION_KEY=default_key))

    with pytest.raises(RuntimeError):
        async with main.lifespan(main.app):
            pass
