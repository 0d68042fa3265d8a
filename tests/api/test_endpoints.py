from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import urlparse

import pytest
import pytest_asyncio
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from pymongo.errors import ServerSelectionTimeoutError

from vouchervault.api.deps import get_db, get_ledger_service, get_membership_service
from vouchervault.core.auth import get_current_user
from vouchervault.core.config import settings
from vouchervault.core.errors import (
    Forbidden,
    InsufficientBalance,
    InvalidAmount,
    InviteAlreadyResolved,
    VoucherNotFound,
)
from vouchervault.main import app
from vouchervault.models.family import Family
from vouchervault.services.storage_service import ImageStorage


@pytest.fixture
def ledger():
    service = MagicMock()
    for method in ("list_vouchers", "create_voucher", "get_voucher", "edit_voucher",
                   "delete_voucher", "redeem", "attach_image"):
        setattr(service, method, AsyncMock())
    return service


@pytest.fixture
def membership():
    service = MagicMock()
    for method in ("list_families", "create_family", "get_family", "delete_family",
                   "remove_member", "leave_family", "create_invite", "sent_invites",
                   "pending_invites_for", "accept_invite", "reject_invite", "withdraw_invite"):
        setattr(service, method, AsyncMock())
    return service


@pytest_asyncio.fixture
async def client(mock_db, alice, ledger, membership):
    app.dependency_overrides[get_current_user] = lambda: alice
    app.dependency_overrides[get_db] = lambda: mock_db
    app.dependency_overrides[get_ledger_service] = lambda: ledger
    app.dependency_overrides[get_membership_service] = lambda: membership
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_redeem(client, ledger, alice, make_voucher):
    voucher = make_voucher(alice.id, remaining_amount=3000)
    ledger.redeem.return_value = voucher

    response = await client.post(f"/api/v1/vouchers/{voucher.id}/redeem", json={"amount": 20})

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == voucher.id
    assert data["remaining_amount"] == 30.0
    ledger.redeem.assert_awaited_once_with(voucher.id, alice, Decimal("20"), None)


@pytest.mark.asyncio
async def test_voucher_amounts_are_returned_in_currency_units(client, ledger, alice, make_voucher):
    ledger.get_voucher.return_value = make_voucher(alice.id, remaining_amount=1999)

    response = await client.get(f"/api/v1/vouchers/{ObjectId()}")

    assert response.status_code == 200
    data = response.json()
    assert data["initial_amount"] == 50.0
    assert data["remaining_amount"] == 19.99


@pytest.mark.asyncio
async def test_edit_rejects_image_urls(client, ledger):
    response = await client.patch(f"/api/v1/vouchers/{ObjectId()}", json={
        "image_url": "http://elsewhere.example/voucher.jpg"
    })

    assert response.status_code == 422
    ledger.edit_voucher.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("error, status, code", [
    (InvalidAmount(), 400, "invalid_amount"),
    (InsufficientBalance(), 409, "insufficient_balance"),
    (Forbidden(), 403, "not_owner"),
    (VoucherNotFound(), 404, "voucher_not_found"),
])
async def test_errors_map_to_status(client, ledger, error, status, code):
    ledger.redeem.side_effect = error

    response = await client.post(f"/api/v1/vouchers/{ObjectId()}/redeem", json={"amount": 1})

    assert response.status_code == status
    assert response.json() == {"detail": error.message, "code": code}


@pytest.mark.asyncio
async def test_store_outage_is_503(client, ledger):
    ledger.get_voucher.side_effect = ServerSelectionTimeoutError("no primary")

    response = await client.get(f"/api/v1/vouchers/{ObjectId()}")

    assert response.status_code == 503
    assert response.json()["code"] == "store_unavailable"


@pytest.mark.asyncio
async def test_create_voucher_rejects_unknown_fields(client, ledger):
    response = await client.post("/api/v1/vouchers/", json={
        "title": "Gift", "store": "Shop", "kind": "VALUE", "initial_amount": 10,
        "remaining_amount": 5
    })

    assert response.status_code == 422
    ledger.create_voucher.assert_not_called()


@pytest.mark.asyncio
async def test_delete_voucher(client, ledger, alice):
    voucher_id = str(ObjectId())

    response = await client.delete(f"/api/v1/vouchers/{voucher_id}")

    assert response.status_code == 204
    ledger.delete_voucher.assert_awaited_once_with(voucher_id, alice)


@pytest.mark.asyncio
async def test_accept_invite_uses_caller_identity(client, membership, alice):
    family = Family(
        id=str(ObjectId()), name="Home", owner_id=str(ObjectId()), owner_email="carol@example.com"
    )
    membership.accept_invite.return_value = family
    invite_id = str(ObjectId())

    response = await client.post(f"/api/v1/invites/{invite_id}/accept")

    assert response.status_code == 200
    assert response.json()["name"] == "Home"
    membership.accept_invite.assert_awaited_once_with(
        invite_id, alice.email, alice.name, user_id=alice.id
    )


@pytest.mark.asyncio
async def test_accept_answered_invite(client, membership):
    membership.accept_invite.side_effect = InviteAlreadyResolved()

    response = await client.post(f"/api/v1/invites/{ObjectId()}/accept")

    assert response.status_code == 409
    assert response.json()["detail"] == "Invite already answered"


@pytest.mark.asyncio
async def test_invite_requires_valid_email(client, membership):
    response = await client.post(f"/api/v1/families/{ObjectId()}/invites", json={"email": "nope"})

    assert response.status_code == 422
    membership.create_invite.assert_not_called()


@pytest.mark.asyncio
async def test_mark_all_notifications_read(client, mock_db, alice):
    mock_db["notifications"].update_many.return_value = MagicMock(modified_count=3)

    response = await client.post("/api/v1/notifications/read-all")

    assert response.status_code == 200
    assert response.json() == {"updated": 3}
    query = mock_db["notifications"].update_many.call_args[0][0]
    assert query == {"user_id": alice.id, "read": False}


@pytest.mark.asyncio
async def test_requests_without_token_are_rejected(mock_db):
    app.dependency_overrides[get_db] = lambda: mock_db
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.get("/api/v1/vouchers/")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_uploaded_image_is_served(client, ledger, alice, make_voucher):
    storage = ImageStorage(settings.UPLOAD_DIR, settings.PUBLIC_UPLOAD_URL, settings.MAX_FILE_SIZE)
    voucher = make_voucher(alice.id)

    async def _attach(voucher_id, user, data, content_type, slot=1):
        url = await storage.upload_image(data, content_type)
        return voucher.model_copy(update={"image_url": url})

    ledger.attach_image.side_effect = _attach
    image = b"\x89PNG\r\n\x1a\nvoucher"

    response = await client.post(
        f"/api/v1/vouchers/{voucher.id}/images",
        files={"file": ("front.png", image, "image/png")}
    )
    assert response.status_code == 200
    url = response.json()["image_url"]

    try:
        fetched = await client.get(urlparse(url).path)
        assert fetched.status_code == 200
        assert fetched.content == image
    finally:
        await storage.delete_image(url)
