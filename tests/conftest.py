import os
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from vouchervault.db.mongo import create_indexes
from vouchervault.models.user import UserResponse
from vouchervault.models.voucher import CodePoolItem, Voucher

# Integration tests need a replica set (transactions)
TEST_MONGODB_URI = os.getenv("MONGODB_URI")
TEST_MONGODB_DB = "vouchervault_test"

COLLECTIONS = ("users", "vouchers", "families", "family_invites", "notifications", "reminders")


def make_collection():
    """Collection mock: write/read methods are AsyncMocks, find() returns a cursor."""
    collection = MagicMock()
    for method in (
        "insert_one", "insert_many", "find_one", "find_one_and_update",
        "update_one", "update_many", "delete_one", "delete_many", "create_index"
    ):
        setattr(collection, method, AsyncMock())
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.to_list = AsyncMock(return_value=[])
    collection.find.return_value = cursor
    return collection


@pytest.fixture
def mock_db():
    """Database mock with one distinct collection mock per name."""
    collections = {name: make_collection() for name in COLLECTIONS}
    db = MagicMock()
    db.__getitem__.side_effect = lambda name: collections[name]
    db.collections = collections
    return db


@pytest.fixture
def alice():
    return UserResponse(id=str(ObjectId()), name="Alice", email="alice@example.com")


@pytest.fixture
def bob():
    return UserResponse(id=str(ObjectId()), name="Bob", email="bob@example.com")


@pytest.fixture
def make_voucher():
    def _make(owner_id: str, **overrides) -> Voucher:
        data = {
            "id": str(ObjectId()),
            "title": "Bookstore gift card",
            "store": "Bookstore",
            "kind": "VALUE",
            "initial_amount": 5000,  # cents
            "remaining_amount": 5000,
            "currency": "EUR",
            "owner_id": owner_id,
            "history": [],
            "created_at": datetime.now(timezone.utc),
            "updated_at": datetime.now(timezone.utc),
        }
        data.update(overrides)
        return Voucher(**data)
    return _make


@pytest.fixture
def make_pool_voucher(make_voucher):
    def _make(owner_id: str, codes, used=()) -> Voucher:
        pool = [CodePoolItem(code=code, used=code in used) for code in codes]
        remaining = len(codes) - len(used)
        return make_voucher(
            owner_id,
            kind="QUANTITY",
            currency=None,
            initial_amount=len(codes),
            remaining_amount=remaining,
            code_pool=pool
        )
    return _make


@pytest_asyncio.fixture
async def test_db() -> AsyncIOMotorDatabase:
    """Real MongoDB database, dropped before and after each test."""
    if not TEST_MONGODB_URI:
        pytest.skip("MONGODB_URI not set")
    client = AsyncIOMotorClient(TEST_MONGODB_URI, tz_aware=True)
    db = client[TEST_MONGODB_DB]

    await client.drop_database(TEST_MONGODB_DB)
    await create_indexes(db)

    yield db

    await client.drop_database(TEST_MONGODB_DB)
    client.close()
