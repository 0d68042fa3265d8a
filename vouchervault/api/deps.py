"""Request-scoped access to the objects built by the application lifespan."""

from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from vouchervault.services.account_service import AccountService
from vouchervault.services.ledger_service import LedgerService
from vouchervault.services.membership_service import MembershipService


def get_db(request: Request) -> AsyncIOMotorDatabase:
    return request.app.state.mongo.db


def get_ledger_service(request: Request) -> LedgerService:
    return request.app.state.ledger


def get_membership_service(request: Request) -> MembershipService:
    return request.app.state.membership


def get_account_service(request: Request) -> AccountService:
    return request.app.state.accounts
