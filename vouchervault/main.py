import logging
from contextlib import asynccontextmanager
from functools import partial
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.errors import ConnectionFailure

from vouchervault.api.v1.api import api_router
from vouchervault.core.config import settings
from vouchervault.core.errors import ErrorKind, StoreUnavailable, VaultError
from vouchervault.core.logging_config import setup_logging
from vouchervault.db.mongo import MongoDatabase
from vouchervault.services.account_service import AccountService
from vouchervault.services.ledger_service import LedgerService
from vouchervault.services.membership_service import MembershipService
from vouchervault.services.notification_service import NotificationService
from vouchervault.services.reminder_service import ReminderService
from vouchervault.services.storage_service import ImageStorage
from vouchervault.utils.background import PeriodicWorker, TaskRunner

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.AUTHORIZATION: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.TRANSIENT: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)

    mongo = MongoDatabase.from_settings(settings)
    db = await mongo.connect()
    runner = TaskRunner()
    notifications = NotificationService(db, settings)
    reminders = ReminderService(db, settings.REMINDER_DAYS)
    storage = ImageStorage(settings.UPLOAD_DIR, settings.PUBLIC_UPLOAD_URL, settings.MAX_FILE_SIZE)

    app.state.mongo = mongo
    app.state.runner = runner
    app.state.ledger = LedgerService(
        db, reminders, storage, runner, default_currency=settings.DEFAULT_CURRENCY
    )
    app.state.membership = MembershipService(db, notifications, runner)
    app.state.accounts = AccountService(db, app.state.ledger, app.state.membership)

    reminder_worker = PeriodicWorker(
        "reminder-delivery",
        partial(reminders.deliver_due, notifications),
        settings.REMINDER_POLL_SECONDS
    )
    reminder_worker.start()
    app.state.reminder_worker = reminder_worker
    logger.info("%s started (%s)", settings.PROJECT_NAME, settings.ENVIRONMENT)

    yield

    await reminder_worker.stop()
    await runner.drain()
    await mongo.close()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION,
    description=settings.DESCRIPTION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(VaultError)
async def vault_error_handler(request: Request, exc: VaultError):
    if exc.kind == ErrorKind.TRANSIENT:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=STATUS_BY_KIND[exc.kind], content=exc.to_dict())


@app.exception_handler(ConnectionFailure)
async def store_unavailable_handler(request: Request, exc: ConnectionFailure):
    logger.error("MongoDB unavailable during %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=503, content=StoreUnavailable().to_dict())


# Public image URLs point at this mount
Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")


@app.get("/")
async def root():
    return {"message": f"Welcome to {settings.PROJECT_NAME}"}


@app.get("/health")
async def health():
    return {"status": "ok"}


app.include_router(api_router, prefix=settings.API_V1_STR)
