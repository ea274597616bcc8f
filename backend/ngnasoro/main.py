import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ngnasoro.core.config import settings
from ngnasoro.core.logging import RequestContextMiddleware, get_request_id, setup_logging
from ngnasoro.database_init import create_tables, ensure_database
from ngnasoro.routes import (
    admin,
    audit,
    auth,
    client_accounts,
    credit_manager,
    mobile_money,
    notifications,
    reports,
    sfds,
    subsidies,
    transactions,
)

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger("ngnasoro")


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_database()
    create_tables()
    yield


app = FastAPI(title="N'GNA SÔRÔ! API", lifespan=lifespan)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ORIGINS != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestContextMiddleware)


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "An unexpected error occurred", "request_id": get_request_id()},
    )


# --- Routes ---
app.include_router(auth.router)
app.include_router(client_accounts.router)
app.include_router(credit_manager.router)
app.include_router(transactions.router)
app.include_router(subsidies.router)
app.include_router(sfds.router)
app.include_router(admin.router)
app.include_router(audit.router)
app.include_router(notifications.router)
app.include_router(reports.router)
app.include_router(mobile_money.router)


# --- Root route ---
@app.get("/")
def root():
    return {"message": "N'GNA SÔRÔ! API is running", "currency": settings.DEFAULT_CURRENCY}
