import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from database import close_db, db
from errors import LedgerError, StorageUnavailable
from responses import err
from routes_analytics import router as analytics_router
from routes_auth import router as auth_router
from routes_bills import ids_router, router as bills_router
from routes_medicines import router as medicines_router
from routes_patients import router as patients_router
from routes_services import router as services_router

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    close_db()


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    body = exc.to_dict()
    message = body.pop("message")
    body.pop("success")
    return err(message, exc.status_code, **body)


@app.exception_handler(PyMongoError)
async def storage_error_handler(request: Request, exc: PyMongoError):
    logger.exception("Storage failure on %s %s", request.method, request.url.path)
    unavailable = StorageUnavailable("Database unavailable")
    return err(unavailable.message, unavailable.status_code, kind=unavailable.kind)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in e.get("loc", ()) if p != "body"), "message": e.get("msg")}
        for e in exc.errors()
    ]
    return err("Validation Error", 400, kind="validation_error", errors=errors)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return err(str(exc.detail), exc.status_code)


@app.get("/test")
async def test():
    try:
        db().command("ping")
        return {"ok": True, "message": "DB connected"}
    except (PyMongoError, StorageUnavailable) as e:
        return {"ok": False, "error": str(e)}


app.include_router(auth_router, prefix="/api")
app.include_router(patients_router, prefix="/api")
app.include_router(medicines_router, prefix="/api")
app.include_router(services_router, prefix="/api")
app.include_router(bills_router, prefix="/api")
app.include_router(analytics_router, prefix="/api")
app.include_router(ids_router, prefix="/api")
