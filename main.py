from __future__ import annotations

import time
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.sessions import SessionMiddleware

from cashbox import messages
from cashbox.config import settings as app_settings
from cashbox.exceptions import CashboxError
from cashbox.logging_config import LogContext, configure_logging, get_logger
from cashbox.routers import auth, cash_box, debts, expenses, money_boxes, purchases, receipts, sales
from cashbox.services.auth import SESSION_USER_ID
from cashbox.services.db_init import init_db

configure_logging(level=app_settings.LOG_LEVEL)
logger = get_logger("http")

# ------------------------------------------------------------------------------
# App / Middleware
# ------------------------------------------------------------------------------
APP_VERSION = "1.0.0"
app = FastAPI(title=app_settings.APP_NAME, version=APP_VERSION)


def _error(status_code: int, code: str, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": code, "message": message, **extra},
    )


@app.exception_handler(CashboxError)
def _cashbox_error(_req: Request, exc: CashboxError):
    return _error(exc.status_code, exc.code, exc.message, **exc.extra())


@app.exception_handler(RequestValidationError)
def _request_validation_error(_req: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in e.get("loc", ())[1:]), "message": e.get("msg")}
        for e in exc.errors()
    ]
    return _error(400, "VALIDATION_ERROR", messages.VALIDATION_FAILED, errors=errors)


@app.exception_handler(SQLAlchemyError)
def _database_error(req: Request, exc: SQLAlchemyError):
    logger.error("http.request.db_error", exc_info=exc, extra={"path": req.url.path})
    return _error(500, "DATABASE_ERROR", messages.DATABASE_ERROR)


@app.exception_handler(Exception)
def _unhandled_exception(req: Request, exc: Exception):
    logger.error("http.request.unhandled", exc_info=exc, extra={"path": req.url.path, "method": req.method})
    return _error(500, "INTERNAL_ERROR", messages.INTERNAL_ERROR)


# Correlation id + request log. SessionMiddleware is added after this one so it
# wraps it and request.session is already decoded here.
@app.middleware("http")
async def _request_logging(request: Request, call_next):
    rid = (request.headers.get("X-Request-Id") or "").strip() or uuid.uuid4().hex
    request.state.request_id = rid
    started = time.time()

    with LogContext.bind(request_id=rid, user_id=request.session.get(SESSION_USER_ID)):
        response = await call_next(request)
        response.headers["X-Request-Id"] = rid
        logger.info(
            "http.request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": int((time.time() - started) * 1000),
            },
        )
    return response


app.add_middleware(
    SessionMiddleware,
    secret_key=app_settings.SECRET_KEY,
    session_cookie=app_settings.SESSION_COOKIE,
)

# ------------------------------------------------------------------------------
# Routes
# ------------------------------------------------------------------------------
for _module in (auth, cash_box, money_boxes, sales, purchases, expenses, receipts, debts):
    app.include_router(_module.router, prefix="/api")


@app.get("/api/health")
def health():
    return {"success": True, "version": APP_VERSION}


# ------------------------------------------------------------------------------
# Startup
# ------------------------------------------------------------------------------
@app.on_event("startup")
def _startup():
    init_db(dev_seed=app_settings.DEV_SEED)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=app_settings.HOST, port=app_settings.PORT, reload=True)
