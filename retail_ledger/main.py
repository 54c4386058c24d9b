import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from retail_ledger.api.routes.installments import router as installments_router
from retail_ledger.api.routes.ledger import router as ledger_router
from retail_ledger.api.routes.reports import router as reports_router
from retail_ledger.api.routes.stock import router as stock_router
from retail_ledger.core.config import settings
from retail_ledger.core.errors import LedgerError
from retail_ledger.core.logging import configure_logging
from retail_ledger.db.database import SessionLocal
from retail_ledger.services.installments import refresh_overdue

configure_logging()
logger = logging.getLogger(__name__)


def run_overdue_sweep() -> int:
    db = SessionLocal()
    try:
        return refresh_overdue(db)
    except Exception:
        logger.exception("overdue sweep failed")
        db.rollback()
        return 0
    finally:
        db.close()


async def _overdue_sweep_worker() -> None:
    while True:
        # the sweep does blocking database I/O, keep it off the event loop
        await asyncio.to_thread(run_overdue_sweep)
        await asyncio.sleep(max(60, settings.overdue_sweep_interval_minutes * 60))


@asynccontextmanager
async def lifespan(_: FastAPI):
    task: asyncio.Task | None = None
    if settings.overdue_sweep_enabled:
        task = asyncio.create_task(_overdue_sweep_worker())
    try:
        yield
    finally:
        if task:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(ledger_router)
app.include_router(stock_router)
app.include_router(installments_router)
app.include_router(reports_router)


@app.exception_handler(LedgerError)
async def ledger_error_handler(_: Request, exc: LedgerError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code, "retryable": exc.retryable},
    )


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "ok"}
