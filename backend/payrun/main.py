from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from payrun.api.routes import health
from payrun.core.config import settings
from payrun.core.logging import configure_logging, get_logger
from payrun.core.monitoring import configure_error_monitoring
from payrun.core.observability import configure_observability
from payrun.db.session import session_scope
from payrun.domains.adjustments.router import router as adjustments_router
from payrun.domains.payroll.dispatcher import build_dispatcher
from payrun.domains.payroll.reconciliation import reconcile_stale_runs
from payrun.domains.payroll.router import router as payroll_router
from payrun.domains.tax_config.router import router as tax_config_router

configure_logging(settings.log_level)
configure_observability()
configure_error_monitoring()
logger = get_logger(__name__)

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.cors_origins] or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(tax_config_router)
app.include_router(adjustments_router)
app.include_router(payroll_router)


@app.on_event("startup")
def startup_event() -> None:
    try:
        with session_scope() as db:
            reconciled = reconcile_stale_runs(db, timedelta(minutes=settings.payroll_stale_run_minutes))
        if reconciled:
            logger.warning("stale_payroll_runs_reconciled", count=len(reconciled))
    except SQLAlchemyError:
        logger.exception("stale_payroll_run_reconciliation_failed")

    app.state.payroll_dispatcher = build_dispatcher(settings)
    logger.info("startup_complete", env=settings.env)


@app.on_event("shutdown")
def shutdown_event() -> None:
    dispatcher = getattr(app.state, "payroll_dispatcher", None)
    if dispatcher is not None:
        dispatcher.shutdown(wait=True)


@app.get("/")
def root() -> dict[str, str]:
    return {"message": "Payroll API running", "environment": settings.env}
