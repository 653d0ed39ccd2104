from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError

from payrun.core.errors import DispatcherUnavailable
from payrun.core.logging import get_logger
from payrun.core.monitoring import report_exception
from payrun.db.session import SessionLocal
from payrun.domains.payroll.orchestrator import PayrollOrchestrator
from payrun.integrations.mailer import PayslipMailer
from payrun.integrations.monnify import MonnifyClient

logger = get_logger(__name__)


class PayrollDispatcher:
    """Runs payroll jobs on a bounded worker pool, detached from the triggering request."""

    def __init__(self, orchestrator: PayrollOrchestrator, max_workers: int = 4):
        self.orchestrator = orchestrator
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="payroll-run")
        self._cancel = threading.Event()

    @property
    def accepting(self) -> bool:
        return not self._cancel.is_set()

    def submit(self, run_id: int) -> Future:
        if not self.accepting:
            raise DispatcherUnavailable()
        future = self._executor.submit(self.orchestrator.run, run_id, self._cancel)
        future.add_done_callback(partial(self._on_done, run_id))
        logger.info("payroll_run_dispatched", run_id=run_id)
        return future

    def _on_done(self, run_id: int, future: Future) -> None:
        if future.cancelled():
            logger.warning("payroll_run_never_started", run_id=run_id)
            # Leaving it pending would block the period until reconciliation
            try:
                self.orchestrator.abandon(run_id)
            except SQLAlchemyError:
                logger.exception("payroll_run_abandon_failed", run_id=run_id)
            return
        exc = future.exception()
        if exc is not None:
            logger.error("payroll_run_crashed", run_id=run_id, exc_info=exc)
            report_exception(exc, run_id=run_id)

    def shutdown(self, wait: bool = True) -> None:
        # In-flight runs stop before their next employee
        self._cancel.set()
        self._executor.shutdown(wait=wait, cancel_futures=True)
        logger.info("payroll_dispatcher_stopped")


def build_dispatcher(settings) -> PayrollDispatcher:
    orchestrator = PayrollOrchestrator(
        session_factory=SessionLocal,
        gateway=MonnifyClient.from_settings(settings),
        notifier=PayslipMailer.from_settings(settings),
    )
    return PayrollDispatcher(orchestrator, max_workers=settings.payroll_max_concurrent_runs)


def get_dispatcher(request: Request) -> PayrollDispatcher:
    return request.app.state.payroll_dispatcher
