"""Background worker for expired session and revocation cleanup."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from feedauth.config import Settings, settings as default_settings
from feedauth.core.database import SessionLocal
from feedauth.services.rate_limiter import RateLimitBackend, rate_limiter
from feedauth.services.revocation_service import RevocationLedger, revocation_ledger
from feedauth.services.session_service import SessionRegistry, session_registry

logger = logging.getLogger(__name__)


class MaintenanceWorker:
    """Periodic sweeper. Every pass is idempotent, so overlapping runs are harmless."""

    def __init__(
        self,
        config: Settings = default_settings,
        session_factory: Callable = SessionLocal,
        sessions: SessionRegistry = session_registry,
        ledger: RevocationLedger = revocation_ledger,
        limiter: RateLimitBackend = rate_limiter,
    ) -> None:
        self.settings = config
        self._session_factory = session_factory
        self.sessions = sessions
        self.ledger = ledger
        self.limiter = limiter
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._heartbeat: float = 0.0
        self._runs: int = 0
        self._last_result: Dict[str, int] = {}
        self._lock = threading.Lock()

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="maintenance-worker", daemon=True)
        self._thread.start()
        logger.info("Maintenance worker started")

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        logger.info("Maintenance worker stopped")

    def status(self) -> dict:
        with self._lock:
            return {
                "running": self.is_running(),
                "last_heartbeat": self._heartbeat,
                "runs": self._runs,
                "last_result": dict(self._last_result),
            }

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except SQLAlchemyError as exc:
                logger.exception(f"Maintenance pass failed: {exc}")
            self._heartbeat = time.time()
            self._stop_event.wait(max(1, self.settings.MAINTENANCE_INTERVAL_SECONDS))

    def run_once(self) -> Dict[str, int]:
        db = self._session_factory()
        try:
            result = {
                "sessions_removed": self.sessions.sweep_expired(db),
                "revocations_removed": self.ledger.sweep_expired(db),
                "rate_limit_keys_pruned": self.limiter.prune(),
            }
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

        with self._lock:
            self._runs += 1
            self._last_result = result
        logger.debug(f"Maintenance pass complete: {result}")
        return result


maintenance_worker = MaintenanceWorker()
