"""
Overdue Scheduler Module

Periodic background recomputation of overdue figures for all active loans.
The scheduler is an ordinary object: the application builds one, starts it
and stops it on shutdown. Recomputation is idempotent, so a run racing an
API-triggered update for the same loan converges on the same values.
"""

from datetime import date
from typing import Any, Callable, Dict, Optional
import logging
import threading

from .loans import LoanManager

logger = logging.getLogger(__name__)


class OverdueScheduler:
    """Runs ``LoanManager.update_all_overdue`` every ``interval_seconds``"""

    def __init__(
        self,
        loan_manager: LoanManager,
        interval_seconds: float = 3600.0,
        clock: Optional[Callable[[], date]] = None
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.loan_manager = loan_manager
        self.interval_seconds = interval_seconds
        self.clock = clock or date.today
        self.last_result: Optional[Dict[str, Any]] = None
        self.run_count = 0

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.RLock()

    def run_once(self) -> Dict[str, Any]:
        """Recompute every active loan now and return the batch summary"""
        with self._lock:
            result = self.loan_manager.update_all_overdue(as_of=self.clock())
            self.last_result = result
            self.run_count += 1
        logger.info("Overdue refresh: %d processed, %d updated",
                    result["loans_processed"], result["loans_updated"])
        return result

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Scheduled overdue refresh failed")
            self._stop_event.wait(self.interval_seconds)

    def start(self) -> None:
        """Start the background thread; the first run happens immediately"""
        with self._lock:
            if self.is_running():
                return
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._loop, name="overdue-scheduler")
            self._thread.daemon = True
            self._thread.start()
        logger.info("OverdueScheduler started (interval %ss)", self.interval_seconds)

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the thread to stop and wait for it"""
        self._stop_event.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout=timeout)
        self._thread = None
        logger.info("OverdueScheduler stopped")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
