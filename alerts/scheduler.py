"""In-process cadence for generation and auto-resolution runs."""
import logging
import threading
import time

import schedule

logger = logging.getLogger("buildingalerts.scheduler")


class EngineScheduler:
    """Runs generation and auto-resolution on separate intervals in a background thread.

    Production deployments usually trigger the engine from cron instead;
    this is for the ``watch`` command and single-host setups.
    """

    def __init__(self, engine, generate_minutes=15, resolve_minutes=30):
        self.engine = engine
        self.generate_minutes = generate_minutes
        self.resolve_minutes = resolve_minutes
        self.cancel_event = threading.Event()
        self._scheduler = schedule.Scheduler()
        self._thread = None
        self._running = False
        self._callbacks = []
        self._consecutive_failures = 0

    def on_run(self, callback):
        """Register callback called with each finished report."""
        self._callbacks.append(callback)

    def start(self):
        if self._running:
            return
        self._running = True
        self.cancel_event.clear()

        self._scheduler.every(self.generate_minutes).minutes.do(self._generate_job)
        self._scheduler.every(self.resolve_minutes).minutes.do(self._resolve_job)

        self._thread = threading.Thread(target=self._run_loop, daemon=True)
        self._thread.start()
        logger.info(
            f"Scheduler started (generate every {self.generate_minutes}m, "
            f"resolve every {self.resolve_minutes}m)"
        )

    def stop(self):
        """Stop scheduling; a generation run in progress stops dispatching new buildings."""
        self._running = False
        self.cancel_event.set()
        self._scheduler.clear()
        if self._thread:
            self._thread.join(timeout=30)
            self._thread = None
        logger.info("Scheduler stopped")

    def _run_loop(self):
        self._generate_job()
        self._resolve_job()
        while self._running:
            self._scheduler.run_pending()
            time.sleep(1)

    def _notify(self, report):
        for cb in self._callbacks:
            try:
                cb(report)
            except Exception as e:
                logger.warning(f"Callback error: {e}")

    def _generate_job(self):
        if self.cancel_event.is_set():
            return
        try:
            report = self.engine.generate_for_all_buildings(cancel_event=self.cancel_event)
            self._consecutive_failures = 0
            self._notify(report)
        except Exception as e:
            self._record_failure("Generation", e)

    def _resolve_job(self):
        if self.cancel_event.is_set():
            return
        try:
            report = self.engine.auto_resolve_all()
            self._consecutive_failures = 0
            self._notify(report)
        except Exception as e:
            self._record_failure("Auto-resolution", e)

    def _record_failure(self, job, error):
        self._consecutive_failures += 1
        logger.error(f"{job} run failed ({self._consecutive_failures} consecutive): {error}")
        if self._consecutive_failures >= 5:
            logger.critical("5+ consecutive engine run failures!")
