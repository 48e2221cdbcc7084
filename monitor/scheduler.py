"""Background scheduler: aggregate metrics, evaluate alerts, clean up incidents."""
import logging
import threading
import schedule
import time

logger = logging.getLogger("healthwatch.scheduler")

FAILURE_ALARM = 5


class MonitorScheduler:
    def __init__(self, aggregator, cycle, janitor=None, interval_seconds=60,
                 cleanup_interval_seconds=3600):
        self.aggregator = aggregator
        self.cycle = cycle
        self.janitor = janitor
        self.interval = interval_seconds
        self.cleanup_interval = cleanup_interval_seconds
        self._schedule = schedule.Scheduler()
        self._thread = None
        self._running = False
        self._callbacks = []
        self._consecutive_failures = 0

    def on_cycle(self, callback):
        """Register callback called with each CycleReport."""
        self._callbacks.append(callback)

    def start(self):
        if self._running:
            return
        self._running = True

        self._schedule.every(self.interval).seconds.do(self.tick)
        if self.janitor is not None:
            self._schedule.every(self.cleanup_interval).seconds.do(self.cleanup)

        self._thread = threading.Thread(target=self._run_loop, daemon=True)
        self._thread.start()
        logger.info(f"Scheduler started (every {self.interval}s)")

    def stop(self):
        self._running = False
        self._schedule.clear()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("Scheduler stopped")

    def _run_loop(self):
        self.tick()
        while self._running:
            self._schedule.run_pending()
            time.sleep(1)

    def tick(self):
        """Aggregate the latest hour, then run one evaluation cycle."""
        try:
            self.aggregator.update_snapshot()
            report = self.cycle.run()
        except Exception as e:
            self._consecutive_failures += 1
            logger.error(f"Monitoring tick failed ({self._consecutive_failures} consecutive): {e}")
            if self._consecutive_failures >= FAILURE_ALARM:
                logger.critical(f"{FAILURE_ALARM}+ consecutive monitoring failures!")
            return None

        self._consecutive_failures = 0
        for cb in self._callbacks:
            try:
                cb(report)
            except Exception as e:
                logger.warning(f"Callback error: {e}")
        return report

    def cleanup(self):
        try:
            return self.janitor.cleanup()
        except Exception as e:
            logger.error(f"Incident cleanup failed: {e}")
            return None
