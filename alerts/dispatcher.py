"""Fan-out of one alert to many notification channels."""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout

from models.alerts import DispatchResult

logger = logging.getLogger("healthwatch.alerts.dispatcher")

DEFAULT_CHANNEL_TIMEOUT = 8.0


def _safe_deliver(channel, alert):
    try:
        return channel.deliver(alert) is True
    except Exception as e:
        logger.warning(f"Channel {channel.name} raised during delivery: {e}")
        return False


class NotificationDispatcher:
    """Deliver an alert on every configured channel independently.

    Each channel runs in its own worker and is given at most `timeout`
    seconds. A channel that raises, returns anything but True, or times out
    is recorded as not delivered; nothing propagates to the caller.
    """

    def __init__(self, channels=None, timeout=DEFAULT_CHANNEL_TIMEOUT):
        self.channels = list(channels or [])
        self.timeout = timeout

    def _active(self, alert, channels):
        active = []
        for ch in channels:
            if not getattr(ch, "enabled", True):
                continue
            accepts = getattr(ch, "accepts", None)
            if accepts is not None and not accepts(alert):
                logger.debug(f"Channel {ch.name} filtered {alert.severity} alert")
                continue
            active.append(ch)
        return active

    def deliver_all(self, alert, channels=None):
        """Deliver and return one DispatchResult per attempted channel."""
        channels = self._active(alert, self.channels if channels is None else channels)
        if not channels:
            logger.debug(f"No channels for alert: {alert.title}")
            return []

        logger.info(f"Sending {alert.severity} alert: {alert.title}")
        pool = ThreadPoolExecutor(max_workers=len(channels), thread_name_prefix="dispatch")
        try:
            futures = [(ch, pool.submit(_safe_deliver, ch, alert)) for ch in channels]
            deadline = time.monotonic() + self.timeout
            results = []
            for ch, future in futures:
                remaining = max(0.0, deadline - time.monotonic())
                try:
                    delivered = future.result(timeout=remaining)
                except FutureTimeout:
                    logger.warning(f"Channel {ch.name} timed out after {self.timeout:.0f}s")
                    delivered = False
                results.append(DispatchResult(channel=ch.name, delivered=delivered))
        finally:
            # A hung channel keeps its worker thread; the cycle does not wait for it.
            pool.shutdown(wait=False, cancel_futures=True)

        sent = [r.channel for r in results if r.delivered]
        if sent:
            logger.info(f"Alert sent successfully via: {', '.join(sent)}")
        else:
            logger.error(f"Failed to send alert via any channel: {alert.title}")
        return results

    def dispatch(self, alert, channels=None):
        """Deliver `alert` and return {channel_name: delivered}."""
        return {r.channel: r.delivered for r in self.deliver_all(alert, channels)}
