"""Health probes for the database and upstream HTTP services."""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import requests

from models.enums import ServiceStatus

logger = logging.getLogger("healthwatch.monitor.health")

USER_AGENT = "HealthWatch/1.0"


class HealthChecker:
    """Probes configured services and grades each one.

    services: list of {"name": ..., "url": ...} dicts.
    """

    def __init__(self, db=None, services=None, timeout=5, slow_ms=2000):
        self.db = db
        self.services = list(services or [])
        self.timeout = timeout
        self.slow_ms = slow_ms
        self.session = requests.Session()
        self.session.headers["User-Agent"] = USER_AGENT

    def _result(self, status, started, **extra):
        out = {
            "status": status,
            "responseTime": round((time.monotonic() - started) * 1000),
            "lastCheck": datetime.now(timezone.utc).isoformat(),
        }
        out.update(extra)
        return out

    def check_database(self):
        started = time.monotonic()
        if self.db is None:
            return self._result(ServiceStatus.MAJOR.value, started, error="No database configured")
        try:
            self.db.ping()
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return self._result(ServiceStatus.MAJOR.value, started, error=str(e))
        return self._result(ServiceStatus.OPERATIONAL.value, started)

    def check_service(self, url):
        started = time.monotonic()
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Health probe {url} failed: {e}")
            return self._result(ServiceStatus.MAJOR.value, started, error=str(e))
        result = self._result(ServiceStatus.OPERATIONAL.value, started, httpStatus=resp.status_code)
        if not resp.ok:
            result["status"] = ServiceStatus.PARTIAL.value
        elif result["responseTime"] > self.slow_ms:
            result["status"] = ServiceStatus.DEGRADED.value
        return result

    def check_all(self):
        results = {"database": self.check_database()}
        if not self.services:
            return results
        with ThreadPoolExecutor(max_workers=min(len(self.services), 8)) as pool:
            futures = {s["name"]: pool.submit(self.check_service, s["url"]) for s in self.services}
            for name, future in futures.items():
                results[name] = future.result()
        return results

    def report(self):
        services = self.check_all()
        return {
            "status": overall_status(services),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "services": services,
        }


def overall_status(results):
    statuses = {r["status"] for r in results.values()}
    if ServiceStatus.MAJOR.value in statuses:
        return ServiceStatus.MAJOR.value
    if statuses & {ServiceStatus.DEGRADED.value, ServiceStatus.PARTIAL.value}:
        return ServiceStatus.DEGRADED.value
    return ServiceStatus.OPERATIONAL.value
