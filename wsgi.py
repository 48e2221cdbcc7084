"""WSGI entry point for production deployment."""
import sys
import os
import logging
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).parent))

from main import _init_components
from monitor.scheduler import MonitorScheduler
from web.app import create_app

logger = logging.getLogger("healthwatch.wsgi")

components = _init_components(os.environ.get("HEALTHWATCH_CONFIG"))
config = components["config"]

app = create_app(config, components)

# The API process also drives evaluation unless another worker owns it.
if os.environ.get("HEALTHWATCH_SCHEDULER", "1") == "1":
    mon = config["monitor"]
    scheduler = MonitorScheduler(
        components["aggregator"], components["cycle"], components["janitor"],
        interval_seconds=mon["interval_seconds"],
        cleanup_interval_seconds=mon.get("cleanup_interval_seconds", 3600),
    )
    scheduler.start()
    logger.info("Background scheduler started with WSGI app")
