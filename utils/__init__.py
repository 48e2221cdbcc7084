"""Utility modules for HealthWatch."""
from utils.logger import setup_logging
