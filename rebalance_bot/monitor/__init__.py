"""Monitoring module for logging, metrics and the health surface."""

from .logger import Logger, JSONFormatter
from .metrics import MetricsCollector
from .health import HealthServer

__all__ = ["Logger", "JSONFormatter", "MetricsCollector", "HealthServer"]
