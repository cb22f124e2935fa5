"""Telemetry module for logging and metrics."""

from tutor_orchestrator.telemetry.logger import RequestContext, setup_logging
from tutor_orchestrator.telemetry.metrics import MetricsCollector, metrics_collector

__all__ = ["RequestContext", "setup_logging", "MetricsCollector", "metrics_collector"]
