"""Run monitoring and metrics collection."""

from .dashboard import RunDashboard, run_dashboard
from .metrics import MetricsCollector, RunMetrics, StageTimer

__all__ = ["MetricsCollector", "RunMetrics", "StageTimer", "RunDashboard", "run_dashboard"]
