"""Run monitor: projections over the run ledger and their rendering."""

from cutover.monitor.projection import MonitorProjection, RunSummary, StageStatus
from cutover.monitor.renderer import MonitorRenderer

__all__ = ["MonitorProjection", "MonitorRenderer", "RunSummary", "StageStatus"]
