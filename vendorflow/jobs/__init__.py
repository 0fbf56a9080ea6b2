"""
Background Jobs Module

Handles scheduled tasks for:
- Order monitoring (staleness alerts)
- Proof expiry sweep (part of the monitoring scan when enabled)
"""

from vendorflow.jobs.scheduler import build_scheduler, get_job_status
from vendorflow.jobs.monitoring_jobs import run_order_monitoring

__all__ = [
    "build_scheduler",
    "get_job_status",
    "run_order_monitoring",
]
