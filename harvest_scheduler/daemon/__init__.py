"""Service module for the harvest scheduler.

Runs the scheduler as a long-lived process with signal handling.
"""

from harvest_scheduler.daemon.service import HarvestSchedulerService, run_service

__all__ = [
    "HarvestSchedulerService",
    "run_service",
]
