"""Harvest Scheduler - periodic and on-demand harvest triggering for tenants."""

__app_name__ = "harvest-scheduler"
__version__ = "0.1.0"
