"""Periodic pipeline triggers and their APScheduler schedules."""

from creatorpulse.scheduler.scheduler import PERIODIC_JOBS, PeriodicJob, Scheduler

__all__ = ["PERIODIC_JOBS", "PeriodicJob", "Scheduler"]
