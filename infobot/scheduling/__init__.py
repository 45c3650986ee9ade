"""Scheduling: check/cleanup jobs and the APScheduler wrapper."""

from infobot.scheduling.jobs import BaseJob, CheckCycleJob, CleanupJob
from infobot.scheduling.scheduler import NotifierScheduler

__all__ = ["BaseJob", "CheckCycleJob", "CleanupJob", "NotifierScheduler"]
