"""
Database-backed background jobs.

``jobs.runner`` imports every worker module, so it is not imported here.
"""

from .queue import JobQueue, job_to_dict
from .worker import JobContext, Snooze, Worker, get_worker, list_workers, register_worker

__all__ = [
    "JobQueue",
    "job_to_dict",
    "JobContext",
    "Snooze",
    "Worker",
    "get_worker",
    "list_workers",
    "register_worker",
]
