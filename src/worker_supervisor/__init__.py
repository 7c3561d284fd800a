"""
Worker supervisor package.

Starts, stops and reports on a single long-lived background worker,
guaranteeing that at most one instance runs system-wide.
"""

from .config import SupervisorSettings
from .supervisor import WorkerSupervisor

__all__ = ["SupervisorSettings", "WorkerSupervisor"]
