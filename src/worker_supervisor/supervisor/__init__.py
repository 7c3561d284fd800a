"""
The Supervisor package.
Manages the lifecycle of the single background worker process.

This package contains the central WorkerSupervisor class and its helper modules,
which together handle the startup lock, the worker state file, spawning,
readiness checks and shutdown.
"""
from .supervisor import WorkerSupervisor
from .results import FailureKind, LaunchResult, SupervisorState, WorkerStatus

__all__ = ['WorkerSupervisor', 'FailureKind', 'LaunchResult', 'SupervisorState', 'WorkerStatus']
